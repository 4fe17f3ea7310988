"""Reader Configuration"""

from dataclasses import dataclass, asdict
from typing import Optional


@dataclass
class ReaderConfig:
    metadata_file: str = "metadata.json"
    hierarchy_file: str = "hierarchy.bin"
    octree_file: str = "octree.bin"

    # proxy chunk nesting cap; None uses the hierarchy depth from metadata
    max_chunk_depth: Optional[int] = None
    validate_hierarchy: bool = False

    verbose: bool = True

    def __post_init__(self):
        if self.max_chunk_depth is not None and self.max_chunk_depth < 0:
            raise ValueError(f"max_chunk_depth must be non-negative, got {self.max_chunk_depth}")

    @classmethod
    def from_yaml(cls, path: str) -> "ReaderConfig":
        import yaml
        with open(path, "r") as f:
            config_dict = yaml.safe_load(f) or {}
        return cls(**config_dict)

    def to_yaml(self, path: str):
        import yaml
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False)
