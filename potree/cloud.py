"""
Potree Cloud

Opens a Potree 2.0 directory (metadata.json, hierarchy.bin, octree.bin),
exposes the decoded octree as a lookup table by node path, and loads or
unloads per-node point buffers on demand.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .config import ReaderConfig
from .io.hierarchy import Hierarchy, Node, decode_hierarchy, load_hierarchy, validate_hierarchy
from .io.metadata import CloudMetadata
from .io.points import PointDataFile, decode_points

logger = logging.getLogger(__name__)

BufferLike = Union[bytes, bytearray, memoryview]


class PotreeCloud:
    """
    Lazily loaded Potree point cloud.

    Node structure is decoded once when the cloud is opened; point data is
    read only for nodes passed to load(). Nodes are addressed by their path
    of octant digits ('' for the root, '04' for child 4 of child 0); Potree
    names with a leading 'r' ('r04') are accepted as well.

    Loads share one octree.bin reader whose byte-range reads are serialized,
    but loading the same node from several threads at once is not guarded.

    Args:
        path: Directory holding the three Potree files
        config: File names and decoding options
    """

    def __init__(self, path: str, config: Optional[ReaderConfig] = None):
        self.path = Path(path)
        self.config = config or ReaderConfig()

        if not self.path.is_dir():
            raise FileNotFoundError(f"Point cloud directory not found: {self.path}")

        metadata = CloudMetadata.from_json(self.path / self.config.metadata_file)
        hierarchy = load_hierarchy(
            self.path / self.config.hierarchy_file,
            metadata,
            max_chunk_depth=self.config.max_chunk_depth,
            validate=self.config.validate_hierarchy
        )
        source = PointDataFile(self.path / self.config.octree_file)

        self._attach(metadata, hierarchy, source)

    @classmethod
    def from_parts(
        cls,
        metadata: CloudMetadata,
        hierarchy_buffer: BufferLike,
        octree_path: str,
        config: Optional[ReaderConfig] = None
    ) -> 'PotreeCloud':
        """
        Build a cloud from already parsed metadata and hierarchy bytes.

        Args:
            metadata: Parsed cloud metadata
            hierarchy_buffer: hierarchy.bin content
            octree_path: Path to the point data file
            config: Decoding options (file names are ignored)
        """
        cloud = cls.__new__(cls)
        cloud.path = Path(octree_path).parent
        cloud.config = config or ReaderConfig()

        hierarchy = decode_hierarchy(
            hierarchy_buffer, metadata, max_chunk_depth=cloud.config.max_chunk_depth
        )
        if cloud.config.validate_hierarchy:
            validate_hierarchy(hierarchy)

        cloud._attach(metadata, hierarchy, PointDataFile(octree_path))
        return cloud

    def _attach(self, metadata: CloudMetadata, hierarchy: Hierarchy, source: PointDataFile) -> None:
        self.metadata = metadata
        self.hierarchy = hierarchy
        self._source = source

        if self.config.verbose:
            logger.info(
                f"Opened point cloud {self.path}: {len(hierarchy)} nodes in "
                f"{len(hierarchy.chunks)} chunks, {metadata.points} points, "
                f"stride {metadata.stride}"
            )

    @property
    def root(self) -> Node:
        return self.hierarchy.root

    @property
    def nodes(self) -> List[Node]:
        """Flattened node table in depth-first order."""
        return self.hierarchy.nodes

    @staticmethod
    def _normalize_path(path: str) -> str:
        if path.startswith('r'):
            return path[1:]
        return path

    def find_node(self, path: str) -> Optional[Node]:
        """
        Look up a node by path or Potree name.

        Returns:
            The node, or None if no node has that path
        """
        return self.hierarchy.get(self._normalize_path(path))

    def load(self, path: str) -> Optional[Node]:
        """
        Decode a node's points and attach them to the node.

        Loading an already loaded node decodes again and replaces the buffer.

        Returns:
            The loaded node, or None if no node has that path
        """
        node = self.find_node(path)

        if node is None:
            logger.warning(f"Cannot load node '{path}': not found")
            return None

        node.points = decode_points(self._source, node, self.metadata)
        return node

    def unload(self, path: str) -> bool:
        """
        Detach a node's point buffer.

        Returns:
            False if no node has that path, True otherwise (including when the
            node was not loaded)
        """
        node = self.find_node(path)

        if node is None:
            logger.warning(f"Cannot unload node '{path}': not found")
            return False

        node.points = None
        return True

    def loaded_nodes(self) -> List[Node]:
        return [node for node in self.nodes if node.is_loaded]

    def unload_all(self) -> int:
        """
        Detach every loaded point buffer.

        Returns:
            Number of nodes unloaded
        """
        loaded = self.loaded_nodes()
        for node in loaded:
            node.points = None
        return len(loaded)

    def close(self) -> None:
        self._source.close()

    def __enter__(self) -> 'PotreeCloud':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self.hierarchy)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.hierarchy)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.find_node(path) is not None

    def __repr__(self) -> str:
        return (
            f"PotreeCloud(path='{self.path}', nodes={len(self)}, "
            f"loaded={len(self.loaded_nodes())})"
        )
