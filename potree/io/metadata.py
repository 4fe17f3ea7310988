"""
Cloud Metadata

Parses the Potree 2.0 metadata.json description into an immutable
configuration object consumed by the hierarchy and point decoders.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..errors import MetadataError
from ..utils.aabb import AABB

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "DEFAULT"


@dataclass(frozen=True)
class AttributeDescriptor:
    """
    One interleaved per-point attribute.

    Attributes:
        name: Attribute name, e.g. 'position', 'rgb', 'classification'
        size: Total byte size of the attribute within a point record
        num_elements: Number of scalar elements
        element_size: Byte size of one element
        type: Element type name as written by the converter
    """
    name: str
    size: int
    num_elements: int = 1
    element_size: int = 0
    type: str = "undefined"

    def __post_init__(self):
        if self.size <= 0:
            raise MetadataError(f"Attribute '{self.name}' must have a positive size, got {self.size}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttributeDescriptor':
        try:
            return cls(
                name=str(data['name']),
                size=int(data['size']),
                num_elements=int(data.get('numElements', 1)),
                element_size=int(data.get('elementSize', 0)),
                type=str(data.get('type', 'undefined')),
            )
        except KeyError as e:
            raise MetadataError(f"Attribute entry is missing field {e}: {data}")


@dataclass(frozen=True)
class HierarchyParams:
    """Hierarchy paging parameters."""
    first_chunk_size: int
    step_size: int
    depth: int

    def __post_init__(self):
        if self.first_chunk_size < 0:
            raise MetadataError(f"firstChunkSize must be non-negative, got {self.first_chunk_size}")
        if self.depth < 0:
            raise MetadataError(f"Hierarchy depth must be non-negative, got {self.depth}")


@dataclass(frozen=True, eq=False)
class CloudMetadata:
    """
    Immutable description of a Potree cloud.

    Attributes:
        bounding_box: Cloud bounds, also the root node bounds
        attributes: Ordered attribute descriptors of one point record
        scale: (3,) float64 position scale
        offset: (3,) float64 position offset
        hierarchy: Paging parameters of hierarchy.bin
        encoding: Point encoding identifier ('DEFAULT' for plain records)
        name: Cloud name
        points: Declared total point count
        spacing: Root node point spacing
        projection: Projection string, may be empty
    """
    bounding_box: AABB
    attributes: Tuple[AttributeDescriptor, ...]
    scale: np.ndarray
    offset: np.ndarray
    hierarchy: HierarchyParams
    encoding: str = DEFAULT_ENCODING
    name: str = ""
    points: int = 0
    spacing: float = 0.0
    projection: str = ""
    version: str = "2.0"
    point_size: int = field(init=False)

    def __post_init__(self):
        scale = np.asarray(self.scale, dtype=np.float64)
        offset = np.asarray(self.offset, dtype=np.float64)
        if scale.shape != (3,) or offset.shape != (3,):
            raise MetadataError(
                f"scale and offset must be 3-vectors, got shapes {scale.shape} and {offset.shape}"
            )
        scale.setflags(write=False)
        offset.setflags(write=False)
        object.__setattr__(self, 'scale', scale)
        object.__setattr__(self, 'offset', offset)
        object.__setattr__(self, 'attributes', tuple(self.attributes))
        object.__setattr__(self, 'point_size', sum(a.size for a in self.attributes))

        if not self.attributes:
            raise MetadataError("Metadata declares no point attributes")

    @property
    def stride(self) -> int:
        """Byte size of one interleaved point record."""
        return self.point_size

    @property
    def attribute_names(self) -> List[str]:
        return [a.name for a in self.attributes]

    def get_attribute(self, name: str) -> Optional[AttributeDescriptor]:
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CloudMetadata':
        """
        Build metadata from a parsed metadata.json dictionary.

        Args:
            data: Dictionary in the Potree 2.0 metadata layout

        Returns:
            CloudMetadata

        Raises:
            MetadataError: If required fields are missing or malformed
        """
        try:
            box = data['boundingBox']
            hierarchy = data['hierarchy']
            return cls(
                bounding_box=AABB(box['min'], box['max']),
                attributes=[AttributeDescriptor.from_dict(a) for a in data['attributes']],
                scale=data['scale'],
                offset=data['offset'],
                hierarchy=HierarchyParams(
                    first_chunk_size=int(hierarchy['firstChunkSize']),
                    step_size=int(hierarchy.get('stepSize', 0)),
                    depth=int(hierarchy['depth']),
                ),
                encoding=str(data.get('encoding', DEFAULT_ENCODING)),
                name=str(data.get('name', '')),
                points=int(data.get('points', 0)),
                spacing=float(data.get('spacing', 0.0)),
                projection=str(data.get('projection', '')),
                version=str(data.get('version', '2.0')),
            )
        except KeyError as e:
            raise MetadataError(f"metadata is missing field {e}")
        except (TypeError, ValueError) as e:
            if isinstance(e, MetadataError):
                raise
            raise MetadataError(f"metadata is malformed: {e}")

    @classmethod
    def from_json(cls, path: str) -> 'CloudMetadata':
        """
        Load metadata from a metadata.json file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            MetadataError: If the file is not valid metadata
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Metadata file not found: {path}")

        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise MetadataError(f"Failed to parse {path}: {e}")

        metadata = cls.from_dict(data)
        logger.debug(
            f"Loaded metadata from {path}: {len(metadata.attributes)} attributes, "
            f"stride {metadata.stride}, encoding {metadata.encoding}"
        )
        return metadata

    def __repr__(self) -> str:
        return (f"CloudMetadata(name='{self.name}', points={self.points}, "
                f"attributes={self.attribute_names}, encoding='{self.encoding}')")
