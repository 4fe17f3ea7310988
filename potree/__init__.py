"""
Potree Reader

Lazy access to Potree 2.0 point cloud octrees: hierarchy decoding,
on-demand point decoding and node datasets.
"""

from .cloud import PotreeCloud
from .config import ReaderConfig
from .errors import (
    PotreeError, MetadataError, HierarchyMalformedError,
    UnsupportedEncodingError, PointDataReadError
)
from .io.hierarchy import Hierarchy, Node, NodeType
from .io.metadata import CloudMetadata
from .io.points import POINT_DTYPE
from .utils.aabb import AABB

__all__ = [
    "PotreeCloud", "ReaderConfig",
    "PotreeError", "MetadataError", "HierarchyMalformedError",
    "UnsupportedEncodingError", "PointDataReadError",
    "Hierarchy", "Node", "NodeType", "CloudMetadata", "POINT_DTYPE", "AABB",
]

__version__ = "0.1.0"
