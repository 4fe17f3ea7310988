"""
Potree I/O Module

Metadata parsing, hierarchy decoding and point attribute decoding.
"""

from .metadata import AttributeDescriptor, CloudMetadata, HierarchyParams
from .hierarchy import (
    Hierarchy, HierarchyDecoder, Node, NodeType,
    decode_hierarchy, load_hierarchy, validate_hierarchy, get_hierarchy_stats
)
from .points import POINT_DTYPE, PointDataFile, decode_points, decode_point_bytes

__all__ = [
    "AttributeDescriptor", "CloudMetadata", "HierarchyParams",
    "Hierarchy", "HierarchyDecoder", "Node", "NodeType",
    "decode_hierarchy", "load_hierarchy", "validate_hierarchy", "get_hierarchy_stats",
    "POINT_DTYPE", "PointDataFile", "decode_points", "decode_point_bytes",
]
