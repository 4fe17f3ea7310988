"""
Utility Functions

Geometry helpers shared by the hierarchy and point decoders.
"""

from .aabb import AABB

__all__ = ["AABB"]
