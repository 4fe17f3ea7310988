"""
Axis-Aligned Bounding Boxes

Double precision boxes used for node bounds and octant subdivision.
"""

from dataclasses import dataclass
from typing import Sequence, Union
import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]


@dataclass(eq=False)
class AABB:
    """
    Axis-aligned box with float64 corners.

    Attributes:
        min: (3,) lower corner
        max: (3,) upper corner
    """
    min: np.ndarray
    max: np.ndarray

    def __post_init__(self):
        self.min = np.asarray(self.min, dtype=np.float64).reshape(3)
        self.max = np.asarray(self.max, dtype=np.float64).reshape(3)
        if np.any(self.max < self.min):
            raise ValueError(f"Box max {self.max} lies below min {self.min}")

    @property
    def size(self) -> np.ndarray:
        """Extent along x, y, z."""
        return self.max - self.min

    @property
    def center(self) -> np.ndarray:
        return (self.min + self.max) / 2

    def octant(self, index: int) -> 'AABB':
        """
        Box of one of the eight children.

        Bit 0 selects the z half, bit 1 the y half and bit 2 the x half.
        A set bit selects the upper half, a clear bit the lower half.

        Args:
            index: Octant code in [0, 8)

        Returns:
            Child box
        """
        if not 0 <= index < 8:
            raise ValueError(f"Octant index must be in [0, 8), got {index}")

        lo = self.min.copy()
        hi = self.max.copy()
        half = self.size / 2

        # axis order x, y, z maps to bits 2, 1, 0
        for axis, bit in enumerate((0b100, 0b010, 0b001)):
            if index & bit:
                lo[axis] += half[axis]
            else:
                hi[axis] -= half[axis]

        return AABB(lo, hi)

    def contains(self, point: ArrayLike) -> bool:
        """Inclusive point-in-box test."""
        p = np.asarray(point, dtype=np.float64)
        return bool(np.all(p >= self.min) and np.all(p <= self.max))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AABB):
            return NotImplemented
        return np.array_equal(self.min, other.min) and np.array_equal(self.max, other.max)

    def __repr__(self) -> str:
        return f"AABB(min={self.min.tolist()}, max={self.max.tolist()})"
