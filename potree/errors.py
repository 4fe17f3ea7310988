"""
Reader Exceptions

Every error raised by the reader derives from PotreeError and from the
closest builtin exception, so callers catching ValueError/IOError keep
working.
"""

from typing import Optional


class PotreeError(Exception):
    """Base class for all reader errors."""


class MetadataError(PotreeError, ValueError):
    """metadata.json is missing required fields or is inconsistent."""


class HierarchyMalformedError(PotreeError, ValueError):
    """hierarchy.bin cannot be decoded into a valid octree."""


class UnsupportedEncodingError(PotreeError, NotImplementedError):
    """Point data uses an encoding other than the plain fixed-stride layout."""


class PointDataReadError(PotreeError, IOError):
    """
    A byte range of octree.bin could not be read.

    Attributes:
        offset: First byte of the failing range
        size: Length of the failing range in bytes
    """

    def __init__(self, message: str, offset: Optional[int] = None, size: Optional[int] = None):
        super().__init__(message)
        self.offset = offset
        self.size = size
