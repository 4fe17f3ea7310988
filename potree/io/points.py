"""
Point Attribute Decoding

Turns a node's byte range of octree.bin into typed point records.

Points are stored as fixed-stride interleaved records; the stride is the sum
of all attribute sizes. Decoding runs attribute by attribute over the whole
node, each attribute located by an accumulating byte cursor within the stride.
"""

import logging
import threading
from pathlib import Path
from typing import Union

import numpy as np

from ..errors import MetadataError, PointDataReadError, UnsupportedEncodingError
from .hierarchy import Node
from .metadata import DEFAULT_ENCODING, AttributeDescriptor, CloudMetadata

logger = logging.getLogger(__name__)

BufferLike = Union[bytes, bytearray, memoryview]

POINT_DTYPE = np.dtype([
    ('x', '<f4'),
    ('y', '<f4'),
    ('z', '<f4'),
    ('intensity', '<u2'),  # reserved, not decoded
    ('classification', 'i1'),
    ('r', 'u1'),
    ('g', 'u1'),
    ('b', 'u1'),
    ('a', 'u1'),
])

POSITION_SIZE = 12
COLOR_CHANNEL_SIZE = 2


class PointDataFile:
    """
    Byte-range reader over octree.bin.

    Each read seeks and reads under a lock, so loads issued from several
    threads never interleave on the shared file cursor.

    Args:
        path: Path to octree.bin
    """

    def __init__(self, path: str):
        self.path = Path(path)

        if not self.path.exists():
            raise FileNotFoundError(f"Point data file not found: {self.path}")

        self._file = open(self.path, 'rb')
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def read_range(self, offset: int, size: int) -> bytes:
        """
        Read exactly `size` bytes starting at `offset`.

        Raises:
            PointDataReadError: On a negative range, a closed file or a short read
        """
        if offset < 0 or size < 0:
            raise PointDataReadError(
                f"Invalid byte range [{offset}, {offset + size}) in {self.path}",
                offset=offset, size=size
            )

        with self._lock:
            if self._file.closed:
                raise PointDataReadError(
                    f"Cannot read [{offset}, {offset + size}): {self.path} is closed",
                    offset=offset, size=size
                )
            self._file.seek(offset)
            data = self._file.read(size)

        if len(data) != size:
            raise PointDataReadError(
                f"Short read of [{offset}, {offset + size}) in {self.path}: "
                f"got {len(data)} of {size} bytes",
                offset=offset, size=size
            )

        return data

    def close(self) -> None:
        with self._lock:
            self._file.close()

    def __enter__(self) -> 'PointDataFile':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"PointDataFile(path='{self.path}', closed={self.closed})"


def _to_byte(values: np.ndarray) -> np.ndarray:
    """Narrow 8- or 16-bit range colour samples to bytes."""
    values = values.astype(np.uint32)
    return np.where(values > 255, values // 256, values).astype(np.uint8)


def _attribute_bytes(records: np.ndarray, cursor: int, size: int) -> np.ndarray:
    return np.ascontiguousarray(records[:, cursor:cursor + size])


def _check_attribute(attribute: AttributeDescriptor, required: int) -> None:
    if attribute.size < required:
        raise MetadataError(
            f"Attribute '{attribute.name}' declares {attribute.size} bytes, "
            f"at least {required} are needed"
        )


def check_encoding(metadata: CloudMetadata) -> None:
    """
    Raises:
        UnsupportedEncodingError: If points are not stored as plain records
    """
    if metadata.encoding != DEFAULT_ENCODING:
        raise UnsupportedEncodingError(
            f"Encoding '{metadata.encoding}' is not supported, only '{DEFAULT_ENCODING}'"
        )


def decode_point_bytes(data: BufferLike, count: int, metadata: CloudMetadata) -> np.ndarray:
    """
    Decode `count` interleaved point records.

    Args:
        data: count * stride bytes of point records
        count: Number of points
        metadata: Attribute layout, scale and offset

    Returns:
        (count,) array of POINT_DTYPE
    """
    check_encoding(metadata)

    if count == 0:
        return np.zeros(0, dtype=POINT_DTYPE)

    stride = metadata.stride
    if len(data) < count * stride:
        raise PointDataReadError(
            f"Expected {count * stride} bytes for {count} points, got {len(data)}",
            size=count * stride
        )

    records = np.frombuffer(data, dtype=np.uint8, count=count * stride).reshape(count, stride)
    points = np.zeros(count, dtype=POINT_DTYPE)
    points['a'] = 255

    scale = metadata.scale.astype(np.float32)
    offset = metadata.offset.astype(np.float32)

    cursor = 0
    for attribute in metadata.attributes:
        if attribute.name == 'position':
            _check_attribute(attribute, POSITION_SIZE)
            raw = _attribute_bytes(records, cursor, POSITION_SIZE).view('<i4').astype(np.float32)
            for axis, key in enumerate(('x', 'y', 'z')):
                points[key] = raw[:, axis] * scale[axis] + offset[axis]

        elif 'rgb' in attribute.name:
            has_alpha = 'rgba' in attribute.name
            channels = 4 if has_alpha else 3
            _check_attribute(attribute, channels * COLOR_CHANNEL_SIZE)
            raw = _attribute_bytes(records, cursor, channels * COLOR_CHANNEL_SIZE).view('<u2')
            for channel, key in enumerate(('r', 'g', 'b', 'a')[:channels]):
                points[key] = _to_byte(raw[:, channel])

        elif attribute.name == 'classification':
            points['classification'] = records[:, cursor].view(np.int8)

        cursor += attribute.size

    return points


def decode_points(source: PointDataFile, node: Node, metadata: CloudMetadata) -> np.ndarray:
    """
    Decode all points held directly by a node.

    Args:
        source: Byte-range reader over octree.bin
        node: Node whose byte range is read
        metadata: Attribute layout, scale and offset

    Returns:
        (node.point_count,) array of POINT_DTYPE

    Raises:
        UnsupportedEncodingError: If the cloud is not plainly encoded
        PointDataReadError: If the file cannot supply the node's bytes
    """
    check_encoding(metadata)

    size = node.point_count * metadata.stride
    if node.byte_size != size:
        logger.warning(
            f"Node {node.name} declares {node.byte_size} bytes but "
            f"{node.point_count} points need {size}"
        )

    data = source.read_range(node.byte_offset, size)
    points = decode_point_bytes(data, node.point_count, metadata)

    logger.debug(f"Decoded {node.point_count} points for node {node.name}")
    return points
