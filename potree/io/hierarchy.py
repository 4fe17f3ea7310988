"""
Octree Hierarchy Decoding

Reconstructs the node octree from the packed hierarchy.bin index, resolving
proxy nodes whose subtrees are paged out into separate chunks.

Nodes live in a flat arena owned by a Hierarchy; parent and child links are
arena indices rather than object references.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import numpy as np

from ..errors import HierarchyMalformedError
from ..utils.aabb import AABB
from .metadata import CloudMetadata

logger = logging.getLogger(__name__)

BufferLike = Union[bytes, bytearray, memoryview]

# One hierarchy record, packed little-endian without padding (22 bytes)
HIERARCHY_RECORD_DTYPE = np.dtype([
    ('type', 'u1'),
    ('child_mask', 'u1'),
    ('num_points', '<u4'),
    ('byte_offset', '<i8'),
    ('byte_size', '<i8'),
])
RECORD_SIZE = HIERARCHY_RECORD_DTYPE.itemsize

OCTANT_DIGITS = "01234567"


class NodeType(IntEnum):
    """On-disk node type codes."""
    INTERIOR = 0
    LEAF = 1
    PROXY = 2


@dataclass(eq=False)
class Node:
    """
    One octree cell.

    Attributes:
        path: Octant digits from the root ('' for the root)
        bounds: Cell bounds
        index: Position of this node in the hierarchy arena
        kind: INTERIOR, LEAF or PROXY
        point_count: Number of points held directly by this node
        byte_offset: Start of the node's points in octree.bin
            (or of its chunk in hierarchy.bin for proxies)
        byte_size: Length of that byte range
        parent: Arena index of the parent (None for the root)
        children: Eight optional arena indices, one per octant code
        points: Decoded point records while the node is loaded
    """
    path: str
    bounds: AABB
    index: int = -1
    kind: NodeType = NodeType.INTERIOR
    point_count: int = 0
    byte_offset: int = 0
    byte_size: int = 0
    parent: Optional[int] = None
    children: List[Optional[int]] = field(default_factory=lambda: [None] * 8)
    points: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        if any(c not in OCTANT_DIGITS for c in self.path):
            raise ValueError(f"Node path must only contain octant digits 0-7, got '{self.path}'")
        if len(self.children) != 8:
            raise ValueError(f"Node must have 8 child slots, got {len(self.children)}")

    @property
    def name(self) -> str:
        """Potree node name ('r' followed by the path)."""
        return "r" + self.path

    @property
    def level(self) -> int:
        """Depth below the root."""
        return len(self.path)

    @property
    def is_loaded(self) -> bool:
        return self.points is not None

    @property
    def is_leaf(self) -> bool:
        """Check if this node has no child cells."""
        return self.num_children == 0

    @property
    def num_children(self) -> int:
        return sum(1 for c in self.children if c is not None)

    def child_octants(self) -> List[int]:
        """Octant codes of the present children, ascending."""
        return [i for i, c in enumerate(self.children) if c is not None]

    def __repr__(self) -> str:
        return (f"Node(name={self.name}, kind={self.kind.name}, points={self.point_count}, "
                f"children={self.num_children}, loaded={self.is_loaded})")


@dataclass(frozen=True)
class ChunkInfo:
    """Record of one decoded hierarchy chunk."""
    offset: int
    byte_size: int
    num_records: int
    nesting: int
    root_path: str


class Hierarchy:
    """
    Decoded octree: a node arena plus a lookup table keyed by path.

    Nodes are flattened in depth-first pre-order from the root, children
    visited in ascending octant order.
    """

    def __init__(self, arena: List[Node], chunks: Optional[List[ChunkInfo]] = None):
        if not arena:
            raise HierarchyMalformedError("Hierarchy has no root node")

        self._arena = arena
        self.chunks = list(chunks or [])
        self._nodes = list(self.traverse())
        self._by_path: Dict[str, Node] = {node.path: node for node in self._nodes}

    @property
    def root(self) -> Node:
        return self._arena[0]

    @property
    def arena_size(self) -> int:
        """Number of nodes allocated by the decoder."""
        return len(self._arena)

    @property
    def nodes(self) -> List[Node]:
        """Flattened node table."""
        return self._nodes

    def get(self, path: str) -> Optional[Node]:
        """Exact lookup by path, None when absent."""
        return self._by_path.get(path)

    def parent_of(self, node: Node) -> Optional[Node]:
        if node.parent is None:
            return None
        return self._arena[node.parent]

    def children_of(self, node: Node) -> List[Node]:
        """Present children of a node in octant order."""
        return [self._arena[c] for c in node.children if c is not None]

    def traverse(self, start: Optional[Node] = None) -> Iterator[Node]:
        """
        Depth-first pre-order walk.

        Args:
            start: Subtree root (defaults to the hierarchy root)

        Yields:
            Nodes of the subtree, start first
        """
        stack = [start if start is not None else self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self._arena[c] for c in reversed(node.children) if c is not None)

    def __getitem__(self, index: int) -> Node:
        return self._arena[index]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __contains__(self, path: object) -> bool:
        return path in self._by_path

    def __repr__(self) -> str:
        return f"Hierarchy(nodes={len(self)}, chunks={len(self.chunks)})"


class HierarchyDecoder:
    """
    Decodes hierarchy chunks into a node arena.

    A chunk is a run of 22-byte records describing nodes in the order they
    were discovered: record i populates the i-th node of a worklist seeded
    with the chunk's root. Children named by a record's child mask are
    appended to the worklist. A proxy record points to another chunk of the
    same buffer whose first record re-describes the proxy node itself.

    Args:
        buffer: Whole hierarchy.bin content
        bounds: Root node bounds
        max_chunk_depth: Maximum nesting of proxy chunks below the first chunk
        max_level: Deepest node level a record may create (None for no limit)
    """

    def __init__(
        self,
        buffer: BufferLike,
        bounds: AABB,
        max_chunk_depth: int,
        max_level: Optional[int] = None
    ):
        if max_chunk_depth < 0:
            raise ValueError(f"max_chunk_depth must be non-negative, got {max_chunk_depth}")
        if max_level is not None and max_level < 0:
            raise ValueError(f"max_level must be non-negative, got {max_level}")

        self.buffer = buffer
        self.bounds = bounds
        self.max_chunk_depth = max_chunk_depth
        self.max_level = max_level

        self._arena: List[Node] = []
        self._chunks: List[ChunkInfo] = []

    def decode(self, offset: int, byte_size: int) -> Hierarchy:
        """
        Decode the chunk at (offset, byte_size) and every chunk it links to.

        Returns:
            Hierarchy rooted at a node with empty path and the decoder bounds

        Raises:
            HierarchyMalformedError: On malformed or out-of-range chunks, chunks
                whose record count differs from the nodes they discover, nodes
                deeper than max_level, or proxy nesting deeper than max_chunk_depth
        """
        self._arena = []
        self._chunks = []

        root = self._new_node("", self.bounds, parent=None)
        self._decode_chunk(root, offset, byte_size, nesting=0)

        hierarchy = Hierarchy(self._arena, self._chunks)
        logger.debug(
            f"Decoded hierarchy: {len(hierarchy)} nodes from {len(self._chunks)} chunks"
        )
        return hierarchy

    def _new_node(self, path: str, bounds: AABB, parent: Optional[int]) -> Node:
        node = Node(path=path, bounds=bounds, index=len(self._arena), parent=parent)
        self._arena.append(node)
        return node

    def _read_records(self, offset: int, byte_size: int) -> np.ndarray:
        if byte_size < 0 or byte_size % RECORD_SIZE != 0:
            raise HierarchyMalformedError(
                f"Chunk size {byte_size} at offset {offset} is not a multiple of "
                f"the {RECORD_SIZE}-byte record size"
            )
        if offset < 0 or offset + byte_size > len(self.buffer):
            raise HierarchyMalformedError(
                f"Chunk [{offset}, {offset + byte_size}) lies outside the "
                f"{len(self.buffer)}-byte hierarchy buffer"
            )

        if byte_size == 0:
            return np.empty(0, dtype=HIERARCHY_RECORD_DTYPE)

        return np.frombuffer(
            self.buffer,
            dtype=HIERARCHY_RECORD_DTYPE,
            count=byte_size // RECORD_SIZE,
            offset=offset,
        )

    def _decode_chunk(self, node: Node, offset: int, byte_size: int, nesting: int) -> None:
        if nesting > self.max_chunk_depth:
            raise HierarchyMalformedError(
                f"Proxy chunk nesting exceeds maximum depth {self.max_chunk_depth} "
                f"at node '{node.name}'"
            )

        records = self._read_records(offset, byte_size)
        self._chunks.append(ChunkInfo(
            offset=offset,
            byte_size=byte_size,
            num_records=len(records),
            nesting=nesting,
            root_path=node.path,
        ))
        logger.debug(
            f"Decoding chunk at {offset} ({len(records)} records) for node '{node.name}'"
        )

        worklist = [node]

        for i, record in enumerate(records):
            if i >= len(worklist):
                raise HierarchyMalformedError(
                    f"Chunk at offset {offset} has record {i} but only "
                    f"{len(worklist)} nodes were discovered"
                )

            current = worklist[i]

            try:
                current.kind = NodeType(int(record['type']))
            except ValueError:
                raise HierarchyMalformedError(
                    f"Unknown node type {int(record['type'])} for node '{current.name}'"
                )
            current.point_count = int(record['num_points'])
            current.byte_offset = int(record['byte_offset'])
            current.byte_size = int(record['byte_size'])

            if current.kind == NodeType.PROXY:
                self._decode_chunk(current, current.byte_offset, current.byte_size, nesting + 1)
                continue

            child_mask = int(record['child_mask'])
            if child_mask and self.max_level is not None and current.level >= self.max_level:
                raise HierarchyMalformedError(
                    f"Node '{current.name}' at level {current.level} declares children "
                    f"beyond the maximum level {self.max_level}"
                )

            for octant in range(8):
                if not child_mask & (1 << octant):
                    continue

                child = self._new_node(
                    current.path + OCTANT_DIGITS[octant],
                    current.bounds.octant(octant),
                    parent=current.index,
                )
                current.children[octant] = child.index
                worklist.append(child)

        if len(worklist) > len(records):
            raise HierarchyMalformedError(
                f"Chunk at offset {offset} ends after {len(records)} records, "
                f"node '{worklist[len(records)].name}' was never described"
            )


def decode_hierarchy(
    buffer: BufferLike,
    metadata: CloudMetadata,
    max_chunk_depth: Optional[int] = None
) -> Hierarchy:
    """
    Decode a whole hierarchy.bin buffer.

    Args:
        buffer: hierarchy.bin content
        metadata: Cloud metadata (bounds and first chunk size)
        max_chunk_depth: Proxy nesting cap, defaults to the declared hierarchy depth

    Node levels are always capped at the declared hierarchy depth.

    Returns:
        Decoded Hierarchy
    """
    if max_chunk_depth is None:
        max_chunk_depth = metadata.hierarchy.depth

    first_chunk_size = metadata.hierarchy.first_chunk_size
    if len(buffer) < first_chunk_size:
        raise HierarchyMalformedError(
            f"Hierarchy buffer holds {len(buffer)} bytes, first chunk needs {first_chunk_size}"
        )

    decoder = HierarchyDecoder(
        buffer, metadata.bounding_box, max_chunk_depth, max_level=metadata.hierarchy.depth
    )
    return decoder.decode(0, first_chunk_size)


def load_hierarchy(
    hierarchy_path: str,
    metadata: CloudMetadata,
    max_chunk_depth: Optional[int] = None,
    validate: bool = False
) -> Hierarchy:
    """
    Read and decode a hierarchy.bin file.

    Args:
        hierarchy_path: Path to hierarchy.bin
        metadata: Cloud metadata
        max_chunk_depth: Proxy nesting cap
        validate: Whether to validate tree structure after decoding

    Raises:
        FileNotFoundError: If the file doesn't exist
        HierarchyMalformedError: If decoding or validation fails
    """
    hierarchy_path = Path(hierarchy_path)

    if not hierarchy_path.exists():
        raise FileNotFoundError(f"Hierarchy file not found: {hierarchy_path}")

    buffer = hierarchy_path.read_bytes()
    hierarchy = decode_hierarchy(buffer, metadata, max_chunk_depth=max_chunk_depth)

    if validate:
        validate_hierarchy(hierarchy)

    logger.debug(f"Loaded hierarchy from {hierarchy_path}: {hierarchy}")
    return hierarchy


def validate_hierarchy(hierarchy: Hierarchy) -> None:
    """
    Validate octree structure.

    Checks:
    - Paths extend the parent path by one octant digit
    - Child bounds equal the matching octant of the parent bounds
    - Parent-child links are bidirectional
    - No node is reachable twice and every arena node is reachable

    Raises:
        HierarchyMalformedError: If validation fails
    """
    visited = set()

    for node in hierarchy.traverse():
        if node.index in visited:
            raise HierarchyMalformedError(f"Node {node.name} reached twice")
        visited.add(node.index)

        for octant, child_index in enumerate(node.children):
            if child_index is None:
                continue
            child = hierarchy[child_index]

            if child.parent != node.index:
                raise HierarchyMalformedError(
                    f"Child {octant} of {node.name} has incorrect parent reference"
                )
            if child.path != node.path + OCTANT_DIGITS[octant]:
                raise HierarchyMalformedError(
                    f"Path mismatch: child {octant} of {node.name} is named {child.name}"
                )
            if child.bounds != node.bounds.octant(octant):
                raise HierarchyMalformedError(
                    f"Bounds of {child.name} are not octant {octant} of {node.name}"
                )

    arena_size = hierarchy.arena_size
    if len(visited) != arena_size:
        raise HierarchyMalformedError(
            f"{arena_size - len(visited)} nodes are unreachable from the root"
        )

    logger.debug(f"Hierarchy validation passed: {len(visited)} nodes validated")


def get_hierarchy_stats(hierarchy: Hierarchy) -> dict:
    """
    Compute statistics about the octree.

    Returns:
        Dictionary with statistics:
        - num_nodes: Total number of nodes
        - num_leaves: Nodes without children
        - num_chunks: Decoded hierarchy chunks
        - max_depth: Deepest node level
        - total_points: Sum of per-node point counts
        - nodes_per_level / points_per_level: Per-level breakdown
    """
    nodes_per_level = {}
    points_per_level = {}
    for node in hierarchy:
        nodes_per_level[node.level] = nodes_per_level.get(node.level, 0) + 1
        points_per_level[node.level] = points_per_level.get(node.level, 0) + node.point_count

    stats = {
        'num_nodes': len(hierarchy),
        'num_leaves': sum(1 for n in hierarchy if n.is_leaf),
        'num_chunks': len(hierarchy.chunks),
        'max_depth': max(nodes_per_level),
        'total_points': sum(points_per_level.values()),
        'nodes_per_level': nodes_per_level,
        'points_per_level': points_per_level,
    }

    return stats
