"""
Potree Node Dataset

Exposes the nodes of a PotreeCloud as a PyTorch dataset, one sample per
octree node, decoding point buffers on access.
"""

import numpy as np
import torch
from torch.utils.data import Dataset
from typing import Dict, Any, Optional, List, Callable, Sequence
import logging

from ..cloud import PotreeCloud
from ..io.hierarchy import Node

logger = logging.getLogger(__name__)


def points_to_sample(node: Node) -> Dict[str, Any]:
    """
    Convert a loaded node's point records to a sample dictionary.

    Returns:
        Dictionary with:
        - 'coord': (N, 3) float32 world coordinates
        - 'feat': (N, 4) float32 RGBA in [0, 1]
        - 'classification': (N,) int64
        - 'node_path', 'level'
    """
    if not node.is_loaded:
        raise ValueError(f"Node {node.name} is not loaded")

    points = node.points
    coord = np.stack([points['x'], points['y'], points['z']], axis=1).astype(np.float32)
    feat = np.stack(
        [points['r'], points['g'], points['b'], points['a']], axis=1
    ).astype(np.float32) / 255.0

    return {
        'coord': coord,
        'feat': feat,
        'classification': points['classification'].astype(np.int64),
        'node_path': node.path,
        'level': node.level,
    }


class PotreeNodeDataset(Dataset):
    """
    Dataset over the nodes of a Potree cloud.

    Each item loads one node, converts its points to arrays and, unless
    keep_loaded is set, unloads the node again so memory stays bounded
    while iterating large clouds.

    Use num_workers=0 in DataLoaders: the cloud owns an open file handle
    and is not meant to be shared across worker processes.
    """

    def __init__(
        self,
        cloud: PotreeCloud,
        paths: Optional[Sequence[str]] = None,
        min_points: int = 0,
        max_level: Optional[int] = None,
        transform: Optional[Callable] = None,
        keep_loaded: bool = False
    ):
        """
        Initialize node dataset.

        Args:
            cloud: Opened PotreeCloud
            paths: Node paths to include (defaults to every node)
            min_points: Skip nodes holding fewer points
            max_level: Skip nodes deeper than this level
            transform: Transform or Compose to apply to each sample
            keep_loaded: Leave nodes loaded after sampling
        """
        super().__init__()

        self.cloud = cloud
        self.transform = transform
        self.keep_loaded = keep_loaded

        if paths is None:
            candidates = list(cloud.nodes)
        else:
            candidates = []
            for path in paths:
                node = cloud.find_node(path)
                if node is None:
                    raise ValueError(f"Node not found in cloud: '{path}'")
                candidates.append(node)

        self.nodes: List[Node] = [
            node for node in candidates
            if node.point_count >= min_points
            and (max_level is None or node.level <= max_level)
        ]

        if len(self.nodes) == 0:
            raise ValueError(
                f"No nodes selected from {cloud.path} "
                f"(min_points={min_points}, max_level={max_level})"
            )

        logger.info(
            f"Initialized PotreeNodeDataset: {len(self.nodes)} of {len(cloud)} nodes"
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, idx: int) -> Dict[str, Any]:
        """
        Get the sample of one node.

        Returns:
            Dictionary with 'coord', 'feat', 'classification', 'node_path', 'level'
        """
        node = self.nodes[idx]
        was_loaded = node.is_loaded

        if not was_loaded:
            self.cloud.load(node.path)

        try:
            data = points_to_sample(node)
        finally:
            if not (was_loaded or self.keep_loaded):
                self.cloud.unload(node.path)

        if self.transform is not None:
            data = self.transform(data)

        return data

    def get_node_path(self, idx: int) -> str:
        """Get node path for a given index."""
        return self.nodes[idx].path

    def __repr__(self) -> str:
        return (
            f"PotreeNodeDataset(num_nodes={len(self)}, "
            f"keep_loaded={self.keep_loaded}, "
            f"cloud='{self.cloud.path}')"
        )


def create_dataloader(
    dataset: PotreeNodeDataset,
    batch_size: int = 8,
    shuffle: bool = False,
    pin_memory: bool = False,
    drop_last: bool = False
) -> torch.utils.data.DataLoader:
    """
    Create DataLoader for a node dataset with custom collation.

    Args:
        dataset: PotreeNodeDataset instance
        batch_size: Nodes per batch
        shuffle: Whether to shuffle nodes
        pin_memory: Whether to pin memory for faster GPU transfer
        drop_last: Whether to drop last incomplete batch

    Returns:
        DataLoader instance
    """
    from .batch import collate_fn

    loader = torch.utils.data.DataLoader(
        dataset,
        batch_size=batch_size,
        shuffle=shuffle,
        num_workers=0,
        collate_fn=collate_fn,
        pin_memory=pin_memory,
        drop_last=drop_last
    )

    return loader
