"""
Batching Utilities

Custom collation for batching variable-size octree node samples.
"""

import torch
import numpy as np
from typing import List, Dict, Any
import logging

logger = logging.getLogger(__name__)

META_KEYS = ['coord', 'feat', 'node_path', 'level']


def _as_tensor(value, dtype: torch.dtype) -> torch.Tensor:
    if isinstance(value, np.ndarray):
        value = torch.from_numpy(value)
    return value.to(dtype)


def collate_fn(batch: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Collate function for batching node samples.

    Handles variable-size nodes by concatenating coordinates and features
    and computing offset boundaries.

    Args:
        batch: List of sample dictionaries from PotreeNodeDataset.__getitem__()
               Each sample contains:
               - 'coord': (N_i, 3) coordinates
               - 'feat': (N_i, C) features
               - 'node_path': str
               - 'level': int
               - Optional per-point fields, e.g. 'classification'

    Returns:
        Batched dictionary with:
        - 'coord': (sum(N_i), 3) concatenated coordinates
        - 'feat': (sum(N_i), C) concatenated features
        - 'offset': (B+1,) boundary indices [0, N_0, N_0+N_1, ...]
        - 'node_paths': List[str] of length B
        - 'levels': (B,) long tensor
        - Optional fields, concatenated when shapes allow
    """
    if not batch:
        raise ValueError("Cannot collate empty batch")

    batch_size = len(batch)

    coords = []
    feats = []
    node_paths = []
    levels = []
    offsets = [0]

    optional_fields = {}

    for sample in batch:
        coord = _as_tensor(sample['coord'], torch.float32)
        feat = _as_tensor(sample['feat'], torch.float32)

        # Validate shapes
        if coord.dim() != 2 or coord.shape[1] != 3:
            raise ValueError(f"Expected coord shape (N, 3), got {tuple(coord.shape)}")
        if feat.dim() != 2:
            raise ValueError(f"Expected feat shape (N, C), got {tuple(feat.shape)}")
        if coord.shape[0] != feat.shape[0]:
            raise ValueError(
                f"Coord and feat must have same N: {coord.shape[0]} != {feat.shape[0]}"
            )

        coords.append(coord)
        feats.append(feat)
        node_paths.append(sample.get('node_path', ''))
        levels.append(sample.get('level', len(sample.get('node_path', ''))))
        offsets.append(offsets[-1] + coord.shape[0])

        for key in sample:
            if key not in META_KEYS:
                value = sample[key]
                if isinstance(value, np.ndarray):
                    value = torch.from_numpy(value)
                optional_fields.setdefault(key, []).append(value)

    coord = torch.cat(coords, dim=0)
    feat = torch.cat(feats, dim=0)
    offset = torch.tensor(offsets, dtype=torch.long)

    output = {
        'coord': coord,
        'feat': feat,
        'offset': offset,
        'node_paths': node_paths,
        'levels': torch.tensor(levels, dtype=torch.long),
        'batch_size': batch_size
    }

    for key, values in optional_fields.items():
        if all(isinstance(v, torch.Tensor) for v in values):
            shapes = [v.shape[1:] for v in values]
            if all(s == shapes[0] for s in shapes):
                output[key] = torch.cat(values, dim=0)
            else:
                output[key] = values
        else:
            output[key] = values

    logger.debug(
        f"Collated batch: {batch_size} nodes, {coord.shape[0]} total points"
    )

    return output


def split_batch_by_offset(
    data: torch.Tensor,
    offset: torch.Tensor
) -> List[torch.Tensor]:
    """
    Split batched tensor back into individual nodes using offset.

    Args:
        data: (sum(N_i), ...) batched tensor
        offset: (B+1,) offset boundaries

    Returns:
        List of B tensors, each (N_i, ...)
    """
    nodes = []
    batch_size = len(offset) - 1

    for i in range(batch_size):
        start = offset[i].item()
        end = offset[i + 1].item()
        nodes.append(data[start:end])

    return nodes


def compute_batch_stats(batch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compute statistics about a batch.

    Returns:
        Statistics dictionary with:
        - num_nodes: Number of nodes in batch
        - total_points: Total number of points
        - points_per_node: List of point counts per node
        - mean_points / min_points / max_points
    """
    offset = batch['offset']
    batch_size = len(offset) - 1

    points_per_node = [
        (offset[i + 1] - offset[i]).item()
        for i in range(batch_size)
    ]

    stats = {
        'num_nodes': batch_size,
        'total_points': batch['coord'].shape[0],
        'points_per_node': points_per_node,
        'mean_points': np.mean(points_per_node),
        'min_points': min(points_per_node),
        'max_points': max(points_per_node),
    }

    return stats
