"""
Potree Datasets Module

Serves decoded octree nodes as PyTorch samples.
Requires the 'datasets' extra (torch).
"""

from .node_dataset import PotreeNodeDataset, create_dataloader, points_to_sample
from .batch import collate_fn
from .transforms import Compose, Recenter, RandomSubsample, ToTensor

__all__ = [
    "PotreeNodeDataset", "create_dataloader", "points_to_sample", "collate_fn",
    "Compose", "Recenter", "RandomSubsample", "ToTensor",
]
