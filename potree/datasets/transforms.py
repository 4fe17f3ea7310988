"""
Node Sample Transforms

Transforms applied to decoded node samples before batching.
"""

import numpy as np
import torch
from typing import Dict, Any, List, Sequence
import logging

logger = logging.getLogger(__name__)

PER_POINT_KEYS = ('coord', 'feat', 'classification')


class Compose:
    """Compose multiple transforms together."""

    def __init__(self, transforms: List):
        """
        Initialize composed transforms.

        Args:
            transforms: List of transform objects
        """
        self.transforms = transforms

    def __call__(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply all transforms sequentially."""
        for transform in self.transforms:
            data = transform(data)
        return data

    def __repr__(self) -> str:
        format_string = self.__class__.__name__ + '('
        for t in self.transforms:
            format_string += '\n    {}'.format(t)
        format_string += '\n)'
        return format_string


class Recenter:
    """
    Shift coordinates so that `origin` maps to zero.

    Decoded positions are world coordinates; pass the cloud bounding box
    minimum to work in cloud-local coordinates.
    """

    def __init__(self, origin: Sequence[float]):
        self.origin = np.asarray(origin, dtype=np.float64).reshape(3)

    def __call__(self, data: Dict[str, Any]) -> Dict[str, Any]:
        coord = data['coord']
        if isinstance(coord, torch.Tensor):
            coord = coord.numpy()

        # subtract in float64, positions can be far from the origin
        data['coord'] = (coord.astype(np.float64) - self.origin).astype(np.float32)
        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(origin={self.origin.tolist()})"


class RandomSubsample:
    """
    Randomly keep at most `max_points` points of a node.

    Nodes with fewer points pass through unchanged.
    """

    def __init__(self, max_points: int, p: float = 1.0):
        """
        Initialize random subsampling.

        Args:
            max_points: Maximum number of points kept per node
            p: Probability of applying transform
        """
        if max_points <= 0:
            raise ValueError(f"max_points must be positive, got {max_points}")
        self.max_points = max_points
        self.p = p

    def __call__(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply random subsampling."""
        if np.random.rand() > self.p:
            return data

        num_points = len(data['coord'])
        if num_points <= self.max_points:
            return data

        keep_indices = np.random.choice(num_points, self.max_points, replace=False)
        keep_indices = np.sort(keep_indices)

        for key in PER_POINT_KEYS:
            if key not in data:
                continue
            value = data[key]
            if isinstance(value, torch.Tensor):
                value = value.numpy()
            data[key] = value[keep_indices]

        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(max_points={self.max_points}, p={self.p})"


class ToTensor:
    """Convert numpy arrays to PyTorch tensors."""

    def __call__(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Convert coord, feat and classification to tensors."""
        if 'coord' in data and isinstance(data['coord'], np.ndarray):
            data['coord'] = torch.from_numpy(data['coord']).float()

        if 'feat' in data and isinstance(data['feat'], np.ndarray):
            data['feat'] = torch.from_numpy(data['feat']).float()

        if 'classification' in data and isinstance(data['classification'], np.ndarray):
            data['classification'] = torch.from_numpy(data['classification']).long()

        return data

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
