"""
Voxel-grid downsampling that keeps measured points.

Each occupied voxel of side leaf_size is represented by the input point
closest to the voxel centroid (lowest index on ties), so the survivors keep
their ring, time and label bookkeeping.
"""

from __future__ import annotations

import numpy as np


def voxel_keys(points: np.ndarray, leaf_size: float) -> np.ndarray:
    """(N,3) int64 voxel coordinates."""
    if leaf_size <= 0.0:
        raise ValueError(f"leaf_size must be > 0, got {leaf_size}")
    return np.floor(np.asarray(points, dtype=np.float64) / leaf_size).astype(np.int64)


def voxel_downsample_indices(points: np.ndarray, leaf_size: float) -> np.ndarray:
    """Sorted indices of the kept points, at most one per voxel."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = points.shape[0]
    if n == 0:
        return np.zeros((0,), dtype=np.int64)

    _, inverse = np.unique(voxel_keys(points, leaf_size), axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    n_vox = int(inverse.max()) + 1
    counts = np.bincount(inverse, minlength=n_vox).astype(np.float64)
    centroids = np.zeros((n_vox, 3), dtype=np.float64)
    np.add.at(centroids, inverse, points)
    centroids /= counts[:, None]

    dist = np.sum((points - centroids[inverse]) ** 2, axis=1)
    # Order by (voxel, distance, index); the first entry of each voxel wins.
    order = np.lexsort((np.arange(n), dist, inverse))
    first = np.ones((n,), dtype=bool)
    first[1:] = inverse[order][1:] != inverse[order][:-1]
    return np.sort(order[first])


def voxel_filter(points: np.ndarray, leaf_size: float) -> np.ndarray:
    """Downsampled (M,3) points, M <= N."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return points[voxel_downsample_indices(points, leaf_size)]
