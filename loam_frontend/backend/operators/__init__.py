"""
Sweep-level operators.

Each operator runs to completion on one sweep and returns its result together
with an OpReport declaring any fallback it took.
"""

from loam_frontend.backend.operators.curvature import (
    ring_curvature,
    ring_reliability,
)

from loam_frontend.backend.operators.voxel_filter import (
    voxel_downsample_indices,
    voxel_filter,
)

from loam_frontend.backend.operators.feature_selection import (
    FeatureCloud,
    FeatureSets,
    extract_features,
    region_bounds,
    select_ring_features,
)

from loam_frontend.backend.operators.motion_compensation import (
    SweepMotionSummary,
    compensate_points,
    compensate_sweep,
)

__all__ = [
    "ring_curvature",
    "ring_reliability",
    "voxel_downsample_indices",
    "voxel_filter",
    "FeatureCloud",
    "FeatureSets",
    "extract_features",
    "region_bounds",
    "select_ring_features",
    "SweepMotionSummary",
    "compensate_points",
    "compensate_sweep",
]
