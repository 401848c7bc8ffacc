"""
Sweep data model.

A Sweep owns one rotation's worth of points grouped by ring. Each ring is held
as a structure of arrays (RingScan) so the per-ring operators can work on
contiguous NumPy data while keeping the original scan order intact:

  points      (n,3) float64   position, sensor frame (rewritten by compensation)
  rel_times   (n,)  float64   acquisition time relative to sweep start
  curvature   (n,)  float64   smoothness value (NaN until classified)
  labels      (n,)  int8      FeatureLabel
  reliable    (n,)  bool      False next to occlusions / on beam-parallel surfaces
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List

import numpy as np


class FeatureLabel(IntEnum):
    UNCLASSIFIED = 0
    SHARP = 1
    LESS_SHARP = 2
    FLAT = 3
    LESS_FLAT = 4
    EXCLUDED = 5


@dataclass
class RingScan:
    ring: int
    points: np.ndarray
    rel_times: np.ndarray
    curvature: np.ndarray = None
    labels: np.ndarray = None
    reliable: np.ndarray = None

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        self.rel_times = np.asarray(self.rel_times, dtype=np.float64).reshape(-1)
        n = self.points.shape[0]
        if self.rel_times.shape[0] != n:
            raise ValueError(f"ring {self.ring}: {n} points but {self.rel_times.shape[0]} times")
        if self.curvature is None:
            self.curvature = np.full((n,), np.nan, dtype=np.float64)
        if self.labels is None:
            self.labels = np.full((n,), FeatureLabel.UNCLASSIFIED, dtype=np.int8)
        if self.reliable is None:
            self.reliable = np.ones((n,), dtype=bool)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    @classmethod
    def empty(cls, ring: int) -> "RingScan":
        return cls(ring=ring, points=np.zeros((0, 3)), rel_times=np.zeros((0,)))


@dataclass
class Sweep:
    """One full rotation: start stamp, per-ring points, scan period."""
    start_stamp: float
    scan_period: float
    rings: List[RingScan] = field(default_factory=list)

    @property
    def n_points(self) -> int:
        return sum(len(r) for r in self.rings)

    def end_relative_time(self) -> float:
        """Latest relative acquisition time in the sweep (0 if empty)."""
        latest = [float(r.rel_times.max()) for r in self.rings if len(r)]
        return max(latest) if latest else 0.0

    def cloud(self) -> np.ndarray:
        """(N,3) all points, ring by ring in scan order."""
        if not self.rings:
            return np.zeros((0, 3))
        return np.concatenate([r.points for r in self.rings], axis=0)

    def intensities(self) -> np.ndarray:
        """(N,) ring + relative_time / scan_period per point, same order as cloud()."""
        if not self.rings:
            return np.zeros((0,))
        return np.concatenate(
            [r.ring + r.rel_times / self.scan_period for r in self.rings], axis=0
        )
