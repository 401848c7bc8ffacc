"""
Curvature-based feature classification.

Per ring (scan order preserved, labels written in place on the RingScan):
  1. curvature and reliability for every point
  2. the span [k, n-1-k] is cut into feature_regions equal index ranges;
     points outside every region or failing reliability are EXCLUDED
  3. per region, independently:
       - descending curvature (stable): up to max_corner_less_sharp eligible
         points with c > threshold; the first max_corner_sharp are SHARP,
         the rest LESS_SHARP
       - ascending curvature (stable): up to max_surface_flat eligible points
         with c < threshold become FLAT, at most one per less_flat voxel
         of the ring (a candidate in an occupied voxel is skipped, not
         suppressed)
     every selection makes its +-k index neighbourhood, clipped to the
     region, ineligible
  4. remaining reliable in-region points with c < threshold are voxel
     downsampled per ring; survivors not sharing a voxel with a FLAT point
     become LESS_FLAT

Output subsets: sharp, less_sharp (= SHARP | LESS_SHARP), flat,
less_flat (= FLAT | LESS_FLAT).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np

from loam_frontend.common.op_report import OpReport
from loam_frontend.common.param_models import RegistrationParams
from loam_frontend.backend.operators.curvature import ring_curvature, ring_reliability
from loam_frontend.backend.operators.voxel_filter import voxel_downsample_indices, voxel_keys
from loam_frontend.frontend.sweep.sweep import FeatureLabel, RingScan, Sweep


@dataclass
class FeatureCloud:
    points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    intensities: np.ndarray = field(default_factory=lambda: np.zeros((0,)))

    def __len__(self) -> int:
        return int(self.points.shape[0])


@dataclass
class FeatureSets:
    sharp: FeatureCloud
    less_sharp: FeatureCloud
    flat: FeatureCloud
    less_flat: FeatureCloud

    def counts(self) -> dict:
        return {
            "sharp": len(self.sharp),
            "less_sharp": len(self.less_sharp),
            "flat": len(self.flat),
            "less_flat": len(self.less_flat),
        }


def region_bounds(n_points: int, half_window: int, n_regions: int) -> List[Tuple[int, int]]:
    """
    Inclusive (start, end) index ranges of the feature regions of a ring.

    Empty when the ring is too short to hold a full curvature window.
    """
    k = int(half_window)
    last = n_points - 1
    if last <= 2 * k:
        return []
    lo, hi = k, last - k
    bounds = []
    for j in range(n_regions):
        sp = (lo * (n_regions - j) + hi * j) // n_regions
        ep = (lo * (n_regions - 1 - j) + hi * (j + 1)) // n_regions - 1
        if ep >= sp:
            bounds.append((sp, ep))
    return bounds


def _mark_picked(eligible: np.ndarray, idx: int, k: int, sp: int, ep: int) -> None:
    # Neighbourhood suppression stays inside the region being selected.
    eligible[max(sp, idx - k): min(ep, idx + k) + 1] = False


def select_ring_features(ring: RingScan, params: RegistrationParams) -> None:
    """Compute curvature, reliability and labels of one ring in place."""
    n = len(ring)
    k = params.curvature_region
    thr = params.surface_curvature_threshold

    ring.curvature = ring_curvature(ring.points, k)
    ring.reliable = ring_reliability(
        ring.points,
        k,
        occlusion_sq_distance=params.occlusion_sq_distance,
        occlusion_weighted_distance=params.occlusion_weighted_distance,
        parallel_beam_ratio=params.parallel_beam_ratio,
    )
    labels = np.full((n,), FeatureLabel.EXCLUDED, dtype=np.int8)
    bounds = region_bounds(n, k, params.feature_regions)
    in_region = np.zeros((n,), dtype=bool)
    for sp, ep in bounds:
        in_region[sp:ep + 1] = True
    labels[in_region & ring.reliable] = FeatureLabel.UNCLASSIFIED

    curv = ring.curvature
    eligible = labels == FeatureLabel.UNCLASSIFIED
    leaf = params.less_flat_filter_size
    keys = voxel_keys(ring.points, leaf) if n else np.zeros((0, 3), dtype=np.int64)
    flat_voxels = set()

    for sp, ep in bounds:
        order = sp + np.argsort(-curv[sp:ep + 1], kind="stable")
        picked = 0
        for idx in order:
            if picked >= params.max_corner_less_sharp or curv[idx] <= thr:
                break
            if not eligible[idx]:
                continue
            picked += 1
            labels[idx] = FeatureLabel.SHARP if picked <= params.max_corner_sharp else FeatureLabel.LESS_SHARP
            _mark_picked(eligible, idx, k, sp, ep)

        order = sp + np.argsort(curv[sp:ep + 1], kind="stable")
        picked = 0
        for idx in order:
            if picked >= params.max_surface_flat or curv[idx] >= thr:
                break
            if not eligible[idx]:
                continue
            key = tuple(keys[idx])
            # At most one FLAT per voxel so the published less_flat cloud stays voxel-unique.
            if key in flat_voxels:
                continue
            flat_voxels.add(key)
            picked += 1
            labels[idx] = FeatureLabel.FLAT
            _mark_picked(eligible, idx, k, sp, ep)

    candidates = np.flatnonzero((labels == FeatureLabel.UNCLASSIFIED) & (curv < thr))
    if candidates.size:
        kept = candidates[voxel_downsample_indices(ring.points[candidates], leaf)]
        flat_idx = np.flatnonzero(labels == FeatureLabel.FLAT)
        if flat_idx.size and kept.size:
            shared = np.all(keys[kept][:, None, :] == keys[flat_idx][None, :, :], axis=2).any(axis=1)
            kept = kept[~shared]
        labels[kept] = FeatureLabel.LESS_FLAT

    ring.labels = labels


def _collect(sweep: Sweep, wanted: Tuple[FeatureLabel, ...]) -> FeatureCloud:
    pts = []
    inten = []
    for ring in sweep.rings:
        if not len(ring):
            continue
        mask = np.isin(ring.labels, [int(w) for w in wanted])
        if np.any(mask):
            pts.append(ring.points[mask])
            inten.append(ring.ring + ring.rel_times[mask] / sweep.scan_period)
    if not pts:
        return FeatureCloud()
    return FeatureCloud(points=np.concatenate(pts, axis=0), intensities=np.concatenate(inten))


def extract_features(sweep: Sweep, params: RegistrationParams) -> Tuple[FeatureSets, OpReport]:
    """Classify every ring of a (compensated) sweep and gather the four subsets."""
    unreliable = 0
    for ring in sweep.rings:
        select_ring_features(ring, params)
        unreliable += int(np.count_nonzero(~ring.reliable))

    features = FeatureSets(
        sharp=_collect(sweep, (FeatureLabel.SHARP,)),
        less_sharp=_collect(sweep, (FeatureLabel.SHARP, FeatureLabel.LESS_SHARP)),
        flat=_collect(sweep, (FeatureLabel.FLAT,)),
        less_flat=_collect(sweep, (FeatureLabel.FLAT, FeatureLabel.LESS_FLAT)),
    )
    metrics = dict(features.counts())
    metrics["n_points"] = sweep.n_points
    metrics["unreliable_points"] = unreliable
    report = OpReport(name="FeatureExtraction", exact=True, metrics=metrics)
    return features, report
