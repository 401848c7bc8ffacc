"""
Per-ring curvature and reliability.

Curvature of point i with window half-width k (clipped at the ring ends):

  c_i = || sum_{j in window, j != i} (p_j - p_i) ||^2

i.e. the squared deviation from the window mean scaled by the window size.
Straight lines and planes give c ~ 0; corners give large c.

Reliability (points failing either test stay in the full cloud but are never
selected as features):

  occlusion boundary
      |p_{i+1} - p_i|^2 > occlusion_sq_distance and, after scaling the
      farther point onto the nearer point's range, the depth-normalised
      distance is below occlusion_weighted_distance. The k+1 points on the
      far side of the edge are marked (they may be hidden from the next
      viewpoint).

  beam-parallel surface
      both neighbour gaps |p_{i+-1} - p_i|^2 exceed parallel_beam_ratio * |p_i|^2.
"""

from __future__ import annotations

import numpy as np

from loam_frontend.common import constants


def ring_curvature(points: np.ndarray, half_window: int) -> np.ndarray:
    """(n,) curvature for (n,3) points in scan order."""
    p = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = p.shape[0]
    if n == 0:
        return np.zeros((0,), dtype=np.float64)
    k = int(half_window)
    prefix = np.zeros((n + 1, 3), dtype=np.float64)
    np.cumsum(p, axis=0, out=prefix[1:])
    idx = np.arange(n)
    lo = np.maximum(idx - k, 0)
    hi = np.minimum(idx + k, n - 1)
    count = (hi - lo + 1)[:, None]
    diff = prefix[hi + 1] - prefix[lo] - count * p
    return np.einsum("ij,ij->i", diff, diff)


def _mark_ranges(n: int, starts: np.ndarray, stops: np.ndarray) -> np.ndarray:
    """Boolean mask with [start, stop) set for every pair (clipped to [0, n))."""
    delta = np.zeros((n + 1,), dtype=np.int64)
    starts = np.clip(starts, 0, n)
    stops = np.clip(stops, 0, n)
    np.add.at(delta, starts, 1)
    np.add.at(delta, stops, -1)
    return np.cumsum(delta[:n]) > 0


def ring_reliability(
    points: np.ndarray,
    half_window: int,
    occlusion_sq_distance: float = constants.OCCLUSION_SQ_DISTANCE_DEFAULT,
    occlusion_weighted_distance: float = constants.OCCLUSION_WEIGHTED_DISTANCE_DEFAULT,
    parallel_beam_ratio: float = constants.PARALLEL_BEAM_RATIO_DEFAULT,
) -> np.ndarray:
    """(n,) bool, False where the occlusion or beam-parallel test fires."""
    p = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = p.shape[0]
    k = int(half_window)
    reliable = np.ones((n,), dtype=bool)
    if n < 2 * k + 2:
        return reliable

    # Tested points: k <= i < n - 1 - k (both neighbours and the marked span exist).
    i = np.arange(k, n - 1 - k)
    cur = p[i]
    nxt = p[i + 1]
    prv = p[i - 1]
    diff_next = np.sum((nxt - cur) ** 2, axis=1)
    diff_prev = np.sum((cur - prv) ** 2, axis=1)
    depth_cur = np.linalg.norm(cur, axis=1)
    depth_next = np.linalg.norm(nxt, axis=1)

    safe_cur = np.where(depth_cur > 0.0, depth_cur, 1.0)
    safe_next = np.where(depth_next > 0.0, depth_next, 1.0)
    near_is_next = depth_cur > depth_next
    # Scale the farther point onto the nearer range and compare directions.
    weighted_far_cur = np.linalg.norm(nxt - cur * (depth_next / safe_cur)[:, None], axis=1) / safe_next
    weighted_far_next = np.linalg.norm(nxt * (depth_cur / safe_next)[:, None] - cur, axis=1) / safe_cur
    weighted = np.where(near_is_next, weighted_far_cur, weighted_far_next)

    edge = diff_next > occlusion_sq_distance
    occluded = edge & (weighted < occlusion_weighted_distance)

    far_before = occluded & near_is_next
    far_after = occluded & ~near_is_next
    mask = _mark_ranges(
        n,
        np.concatenate([i[far_before] - k, i[far_after] + 1]),
        np.concatenate([i[far_before] + 1, i[far_after] + k + 2]),
    )

    sq_range = depth_cur * depth_cur
    parallel = (
        ~far_before
        & (diff_next > parallel_beam_ratio * sq_range)
        & (diff_prev > parallel_beam_ratio * sq_range)
    )
    mask[i[parallel]] = True

    reliable[mask] = False
    return reliable
