"""
Sweep accumulator: streaming points -> per-ring buffers -> Sweep.

Points are appended one at a time (or as a batch) with their acquisition time
relative to the current sweep start. A streaming accumulator
(detect_boundaries=True) completes a sweep when either:
  - the azimuth phase wraps past the configured start angle, or
  - a point's relative time reaches scan_period.
The point that triggers completion is held back and opens the next sweep
(whose start stamp is the triggering point's absolute time).

With detect_boundaries=False every message is one whole sweep: the caller
calls complete() after append_cloud(), and points at or beyond scan_period
are excluded. Batches in this mode are validated and bucketed with array
masks in one pass.

Excluded (logged, counted, never raised):
  - ring index outside [0, n_scan_rings) or not an integer
  - non-finite coordinates or relative time
  - negative relative time
  - exact duplicate of the previous point on the same ring
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from loam_frontend.common.param_models import RegistrationParams
from loam_frontend.frontend.sweep.sweep import RingScan, Sweep

_logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def azimuth_phase(points: np.ndarray, start_angle: float = 0.0, clockwise: bool = True) -> np.ndarray:
    """
    Rotation phase in [0, 2*pi) of each point measured from start_angle in the
    direction the sensor spins. points: (N,3) or (3,).
    """
    p = np.asarray(points, dtype=np.float64)
    az = np.arctan2(p[..., 1], p[..., 0])
    if clockwise:
        phase = start_angle - az
    else:
        phase = az - start_angle
    return np.mod(phase, TWO_PI)


def relative_times_from_azimuth(
    points: np.ndarray,
    scan_period: float,
    start_angle: float = 0.0,
    clockwise: bool = True,
) -> np.ndarray:
    """
    Relative acquisition times for a cloud that carries no per-point time,
    assuming constant angular velocity over one scan_period.
    """
    phase = azimuth_phase(points, start_angle, clockwise)
    rel = scan_period * phase / TWO_PI
    return np.minimum(rel, np.nextafter(scan_period, 0.0))


def message_relative_times(points: np.ndarray, scan_period: float, clockwise: bool = True) -> np.ndarray:
    """
    Times relative to the first point of a message (the message stamp), with
    the phase measured from that point's azimuth.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if pts.shape[0] == 0:
        return np.zeros((0,), dtype=np.float64)
    # Same array computation as azimuth_phase so the first point maps to exactly 0.
    start_angle = float(np.arctan2(pts[:, 1], pts[:, 0])[0])
    return relative_times_from_azimuth(pts, scan_period, start_angle, clockwise)


class SweepAccumulator:
    """Collects points for one sweep, bucketed by ring."""

    def __init__(self, params: RegistrationParams, detect_boundaries: bool = True):
        self.params = params
        self.detect_boundaries = bool(detect_boundaries)
        self._start_stamp: Optional[float] = None
        # Per ring: list of (m,4) blocks of [x, y, z, rel_time] in scan order.
        self._rings: List[List[np.ndarray]] = [[] for _ in range(params.n_scan_rings)]
        self._n_points = 0
        self._last_phase: Optional[float] = None
        self._complete = False
        # (point, ring, absolute time) appended after completion, replayed into the next sweep
        self._pending: List[Tuple[np.ndarray, int, float]] = []
        self.accepted_count = 0
        self.rejected_count = 0
        self.sweeps_taken = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def start_stamp(self) -> Optional[float]:
        return self._start_stamp

    def is_active(self) -> bool:
        return self._start_stamp is not None

    def n_points(self) -> int:
        return self._n_points

    def is_sweep_complete(self) -> bool:
        return self._complete

    def begin_sweep(self, start_stamp: float) -> None:
        """Open a new empty sweep starting at start_stamp (discards any open sweep)."""
        self._start_stamp = float(start_stamp)
        for r in self._rings:
            r.clear()
        self._n_points = 0
        self._last_phase = None
        self._complete = False

    def complete(self) -> None:
        """Force completion (for sources that deliver one whole sweep per message)."""
        if self._start_stamp is None:
            raise RuntimeError("complete() called before begin_sweep()")
        self._complete = True

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def _reject(self, reason: str, ring, relative_time) -> bool:
        self.rejected_count += 1
        _logger.debug("Point excluded (%s): ring=%r rel_time=%r", reason, ring, relative_time)
        return False

    def append(self, point, ring, relative_time: float) -> bool:
        """
        Add one point to the open sweep.

        Returns True if the point was stored (in this sweep or held for the next),
        False if it was excluded.
        """
        if self._start_stamp is None:
            raise RuntimeError("append() called before begin_sweep()")

        p = np.asarray(point, dtype=np.float64).reshape(-1)
        if p.shape[0] < 3:
            return self._reject("short point", ring, relative_time)
        p = p[:3]
        try:
            ring_f = float(ring)
            rel = float(relative_time)
        except (TypeError, ValueError):
            return self._reject("non-numeric ring/time", ring, relative_time)
        if not (math.isfinite(ring_f) and ring_f == int(ring_f) and 0 <= ring_f < len(self._rings)):
            return self._reject("bad ring index", ring, relative_time)
        ring_i = int(ring_f)
        if not (np.all(np.isfinite(p)) and math.isfinite(rel)):
            return self._reject("non-finite", ring, relative_time)
        if rel < 0.0:
            return self._reject("negative relative time", ring, relative_time)

        if not self.detect_boundaries:
            if rel >= self.params.scan_period:
                return self._reject("relative time past scan period", ring, relative_time)
            return self._store(p, ring_i, rel, None)

        if self._n_points == 0 and not self._complete and rel >= self.params.scan_period:
            # Gap before the first point: restart the sweep at this point.
            self.begin_sweep(self._start_stamp + rel)
            rel = 0.0

        abs_time = self._start_stamp + rel
        if self._complete:
            self._pending.append((p, ring_i, abs_time))
            return True

        phase = float(azimuth_phase(p, self.params.sweep_start_angle, self.params.clockwise_rotation))
        wrapped = (
            self._last_phase is not None
            and self._n_points > 0
            and self._last_phase - phase > math.pi
        )
        if wrapped or rel >= self.params.scan_period:
            self._complete = True
            self._pending.append((p, ring_i, abs_time))
            return True

        return self._store(p, ring_i, rel, phase)

    def _store(self, p: np.ndarray, ring_i: int, rel: float, phase: Optional[float]) -> bool:
        bucket = self._rings[ring_i]
        entry = np.array([[p[0], p[1], p[2], rel]], dtype=np.float64)
        if bucket and np.array_equal(bucket[-1][-1], entry[0]):
            return self._reject("duplicate", ring_i, rel)
        bucket.append(entry)
        self._n_points += 1
        if phase is not None:
            self._last_phase = phase
        self.accepted_count += 1
        return True

    def _append_whole_sweep(self, pts: np.ndarray, rings: np.ndarray, rel: np.ndarray) -> int:
        """Vectorized validation and bucketing of one whole-sweep batch. Returns the excluded count."""
        n = pts.shape[0]
        ring_f = rings.astype(np.float64)
        with np.errstate(invalid="ignore"):
            ok_ring = np.isfinite(ring_f) & (ring_f == np.floor(ring_f))
            ok_ring &= (ring_f >= 0.0) & (ring_f < len(self._rings))
            ok_time = np.isfinite(rel) & (rel >= 0.0) & (rel < self.params.scan_period)
        valid = ok_ring & ok_time & np.all(np.isfinite(pts), axis=1)

        idx = np.flatnonzero(valid)
        ring_i = ring_f[idx].astype(np.int64)
        order = idx[np.argsort(ring_i, kind="stable")]
        ring_sorted = ring_f[order].astype(np.int64)
        rows = np.concatenate([pts[order], rel[order, None]], axis=1)

        # Duplicate of the previous row of the same ring (scan order kept by the stable sort).
        dup = np.zeros((rows.shape[0],), dtype=bool)
        if rows.shape[0] > 1:
            dup[1:] = (ring_sorted[1:] == ring_sorted[:-1]) & np.all(rows[1:] == rows[:-1], axis=1)

        starts = np.searchsorted(ring_sorted, np.arange(len(self._rings)), side="left")
        stops = np.searchsorted(ring_sorted, np.arange(len(self._rings)), side="right")
        stored = 0
        for r, (s, e) in enumerate(zip(starts, stops)):
            if s == e:
                continue
            bucket = self._rings[r]
            if bucket and np.array_equal(bucket[-1][-1], rows[s]):
                dup[s] = True
            block = rows[s:e][~dup[s:e]]
            if block.shape[0]:
                bucket.append(block)
                stored += block.shape[0]

        excluded = n - stored
        self._n_points += stored
        self.accepted_count += stored
        self.rejected_count += excluded
        if excluded:
            _logger.debug(
                "Batch: %d points excluded (%d bad ring, %d bad time, %d duplicate)",
                excluded, int(np.count_nonzero(~ok_ring)), int(np.count_nonzero(~ok_time)),
                int(np.count_nonzero(dup)),
            )
        return excluded

    def append_cloud(self, points: np.ndarray, rings: np.ndarray, relative_times: Optional[np.ndarray] = None) -> int:
        """
        Append a batch in scan order. Missing relative times are derived from
        azimuth. Returns the number of points excluded.
        """
        if self._start_stamp is None:
            raise RuntimeError("append_cloud() called before begin_sweep()")
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        rings = np.asarray(rings).reshape(-1)
        if relative_times is None:
            if self.detect_boundaries:
                relative_times = relative_times_from_azimuth(
                    pts,
                    self.params.scan_period,
                    self.params.sweep_start_angle,
                    self.params.clockwise_rotation,
                )
            else:
                # Whole-sweep message: phase is measured from its first point.
                relative_times = message_relative_times(
                    pts, self.params.scan_period, self.params.clockwise_rotation
                )
        rel = np.asarray(relative_times, dtype=np.float64).reshape(-1)
        if rings.shape[0] != pts.shape[0] or rel.shape[0] != pts.shape[0]:
            raise ValueError(
                f"append_cloud: {pts.shape[0]} points, {rings.shape[0]} rings, {rel.shape[0]} times"
            )
        if not self.detect_boundaries:
            return self._append_whole_sweep(pts, rings, rel)
        before = self.rejected_count
        for i in range(pts.shape[0]):
            self.append(pts[i], rings[i], rel[i])
        return self.rejected_count - before

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def take_sweep(self) -> Sweep:
        """
        Hand over the accumulated sweep and open the next one.

        The next sweep starts at the first held-back point's time (or right
        after the taken sweep if nothing is pending); held-back points are
        replayed into it.
        """
        if self._start_stamp is None:
            raise RuntimeError("take_sweep() called before begin_sweep()")

        rings = []
        for ring_i, bucket in enumerate(self._rings):
            if bucket:
                arr = np.concatenate(bucket, axis=0)
                rings.append(RingScan(ring=ring_i, points=arr[:, :3], rel_times=arr[:, 3]))
            else:
                rings.append(RingScan.empty(ring_i))
        sweep = Sweep(start_stamp=self._start_stamp, scan_period=self.params.scan_period, rings=rings)
        self.sweeps_taken += 1

        pending, self._pending = self._pending, []
        if pending:
            next_start = pending[0][2]
        else:
            next_start = self._start_stamp + self.params.scan_period
        self.begin_sweep(next_start)
        for p, ring_i, abs_time in pending:
            self.append(p, ring_i, abs_time - next_start)

        _logger.debug(
            "Sweep %d taken: start=%.6f points=%d carried=%d",
            self.sweeps_taken, sweep.start_stamp, sweep.n_points, len(pending),
        )
        return sweep
