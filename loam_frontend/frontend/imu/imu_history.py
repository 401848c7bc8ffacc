"""
Fixed-capacity, time-ordered ring buffer of inertial states.

Storage is a set of preallocated arrays with a head index (oldest entry) and a
count; pushing at capacity overwrites the oldest slot. Bracket lookup for
interpolation is a binary search over the logical (time-ordered) index.

Query semantics (interpolate / interpolate_many):
  - t inside [oldest, newest]: linear interpolation of orientation, velocity and
    position between the bracketing samples; an exact timestamp match returns
    the stored sample unchanged
  - t after newest: extrapolate position with the newest velocity, hold
    orientation (flagged extrapolated)
  - t before oldest: return the oldest sample (flagged degraded)
  - empty buffer: zero state (flagged degraded)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, List, Optional

import numpy as np

from loam_frontend.common import constants
from loam_frontend.frontend.imu.imu_state import InertialState, InterpolationResult


@dataclass
class InterpolatedStates:
    """Vectorized interpolation result for N query times."""
    rpy: np.ndarray           # (N,3)
    velocity: np.ndarray      # (N,3)
    position: np.ndarray      # (N,3)
    degraded: np.ndarray      # (N,) bool
    extrapolated: np.ndarray  # (N,) bool


def _lerp_yaw(yaw0: np.ndarray, yaw1: np.ndarray, ratio: np.ndarray) -> np.ndarray:
    """Interpolate yaw the short way round across +/-pi."""
    d = yaw1 - yaw0
    yaw1 = np.where(d > math.pi, yaw1 - 2.0 * math.pi, yaw1)
    yaw1 = np.where(d < -math.pi, yaw1 + 2.0 * math.pi, yaw1)
    out = yaw0 * (1.0 - ratio) + yaw1 * ratio
    return (out + math.pi) % (2.0 * math.pi) - math.pi


class ImuHistory:
    """Ring buffer of InertialState with O(log n) bracket lookup."""

    def __init__(self, capacity: int):
        capacity = int(capacity)
        if capacity < 1:
            raise ValueError(f"ImuHistory capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._stamps = np.zeros((capacity,), dtype=np.float64)
        self._rpy = np.zeros((capacity, 3), dtype=np.float64)
        self._acc = np.zeros((capacity, 3), dtype=np.float64)
        self._vel = np.zeros((capacity, 3), dtype=np.float64)
        self._pos = np.zeros((capacity, 3), dtype=np.float64)
        self._head = 0
        self._count = 0

    # ------------------------------------------------------------------
    # Buffer bookkeeping
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return self._count

    def is_empty(self) -> bool:
        return self._count == 0

    def _slot(self, i: int) -> int:
        """Physical slot of logical index i (0 = oldest)."""
        return (self._head + i) % self._capacity

    def _ordered(self, arr: np.ndarray) -> np.ndarray:
        idx = (self._head + np.arange(self._count)) % self._capacity
        return arr[idx]

    def _state_at(self, i: int) -> InertialState:
        s = self._slot(i)
        return InertialState(
            stamp=self._stamps[s],
            roll=self._rpy[s, 0],
            pitch=self._rpy[s, 1],
            yaw=self._rpy[s, 2],
            acceleration=self._acc[s],
            velocity=self._vel[s],
            position=self._pos[s],
        )

    def __getitem__(self, i: int) -> InertialState:
        if i < 0:
            i += self._count
        if not 0 <= i < self._count:
            raise IndexError(f"ImuHistory index {i} out of range ({self._count} entries)")
        return self._state_at(i)

    def __iter__(self) -> Iterator[InertialState]:
        for i in range(self._count):
            yield self._state_at(i)

    def oldest(self) -> Optional[InertialState]:
        return self._state_at(0) if self._count else None

    def newest(self) -> Optional[InertialState]:
        return self._state_at(self._count - 1) if self._count else None

    def stamps(self) -> np.ndarray:
        """Timestamps in time order (copy)."""
        return self._ordered(self._stamps)

    def push(self, state: InertialState) -> bool:
        """
        Append a state, evicting the oldest entry at capacity.

        Returns False (buffer unchanged) if the state precedes the newest entry.
        """
        if self._count and state.stamp < self._stamps[self._slot(self._count - 1)]:
            return False
        if self._count < self._capacity:
            s = self._slot(self._count)
            self._count += 1
        else:
            s = self._head
            self._head = (self._head + 1) % self._capacity
        self._stamps[s] = state.stamp
        self._rpy[s] = state.rpy
        self._acc[s] = state.acceleration
        self._vel[s] = state.velocity
        self._pos[s] = state.position
        return True

    def clear(self) -> None:
        self._head = 0
        self._count = 0

    def snapshot(self) -> "ImuHistory":
        """Independent copy of the current window (used for a consistent per-sweep read)."""
        other = ImuHistory(self._capacity)
        other._stamps = self._stamps.copy()
        other._rpy = self._rpy.copy()
        other._acc = self._acc.copy()
        other._vel = self._vel.copy()
        other._pos = self._pos.copy()
        other._head = self._head
        other._count = self._count
        return other

    def bracket(self, t: float) -> int:
        """
        Logical index of the first entry with stamp >= t (binary search).

        Returns len(self) if every entry precedes t.
        """
        lo, hi = 0, self._count
        while lo < hi:
            mid = (lo + hi) // 2
            if self._stamps[self._slot(mid)] < t:
                lo = mid + 1
            else:
                hi = mid
        return lo

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def interpolate(self, t: float) -> InterpolationResult:
        """Estimated InertialState at time t (see module docstring)."""
        t = float(t)
        if self._count == 0:
            return InterpolationResult(state=InertialState.zero(stamp=t), degraded=True)

        idx = self.bracket(t)
        if idx == self._count:
            newest = self._state_at(self._count - 1)
            dt = t - newest.stamp
            return InterpolationResult(
                state=InertialState(
                    stamp=t,
                    roll=newest.roll,
                    pitch=newest.pitch,
                    yaw=newest.yaw,
                    acceleration=newest.acceleration,
                    velocity=newest.velocity,
                    position=newest.position + newest.velocity * dt,
                ),
                extrapolated=True,
            )

        upper = self._state_at(idx)
        if upper.stamp == t:
            return InterpolationResult(state=upper)
        if idx == 0:
            return InterpolationResult(state=upper, degraded=True)

        lower = self._state_at(idx - 1)
        span = upper.stamp - lower.stamp
        if span <= constants.TIME_EPS:
            return InterpolationResult(state=upper)
        ratio = (t - lower.stamp) / span
        inv = 1.0 - ratio
        yaw = float(_lerp_yaw(np.array(lower.yaw), np.array(upper.yaw), np.array(ratio)))
        return InterpolationResult(
            state=InertialState(
                stamp=t,
                roll=lower.roll * inv + upper.roll * ratio,
                pitch=lower.pitch * inv + upper.pitch * ratio,
                yaw=yaw,
                acceleration=lower.acceleration * inv + upper.acceleration * ratio,
                velocity=lower.velocity * inv + upper.velocity * ratio,
                position=lower.position * inv + upper.position * ratio,
            )
        )

    def interpolate_many(self, times: np.ndarray) -> InterpolatedStates:
        """Vectorized interpolate() over an array of query times."""
        times = np.asarray(times, dtype=np.float64).reshape(-1)
        n = times.shape[0]
        if self._count == 0:
            return InterpolatedStates(
                rpy=np.zeros((n, 3)),
                velocity=np.zeros((n, 3)),
                position=np.zeros((n, 3)),
                degraded=np.ones((n,), dtype=bool),
                extrapolated=np.zeros((n,), dtype=bool),
            )

        stamps = self._ordered(self._stamps)
        rpy = self._ordered(self._rpy)
        vel = self._ordered(self._vel)
        pos = self._ordered(self._pos)
        last = self._count - 1

        idx = np.searchsorted(stamps, times, side="left")
        after = idx > last
        before = idx == 0
        upper = np.minimum(idx, last)
        lower = np.maximum(upper - 1, 0)

        span = stamps[upper] - stamps[lower]
        safe_span = np.where(span > constants.TIME_EPS, span, 1.0)
        ratio = np.where(span > constants.TIME_EPS, (times - stamps[lower]) / safe_span, 1.0)
        ratio = np.clip(ratio, 0.0, 1.0)
        r = ratio[:, None]

        out_rpy = rpy[lower] * (1.0 - r) + rpy[upper] * r
        out_rpy[:, 2] = _lerp_yaw(rpy[lower, 2], rpy[upper, 2], ratio)
        out_vel = vel[lower] * (1.0 - r) + vel[upper] * r
        out_pos = pos[lower] * (1.0 - r) + pos[upper] * r

        exact = (~after) & (stamps[upper] == times)
        snap = exact | before
        out_rpy[snap] = rpy[upper[snap]]
        out_vel[snap] = vel[upper[snap]]
        out_pos[snap] = pos[upper[snap]]

        if np.any(after):
            dt = (times[after] - stamps[last])[:, None]
            out_rpy[after] = rpy[last]
            out_vel[after] = vel[last]
            out_pos[after] = pos[last] + vel[last] * dt

        return InterpolatedStates(
            rpy=out_rpy,
            velocity=out_vel,
            position=out_pos,
            degraded=before & ~exact,
            extrapolated=after,
        )

    def states(self) -> List[InertialState]:
        return list(iter(self))
