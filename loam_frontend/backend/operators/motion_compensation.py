"""
Motion compensation operator.

For every point acquired at t = sweep_start + rel_time, the platform pose at t
and at sweep_start are read from the inertial history and the point is
re-expressed in the sweep-start frame:

  p_start = R_start^T (R_t p + pos_t - pos_start)

This removes the sensor's own rotation during the sweep and any platform
translation in one transform. The per-point transform runs as a single
jit/vmap kernel; point counts are padded to a fixed bucket so consecutive
sweeps reuse the compiled program.

Fallbacks are declared in the returned OpReport, never hidden:
  - compensation disabled (sensor transform unresolved): identity, Uncompensated
  - query before the history / empty history: DegradedInterpolation
  - query after the newest sample: Extrapolation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from loam_frontend.common import constants
from loam_frontend.common.geometry import rpy_jax, rpy_to_rotmat
from loam_frontend.common.jax_init import jax, jnp
from loam_frontend.common.op_report import (
    OpReport,
    TRIGGER_DEGRADED,
    TRIGGER_EXTRAPOLATION,
    TRIGGER_UNCOMPENSATED,
)
from loam_frontend.frontend.imu.imu_history import ImuHistory
from loam_frontend.frontend.sweep.sweep import Sweep

_logger = logging.getLogger(__name__)


@dataclass
class SweepMotionSummary:
    """
    Per-sweep motion summary handed to the odometry consumer.

    position_delta / velocity_delta are expressed in the sweep-start frame.
    """
    start_stamp: float
    start_rpy: np.ndarray       # (3,)
    end_rpy: np.ndarray         # (3,)
    position_delta: np.ndarray  # (3,)
    velocity_delta: np.ndarray  # (3,)
    compensated: bool
    degraded_points: int = 0
    extrapolated_points: int = 0

    def as_array(self) -> np.ndarray:
        """(4,3) rows: start rpy, end rpy, position delta, velocity delta."""
        return np.stack([self.start_rpy, self.end_rpy, self.position_delta, self.velocity_delta])

    @classmethod
    def identity(cls, start_stamp: float) -> "SweepMotionSummary":
        z = np.zeros(3)
        return cls(
            start_stamp=float(start_stamp),
            start_rpy=z.copy(),
            end_rpy=z.copy(),
            position_delta=z.copy(),
            velocity_delta=z.copy(),
            compensated=False,
        )


@jax.jit
def _compensate_points_jax(
    points: jnp.ndarray,     # (N,3)
    rpy: jnp.ndarray,        # (N,3)
    pos: jnp.ndarray,        # (N,3)
    rpy_start: jnp.ndarray,  # (3,)
    pos_start: jnp.ndarray,  # (3,)
) -> jnp.ndarray:
    return jax.vmap(rpy_jax.rotate_from_start, in_axes=(0, 0, 0, None, None))(
        points, rpy, pos, rpy_start, pos_start
    )


def _pad_rows(arr: np.ndarray, n_padded: int) -> np.ndarray:
    out = np.zeros((n_padded,) + arr.shape[1:], dtype=np.float64)
    out[: arr.shape[0]] = arr
    return out


def compensate_points(
    points: np.ndarray,
    rpy: np.ndarray,
    pos: np.ndarray,
    rpy_start: np.ndarray,
    pos_start: np.ndarray,
    bucket: int = constants.JIT_POINT_BUCKET,
) -> np.ndarray:
    """Re-express (N,3) points taken at poses (rpy, pos) in the start pose frame."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = points.shape[0]
    if n == 0:
        return points.copy()
    n_padded = ((n + bucket - 1) // bucket) * bucket
    out = _compensate_points_jax(
        jnp.asarray(_pad_rows(points, n_padded)),
        jnp.asarray(_pad_rows(np.asarray(rpy, dtype=np.float64), n_padded)),
        jnp.asarray(_pad_rows(np.asarray(pos, dtype=np.float64), n_padded)),
        jnp.asarray(np.asarray(rpy_start, dtype=np.float64).reshape(3)),
        jnp.asarray(np.asarray(pos_start, dtype=np.float64).reshape(3)),
    )
    return np.asarray(out)[:n]


def compensate_sweep(
    sweep: Sweep,
    history: ImuHistory,
    enabled: bool = True,
) -> Tuple[SweepMotionSummary, OpReport]:
    """
    Correct every point of the sweep in place and summarise the sweep's motion.

    history should be a consistent snapshot (ImuHistory.snapshot()) taken when
    the sweep was handed over.
    """
    if not enabled:
        summary = SweepMotionSummary.identity(sweep.start_stamp)
        report = OpReport(
            name="MotionCompensation",
            exact=False,
            approximation_triggers=[TRIGGER_UNCOMPENSATED],
            metrics={"n_points": sweep.n_points, "compensated": False},
            notes="Sensor transform unresolved; identity correction applied.",
        )
        return summary, report

    start = history.interpolate(sweep.start_stamp)
    rpy_start = np.asarray(start.state.rpy, dtype=np.float64)
    pos_start = start.state.position
    vel_start = start.state.velocity

    rings = [r for r in sweep.rings if len(r)]
    degraded = 0
    extrapolated = 0
    if rings:
        rel = np.concatenate([r.rel_times for r in rings])
        pts = np.concatenate([r.points for r in rings], axis=0)
        states = history.interpolate_many(sweep.start_stamp + rel)
        corrected = compensate_points(pts, states.rpy, states.position, rpy_start, pos_start)
        offset = 0
        for r in rings:
            n = len(r)
            r.points = corrected[offset:offset + n]
            offset += n
        degraded = int(np.count_nonzero(states.degraded))
        extrapolated = int(np.count_nonzero(states.extrapolated))

    end = history.interpolate(sweep.start_stamp + sweep.end_relative_time())
    R_start = rpy_to_rotmat(*rpy_start)
    summary = SweepMotionSummary(
        start_stamp=sweep.start_stamp,
        start_rpy=rpy_start,
        end_rpy=np.asarray(end.state.rpy, dtype=np.float64),
        position_delta=R_start.T @ (end.state.position - pos_start),
        velocity_delta=R_start.T @ (end.state.velocity - vel_start),
        compensated=True,
        degraded_points=degraded,
        extrapolated_points=extrapolated,
    )

    triggers = []
    if degraded or start.degraded:
        triggers.append(TRIGGER_DEGRADED)
    if extrapolated or start.extrapolated:
        triggers.append(TRIGGER_EXTRAPOLATION)
    report = OpReport(
        name="MotionCompensation",
        exact=not triggers,
        approximation_triggers=triggers,
        metrics={
            "n_points": sweep.n_points,
            "compensated": True,
            "degraded_points": degraded,
            "extrapolated_points": extrapolated,
            "start_degraded": start.degraded,
            "history_size": len(history),
        },
    )
    if degraded:
        _logger.debug(
            "Sweep at t=%.6f: %d/%d points preceded the inertial history",
            sweep.start_stamp, degraded, sweep.n_points,
        )
    return summary, report
