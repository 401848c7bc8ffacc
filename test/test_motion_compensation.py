"""
Tests for sweep motion compensation against synthetic inertial histories.

Points are generated in the sensor frame at their acquisition time from a
known set of world points; compensation must bring them back to the world
points expressed in the sweep-start frame.
"""

import numpy as np
import pytest

from loam_frontend.backend.operators.motion_compensation import (
    SweepMotionSummary,
    compensate_points,
    compensate_sweep,
)
from loam_frontend.common.geometry import rpy_to_rotmat
from loam_frontend.common.op_report import (
    TRIGGER_EXTRAPOLATION,
    TRIGGER_UNCOMPENSATED,
)
from loam_frontend.frontend.imu.imu_history import ImuHistory
from loam_frontend.frontend.imu.imu_state import InertialState
from loam_frontend.frontend.sweep.sweep import RingScan, Sweep

SCAN_PERIOD = 0.1


def _history(t0, t1, dt=0.005, yaw_rate=0.0, velocity=(0.0, 0.0, 0.0)):
    v = np.asarray(velocity, dtype=float)
    h = ImuHistory(400)
    for t in np.arange(t0, t1 + 1e-9, dt):
        h.push(InertialState(
            stamp=t,
            roll=0.0,
            pitch=0.0,
            yaw=yaw_rate * t,
            acceleration=np.zeros(3),
            velocity=v,
            position=v * t,
        ))
    return h


def _world_points(n=40, seed=3):
    rng = np.random.default_rng(seed)
    return rng.uniform(-10.0, 10.0, size=(n, 3))


def _sweep_from(points, rel_times, start=0.0):
    return Sweep(
        start_stamp=start,
        scan_period=SCAN_PERIOD,
        rings=[RingScan(ring=0, points=points, rel_times=rel_times)],
    )


def test_stationary_history_is_identity():
    w = _world_points()
    rel = np.linspace(0.0, 0.099, w.shape[0])
    sweep = _sweep_from(w.copy(), rel)
    summary, report = compensate_sweep(sweep, _history(-0.05, 0.15))
    assert summary.compensated
    assert np.allclose(sweep.rings[0].points, w, atol=1e-9)
    assert np.allclose(summary.as_array(), 0.0, atol=1e-12)
    assert report.exact
    report.validate()


def test_disabled_compensation_reports_uncompensated():
    w = _world_points()
    sweep = _sweep_from(w.copy(), np.linspace(0.0, 0.09, w.shape[0]), start=4.0)
    summary, report = compensate_sweep(sweep, _history(3.9, 4.2, yaw_rate=2.0), enabled=False)
    assert not summary.compensated
    assert summary.start_stamp == 4.0
    assert np.array_equal(sweep.rings[0].points, w)
    assert np.allclose(summary.as_array(), 0.0)
    assert report.approximation_triggers == [TRIGGER_UNCOMPENSATED]
    assert not report.exact
    report.validate()


def test_pure_yaw_rotation_is_removed():
    yaw_rate = 1.5
    w = _world_points()
    rel = np.linspace(0.0, 0.099, w.shape[0])
    # Sensor frame at time t: p_t = R(t)^T w (start yaw is zero).
    measured = np.stack([rpy_to_rotmat(0.0, 0.0, yaw_rate * t).T @ w[i] for i, t in enumerate(rel)])
    sweep = _sweep_from(measured, rel)

    summary, report = compensate_sweep(sweep, _history(-0.05, 0.15, yaw_rate=yaw_rate))
    assert np.allclose(sweep.rings[0].points, w, atol=1e-9)
    assert summary.start_rpy[2] == pytest.approx(0.0, abs=1e-12)
    assert summary.end_rpy[2] == pytest.approx(yaw_rate * rel[-1])
    assert np.allclose(summary.position_delta, 0.0)
    assert summary.degraded_points == 0
    assert report.exact


def test_translation_is_removed_and_summarised():
    v = np.array([2.0, -1.0, 0.5])
    start = 1.0
    w = _world_points()
    rel = np.linspace(0.0, 0.099, w.shape[0])
    measured = w - v[None, :] * (start + rel)[:, None]
    sweep = _sweep_from(measured, rel, start=start)

    summary, _ = compensate_sweep(sweep, _history(0.9, 1.2, velocity=v))
    assert np.allclose(sweep.rings[0].points, w - v * start, atol=1e-9)
    assert np.allclose(summary.position_delta, v * rel[-1])
    assert np.allclose(summary.velocity_delta, 0.0)


def test_dense_history_gives_no_degraded_points():
    w = _world_points(200)
    rel = np.linspace(0.0, 0.0995, w.shape[0])
    sweep = _sweep_from(w, rel, start=2.0)
    summary, report = compensate_sweep(sweep, _history(1.95, 2.15, dt=0.005))
    assert summary.degraded_points == 0
    assert summary.extrapolated_points == 0
    assert report.approximation_triggers == []


def test_history_ending_early_only_extrapolates():
    w = _world_points(100)
    rel = np.linspace(0.0, 0.0995, w.shape[0])
    sweep = _sweep_from(w, rel, start=2.0)
    summary, report = compensate_sweep(sweep, _history(1.95, 2.08, dt=0.005))
    assert summary.degraded_points == 0
    assert summary.extrapolated_points > 0
    assert report.approximation_triggers == [TRIGGER_EXTRAPOLATION]
    report.validate()


def test_empty_history_is_degraded():
    w = _world_points(10)
    sweep = _sweep_from(w.copy(), np.linspace(0.0, 0.05, 10))
    summary, report = compensate_sweep(sweep, ImuHistory(10))
    assert summary.compensated
    assert summary.degraded_points == 10
    assert not report.exact
    assert np.allclose(sweep.rings[0].points, w)


def test_compensate_points_pads_to_bucket():
    pts = _world_points(5)
    zeros = np.zeros((5, 3))
    out = compensate_points(pts, zeros, zeros, np.zeros(3), np.zeros(3), bucket=4)
    assert out.shape == (5, 3)
    assert np.allclose(out, pts)
    assert compensate_points(np.zeros((0, 3)), zeros[:0], zeros[:0], np.zeros(3), np.zeros(3)).shape == (0, 3)


def test_summary_array_layout():
    s = SweepMotionSummary(
        start_stamp=0.0,
        start_rpy=np.array([0.1, 0.2, 0.3]),
        end_rpy=np.array([0.4, 0.5, 0.6]),
        position_delta=np.array([1.0, 2.0, 3.0]),
        velocity_delta=np.array([4.0, 5.0, 6.0]),
        compensated=True,
    )
    arr = s.as_array()
    assert arr.shape == (4, 3)
    assert np.allclose(arr[2], [1.0, 2.0, 3.0])
