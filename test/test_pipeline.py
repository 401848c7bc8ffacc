"""
End-to-end tests for the scan-registration pipeline (no ROS).
"""

import math
import threading

import numpy as np
import pytest

from conftest import make_room_sweep
from loam_frontend.backend.pipeline import ScanRegistrationPipeline
from loam_frontend.common.op_report import TRIGGER_DEGRADED, TRIGGER_UNCOMPENSATED
from loam_frontend.common.param_models import RegistrationParams
from loam_frontend.frontend.extrinsics import ExtrinsicResolver

IDENTITY_Q = [0.0, 0.0, 0.0, 1.0]


def _feed_stationary_imu(pipeline, t0, t1, dt=0.005):
    for t in np.arange(t0, t1 + 1e-9, dt):
        pipeline.add_imu(float(t), IDENTITY_Q, [0.0, 0.0, 9.81])


def test_room_sweep_is_compensated_and_classified(room_sweep):
    points, rings, times = room_sweep
    pipeline = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=True)
    stamp = 100.0
    _feed_stationary_imu(pipeline, stamp - 0.05, stamp + 0.15)

    result = pipeline.process_cloud(stamp, points, rings, times)
    assert result.compensated
    assert result.stamp == stamp
    for report in result.reports:
        report.validate()
    assert [r.name for r in result.reports] == ["MotionCompensation", "FeatureExtraction"]

    assert result.cloud.shape == points.shape
    ring_of = np.floor(result.intensities).astype(int)
    assert np.all(np.bincount(ring_of, minlength=16) == 720)
    assert np.all(result.intensities - ring_of < 1.0)
    # Stationary platform: compensation leaves the geometry untouched.
    assert np.allclose(np.sort(result.cloud[:, 0]), np.sort(points[:, 0]), atol=1e-6)

    f = result.features
    assert len(f.sharp) > 0
    assert len(f.flat) > 0
    assert len(f.less_sharp) >= len(f.sharp)
    assert len(f.less_flat) >= len(f.flat)
    assert np.allclose(result.summary.as_array(), 0.0, atol=1e-9)
    assert pipeline.sweeps_processed == 1


def test_disabled_resolver_publishes_uncompensated(room_sweep):
    points, rings, times = room_sweep
    resolver = ExtrinsicResolver(max_attempts=1, backoff_sec=0.0, sleep=lambda s: None)
    resolver.disable("no tf")
    pipeline = ScanRegistrationPipeline(RegistrationParams(), resolver=resolver, sweep_per_message=True)
    _feed_stationary_imu(pipeline, 0.0, 0.2)

    result = pipeline.process_cloud(0.05, points, rings, times)
    assert not result.compensated
    assert result.reports[0].approximation_triggers == [TRIGGER_UNCOMPENSATED]
    assert np.allclose(result.summary.as_array(), 0.0)
    assert pipeline.uncompensated_sweeps == 1
    assert len(result.features.sharp) > 0


def test_malformed_points_are_excluded_without_raising(room_sweep):
    points, rings, times = room_sweep
    bad_pts = np.array([[np.nan, 0.0, 0.0], [1.0, 2.0, 3.0], [1.0, 2.0, np.inf]])
    bad_rings = np.array([0, 99, 3])
    bad_times = np.array([0.05, 0.05, 0.05])
    pipeline = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=True)

    result = pipeline.process_cloud(
        1.0,
        np.concatenate([points, bad_pts]),
        np.concatenate([rings, bad_rings]),
        np.concatenate([times, bad_times]),
    )
    assert result.cloud.shape[0] == points.shape[0]
    assert pipeline.accumulator.rejected_count == 3
    assert np.all(np.isfinite(result.cloud))


def test_streaming_points_split_into_sweeps():
    params = RegistrationParams(n_scan_rings=1)
    pipeline = ScanRegistrationPipeline(params, sweep_per_message=False)
    k = np.arange(250)
    az = -2.0 * math.pi * (k + 0.5) / 100.0
    pts = np.stack([10.0 * np.cos(az), 10.0 * np.sin(az), np.zeros(250)], axis=1)

    results = pipeline.add_points(50.0, pts, np.zeros(250, dtype=int), k * 0.001)
    assert len(results) == 2
    assert [r.cloud.shape[0] for r in results] == [100, 100]
    assert results[0].stamp == pytest.approx(50.0)
    assert results[1].stamp == pytest.approx(50.1)
    assert pipeline.accumulator.n_points() == 50


def test_streaming_points_across_messages():
    params = RegistrationParams(n_scan_rings=1)
    pipeline = ScanRegistrationPipeline(params, sweep_per_message=False)
    k = np.arange(150)
    az = -2.0 * math.pi * (k + 0.5) / 100.0
    pts = np.stack([10.0 * np.cos(az), 10.0 * np.sin(az), np.zeros(150)], axis=1)

    first = pipeline.add_points(7.0, pts[:60], np.zeros(60, dtype=int), k[:60] * 0.001)
    second = pipeline.add_points(7.06, pts[60:], np.zeros(90, dtype=int), (k[60:] - 60) * 0.001)
    assert first == []
    assert len(second) == 1
    assert second[0].cloud.shape[0] == 100


def test_entry_points_match_mode():
    streaming = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=False)
    whole = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=True)
    with pytest.raises(RuntimeError):
        whole.add_points(0.0, np.zeros((1, 3)), np.zeros(1, dtype=int))
    with pytest.raises(RuntimeError):
        streaming.process_cloud(0.0, np.zeros((1, 3)), np.zeros(1, dtype=int))


def test_resolved_extrinsic_clears_history():
    resolver = ExtrinsicResolver(max_attempts=1, backoff_sec=0.0, sleep=lambda s: None)
    pipeline = ScanRegistrationPipeline(RegistrationParams(), resolver=resolver, sweep_per_message=True)
    _feed_stationary_imu(pipeline, 0.0, 0.1)
    assert len(pipeline.history) > 0
    resolver.try_once(lambda: (np.eye(3), np.zeros(3)))
    pipeline.apply_extrinsic()
    assert len(pipeline.history) == 0


def test_concurrent_imu_feed_while_processing(room_sweep):
    points, rings, times = room_sweep
    pipeline = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=True)
    errors = []

    def feed():
        try:
            _feed_stationary_imu(pipeline, 0.0, 1.0, dt=0.002)
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    worker = threading.Thread(target=feed)
    worker.start()
    results = [pipeline.process_cloud(0.1 * (i + 1), points, rings, times) for i in range(3)]
    worker.join()

    assert errors == []
    assert len(results) == 3
    assert pipeline.integrator.accepted_count == 501
    assert len(pipeline.history) == RegistrationParams().imu_history_size
    for r in results:
        for report in r.reports:
            report.validate()


def test_inertial_samples_straddling_sweep_start_give_exact_interpolation(room_sweep):
    points, rings, times = room_sweep
    pipeline = ScanRegistrationPipeline(RegistrationParams(), sweep_per_message=True)
    stamp = 20.0
    # 5 ms cadence with the sweep start half way between two samples.
    offsets = [-0.0125, -0.0075, -0.0025, 0.0025] + [0.0075 + 0.005 * i for i in range(21)]
    for dt in offsets:
        pipeline.add_imu(stamp + dt, IDENTITY_Q, [0.0, 0.0, 9.81])
    assert stamp + offsets[-1] > stamp + 0.105

    result = pipeline.process_cloud(stamp, points, rings, times)
    assert result.summary.degraded_points == 0
    assert TRIGGER_DEGRADED not in result.reports[0].approximation_triggers
    assert not result.reports[0].metrics["start_degraded"]
    result.reports[0].validate()


def test_streaming_message_without_times_uses_azimuth():
    params = RegistrationParams(n_scan_rings=1)
    pipeline = ScanRegistrationPipeline(params, sweep_per_message=False)
    k = np.arange(200)
    az = -2.0 * math.pi * (k + 0.5) / 100.0
    pts = np.stack([10.0 * np.cos(az), 10.0 * np.sin(az), np.zeros(200)], axis=1)

    first = pipeline.add_points(0.0, pts[:100], np.zeros(100, dtype=int))
    second = pipeline.add_points(0.1, pts[100:], np.zeros(100, dtype=int))
    assert first == []
    assert len(second) == 1
    result = second[0]
    assert result.cloud.shape[0] == 100
    assert result.stamp == pytest.approx(0.0)
    # One full turn spread over the scan period, not collapsed onto the stamp.
    assert result.intensities.max() > 0.5
    assert np.all(np.diff(result.intensities) > 0.0)
