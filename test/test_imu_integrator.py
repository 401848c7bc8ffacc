"""
Tests for the inertial integrator (gravity compensation, integration, rejection).
"""

import math

import numpy as np
import pytest

from loam_frontend.common.geometry import rpy_to_quat
from loam_frontend.frontend.imu.imu_history import ImuHistory
from loam_frontend.frontend.imu.imu_integrator import InertialIntegrator

G = 9.81
IDENTITY_Q = [0.0, 0.0, 0.0, 1.0]


def _integrator(capacity=500, **kwargs):
    return InertialIntegrator(ImuHistory(capacity), gravity=G, **kwargs)


def test_stationary_level_platform_stays_at_origin():
    integ = _integrator()
    for i in range(100):
        integ.add_sample(0.005 * i, IDENTITY_Q, [0.0, 0.0, G])
    last = integ.history.newest()
    assert np.allclose(last.acceleration, 0.0, atol=1e-12)
    assert np.allclose(last.velocity, 0.0, atol=1e-12)
    assert np.allclose(last.position, 0.0, atol=1e-12)
    assert integ.accepted_count == 100


@pytest.mark.parametrize("roll,pitch", [(0.3, 0.0), (0.0, -0.2), (0.25, 0.4)])
def test_gravity_removed_for_tilted_platform(roll, pitch):
    integ = _integrator()
    specific_force = G * np.array([
        -math.sin(pitch),
        math.sin(roll) * math.cos(pitch),
        math.cos(roll) * math.cos(pitch),
    ])
    for i in range(10):
        integ.add_sample(0.01 * i, [roll, pitch, 0.7], specific_force)
    last = integ.history.newest()
    assert np.allclose(last.acceleration, 0.0, atol=1e-9)
    assert np.allclose(last.position, 0.0, atol=1e-9)
    assert last.roll == pytest.approx(roll)
    assert last.pitch == pytest.approx(pitch)
    assert last.yaw == pytest.approx(0.7)


def test_constant_forward_acceleration_integrates_exactly():
    integ = _integrator()
    dt = 0.01
    for i in range(101):
        integ.add_sample(dt * i, IDENTITY_Q, [1.0, 0.0, G])
    last = integ.history.newest()
    assert last.velocity[0] == pytest.approx(1.0)
    assert last.position[0] == pytest.approx(0.5)


def test_acceleration_rotated_into_world_by_yaw():
    integ = _integrator()
    q = rpy_to_quat(0.0, 0.0, math.pi / 2.0)
    for i in range(11):
        integ.add_sample(0.1 * i, q, [1.0, 0.0, G])
    last = integ.history.newest()
    # Body x points along world y after a 90 degree yaw.
    assert last.velocity[0] == pytest.approx(0.0, abs=1e-9)
    assert last.velocity[1] == pytest.approx(1.0)


def test_out_of_order_sample_is_rejected():
    integ = _integrator()
    integ.add_sample(0.0, IDENTITY_Q, [0.0, 0.0, G])
    integ.add_sample(0.1, IDENTITY_Q, [0.0, 0.0, G])
    assert integ.add_sample(0.05, IDENTITY_Q, [5.0, 0.0, G]) is None
    assert integ.rejected_count == 1
    assert list(integ.history.stamps()) == [0.0, 0.1]


def test_non_finite_sample_is_rejected():
    integ = _integrator()
    assert integ.add_sample(0.0, IDENTITY_Q, [float("nan"), 0.0, G]) is None
    assert integ.add_sample(float("inf"), IDENTITY_Q, [0.0, 0.0, G]) is None
    assert integ.rejected_count == 2
    assert len(integ.history) == 0


def test_bad_orientation_shape_raises():
    integ = _integrator()
    with pytest.raises(ValueError):
        integ.add_sample(0.0, [0.0, 1.0], [0.0, 0.0, G])


def test_extrinsic_rotates_acceleration_into_lidar_frame():
    Rz90 = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    integ = _integrator(R_lidar_imu=Rz90)
    state = integ.add_sample(0.0, IDENTITY_Q, [1.0, 0.0, G])
    assert np.allclose(state.acceleration, [0.0, 1.0, 0.0], atol=1e-12)
    assert state.rpy == pytest.approx((0.0, 0.0, 0.0), abs=1e-12)


def test_extrinsic_conjugates_orientation():
    Rz90 = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    integ = _integrator(R_lidar_imu=Rz90)
    # Roll about the inertial x axis is pitch about the lidar y axis.
    rot, _ = integ.transform_sample([0.2, 0.0, 0.0], [0.0, 0.0, G])
    yaw, pitch, roll = rot.as_euler("ZYX")
    assert roll == pytest.approx(0.0, abs=1e-9)
    assert pitch == pytest.approx(0.2)
    assert yaw == pytest.approx(0.0, abs=1e-9)
