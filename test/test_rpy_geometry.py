"""
Tests for the roll/pitch/yaw helpers (NumPy and JAX).
"""

import math

import numpy as np
import pytest

from loam_frontend.common.geometry import (
    gravity_in_body,
    quat_to_rpy,
    rpy_jax,
    rpy_to_quat,
    rpy_to_rotmat,
    rotmat_to_rpy,
    wrap_angle,
)


@pytest.mark.parametrize("angle,expected", [(0.0, 0.0), (math.pi + 0.1, -math.pi + 0.1), (-3.0 * math.pi / 2.0, math.pi / 2.0)])
def test_wrap_angle(angle, expected):
    assert wrap_angle(angle) == pytest.approx(expected)


def test_rotmat_is_z_y_x_composition():
    roll, pitch, yaw = 0.1, -0.2, 0.3
    c, s = math.cos, math.sin
    Rx = np.array([[1, 0, 0], [0, c(roll), -s(roll)], [0, s(roll), c(roll)]])
    Ry = np.array([[c(pitch), 0, s(pitch)], [0, 1, 0], [-s(pitch), 0, c(pitch)]])
    Rz = np.array([[c(yaw), -s(yaw), 0], [s(yaw), c(yaw), 0], [0, 0, 1]])
    assert np.allclose(rpy_to_rotmat(roll, pitch, yaw), Rz @ Ry @ Rx)
    assert rotmat_to_rpy(Rz @ Ry @ Rx) == pytest.approx((roll, pitch, yaw))


def test_quaternion_conversion():
    q = rpy_to_quat(0.2, 0.1, -1.0)
    assert q.shape == (4,)
    assert quat_to_rpy(q) == pytest.approx((0.2, 0.1, -1.0))
    with pytest.raises(ValueError):
        quat_to_rpy([0.0, 0.0, 1.0])


def test_gravity_in_body_matches_rotation():
    roll, pitch = 0.3, -0.4
    R = rpy_to_rotmat(roll, pitch, 1.2)
    assert np.allclose(gravity_in_body(roll, pitch, 9.81), R.T @ np.array([0.0, 0.0, 9.81]))


def test_jax_rotmat_matches_numpy():
    rpy = np.array([0.05, -0.3, 2.0])
    assert np.allclose(np.asarray(rpy_jax.rpy_to_rotmat(rpy)), rpy_to_rotmat(*rpy))


def test_rotate_from_start_undoes_pose():
    w = np.array([3.0, -1.0, 2.0])
    rpy_t = np.array([0.0, 0.1, 0.5])
    pos_t = np.array([1.0, 0.0, 0.0])
    p_t = rpy_to_rotmat(*rpy_t).T @ (w - pos_t)
    out = rpy_jax.rotate_from_start(p_t, rpy_t, pos_t, np.zeros(3), np.zeros(3))
    assert np.allclose(np.asarray(out), w)
