"""
Roll/pitch/yaw helpers (NumPy + scipy, CPU).

Convention: R = Rz(yaw) @ Ry(pitch) @ Rx(roll), i.e. intrinsic Z-Y-X, the same
decomposition tf's Matrix3x3::getRPY returns. Quaternions are [x, y, z, w].
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation


def wrap_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi)."""
    return (float(angle) + math.pi) % (2.0 * math.pi) - math.pi


def rpy_to_rotmat(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """3x3 rotation matrix body -> world."""
    return Rotation.from_euler("ZYX", [yaw, pitch, roll]).as_matrix()


def rotmat_to_rpy(R: np.ndarray) -> Tuple[float, float, float]:
    yaw, pitch, roll = Rotation.from_matrix(np.asarray(R, dtype=np.float64)).as_euler("ZYX")
    return float(roll), float(pitch), float(yaw)


def quat_to_rpy(quat_xyzw) -> Tuple[float, float, float]:
    """Quaternion [x, y, z, w] -> (roll, pitch, yaw)."""
    q = np.asarray(quat_xyzw, dtype=np.float64).reshape(-1)
    if q.shape[0] != 4:
        raise ValueError(f"Expected quaternion [x,y,z,w], got shape {q.shape}")
    yaw, pitch, roll = Rotation.from_quat(q).as_euler("ZYX")
    return float(roll), float(pitch), float(yaw)


def rpy_to_quat(roll: float, pitch: float, yaw: float) -> np.ndarray:
    return Rotation.from_euler("ZYX", [yaw, pitch, roll]).as_quat()


def gravity_in_body(roll: float, pitch: float, g: float) -> np.ndarray:
    """
    Specific-force reading of a static accelerometer at (roll, pitch).

    This is R^T @ [0, 0, g]; yaw does not enter.
    """
    sr, cr = math.sin(roll), math.cos(roll)
    sp, cp = math.sin(pitch), math.cos(pitch)
    return np.array([-sp * g, sr * cp * g, cr * cp * g], dtype=np.float64)
