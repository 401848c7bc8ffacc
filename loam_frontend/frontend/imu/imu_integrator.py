"""
Inertial integrator: raw samples -> InertialState -> ImuHistory.

Per accepted sample:
  1. rotate acceleration (and orientation) into the lidar-aligned frame with the
     resolved sensor extrinsic, if any
  2. subtract gravity projected onto the body axes from roll/pitch
  3. rotate the residual into the world frame with roll/pitch/yaw and
     double-integrate over the time since the previous sample (zero on first)

Out-of-order and non-finite samples are discarded and counted; they never
reach the history.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.spatial.transform import Rotation

from loam_frontend.common import constants
from loam_frontend.common.geometry import gravity_in_body, rpy_to_rotmat
from loam_frontend.frontend.imu.imu_history import ImuHistory
from loam_frontend.frontend.imu.imu_state import InertialState

_logger = logging.getLogger(__name__)


def _orientation_to_rotation(orientation) -> Rotation:
    o = np.asarray(orientation, dtype=np.float64).reshape(-1)
    if o.shape[0] == 4:
        return Rotation.from_quat(o)
    if o.shape[0] == 3:
        roll, pitch, yaw = o
        return Rotation.from_euler("ZYX", [yaw, pitch, roll])
    raise ValueError(f"orientation must be quaternion [x,y,z,w] or [roll,pitch,yaw], got shape {o.shape}")


class InertialIntegrator:
    """
    Turns raw inertial samples into integrated states in an ImuHistory.

    The extrinsic R_lidar_imu (3x3) may be set after construction, once the
    sensor transform has been resolved.
    """

    def __init__(
        self,
        history: ImuHistory,
        gravity: float = constants.GRAVITY_DEFAULT,
        R_lidar_imu: Optional[np.ndarray] = None,
    ) -> None:
        self.history = history
        self.gravity = float(gravity)
        self._R_lidar_imu: Optional[Rotation] = None
        self.accepted_count = 0
        self.rejected_count = 0
        if R_lidar_imu is not None:
            self.set_extrinsic(R_lidar_imu)

    def set_extrinsic(self, R_lidar_imu: Optional[np.ndarray]) -> None:
        """Set (or clear with None) the inertial-to-lidar rotation."""
        if R_lidar_imu is None:
            self._R_lidar_imu = None
            return
        self._R_lidar_imu = Rotation.from_matrix(np.asarray(R_lidar_imu, dtype=np.float64))

    def transform_sample(self, orientation, linear_acceleration) -> tuple[Rotation, np.ndarray]:
        """Express orientation and acceleration in lidar-aligned axes."""
        rot = _orientation_to_rotation(orientation)
        acc = np.asarray(linear_acceleration, dtype=np.float64).reshape(3)
        if self._R_lidar_imu is None:
            return rot, acc
        R = self._R_lidar_imu
        return R * rot * R.inv(), R.apply(acc)

    def add_sample(self, stamp: float, orientation, linear_acceleration) -> Optional[InertialState]:
        """
        Integrate one raw sample and append it to the history.

        orientation: quaternion [x, y, z, w] or [roll, pitch, yaw]
        linear_acceleration: raw accelerometer reading (m/s^2, includes gravity)

        Returns the new state, or None if the sample was rejected.
        """
        stamp = float(stamp)
        o = np.asarray(orientation, dtype=np.float64).reshape(-1)
        acc_raw = np.asarray(linear_acceleration, dtype=np.float64).reshape(-1)
        if not (np.isfinite(stamp) and np.all(np.isfinite(o)) and np.all(np.isfinite(acc_raw))):
            self.rejected_count += 1
            _logger.warning("Inertial sample at t=%.6f has non-finite values; discarded", stamp)
            return None

        prev = self.history.newest()
        if prev is not None and stamp < prev.stamp:
            self.rejected_count += 1
            _logger.warning(
                "Out-of-order inertial sample t=%.6f < newest t=%.6f; discarded (%d rejected so far)",
                stamp, prev.stamp, self.rejected_count,
            )
            return None

        rot, acc = self.transform_sample(o, acc_raw)
        yaw, pitch, roll = rot.as_euler("ZYX")
        acc_lin = acc - gravity_in_body(roll, pitch, self.gravity)

        if prev is None:
            velocity = np.zeros(3)
            position = np.zeros(3)
        else:
            dt = stamp - prev.stamp
            a_world = rpy_to_rotmat(roll, pitch, yaw) @ acc_lin
            position = prev.position + prev.velocity * dt + 0.5 * a_world * dt * dt
            velocity = prev.velocity + a_world * dt

        state = InertialState(
            stamp=stamp,
            roll=roll,
            pitch=pitch,
            yaw=yaw,
            acceleration=acc_lin,
            velocity=velocity,
            position=position,
        )
        self.history.push(state)
        self.accepted_count += 1
        return state
