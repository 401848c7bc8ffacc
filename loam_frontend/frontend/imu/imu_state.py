"""
Inertial state types.

InertialState is created by the integrator on every accepted sample and is
immutable afterwards; arrays are stored read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


def _frozen_vec3(v) -> np.ndarray:
    arr = np.array(v, dtype=np.float64).reshape(3)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class InertialState:
    """
    Platform state at one inertial sample.

    stamp:        seconds
    roll/pitch/yaw: orientation (rad), R = Rz(yaw) Ry(pitch) Rx(roll)
    acceleration: gravity-compensated linear acceleration, lidar-aligned body frame (m/s^2)
    velocity:     integrated velocity, world frame (m/s)
    position:     integrated position, world frame (m)
    """
    stamp: float
    roll: float
    pitch: float
    yaw: float
    acceleration: np.ndarray
    velocity: np.ndarray
    position: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "stamp", float(self.stamp))
        object.__setattr__(self, "roll", float(self.roll))
        object.__setattr__(self, "pitch", float(self.pitch))
        object.__setattr__(self, "yaw", float(self.yaw))
        object.__setattr__(self, "acceleration", _frozen_vec3(self.acceleration))
        object.__setattr__(self, "velocity", _frozen_vec3(self.velocity))
        object.__setattr__(self, "position", _frozen_vec3(self.position))

    @property
    def rpy(self) -> Tuple[float, float, float]:
        return (self.roll, self.pitch, self.yaw)

    @classmethod
    def zero(cls, stamp: float = 0.0) -> "InertialState":
        return cls(
            stamp=stamp,
            roll=0.0,
            pitch=0.0,
            yaw=0.0,
            acceleration=np.zeros(3),
            velocity=np.zeros(3),
            position=np.zeros(3),
        )


@dataclass(frozen=True)
class InterpolationResult:
    """
    Estimated state at a query time.

    degraded:     query preceded the history (or history empty); state is the
                  oldest sample (or a zero state)
    extrapolated: query followed the newest sample; position advanced with the
                  newest velocity, orientation held
    """
    state: InertialState
    degraded: bool = False
    extrapolated: bool = False
