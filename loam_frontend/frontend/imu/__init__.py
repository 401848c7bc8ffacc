"""
Inertial path: state types, ring-buffer history, integrator.

Pure NumPy/scipy; importable without a ROS environment.
"""

from loam_frontend.frontend.imu.imu_state import InertialState, InterpolationResult
from loam_frontend.frontend.imu.imu_history import ImuHistory, InterpolatedStates
from loam_frontend.frontend.imu.imu_integrator import InertialIntegrator

__all__ = [
    "InertialState",
    "InterpolationResult",
    "ImuHistory",
    "InterpolatedStates",
    "InertialIntegrator",
]
