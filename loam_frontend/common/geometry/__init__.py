"""
Geometry package for the LOAM front end.

Roll/pitch/yaw rotation helpers with NumPy and JAX backends.

Modules:
- rpy_numpy: NumPy/scipy conversions (CPU, used on the inertial path)
- rpy_jax: JAX rotation operators (used by the per-point correction kernel)

Usage:
    from loam_frontend.common.geometry import rpy_to_rotmat, quat_to_rpy
    from loam_frontend.common.geometry import rpy_jax
"""

from __future__ import annotations

from loam_frontend.common.geometry.rpy_numpy import (
    wrap_angle,
    rpy_to_rotmat,
    rotmat_to_rpy,
    quat_to_rpy,
    rpy_to_quat,
    gravity_in_body,
)

__all__ = [
    "wrap_angle",
    "rpy_to_rotmat",
    "rotmat_to_rpy",
    "quat_to_rpy",
    "rpy_to_quat",
    "gravity_in_body",
]
