"""
Frontend package for the LOAM front end.

Data ingestion and bookkeeping: no per-sweep math lives here.

Subpackages:
- imu/: InertialState, ImuHistory ring buffer, InertialIntegrator
- sweep/: Sweep data model and SweepAccumulator
Modules:
- extrinsics: bounded-retry inertial-to-lidar transform resolution
- pointcloud_codec: PointCloud2 payload decode/encode
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    # Inertial
    "InertialIntegrator",
    "ImuHistory",
    "InertialState",
    # Sweeps
    "Sweep",
    "SweepAccumulator",
    "FeatureLabel",
    # Sensor transform
    "ExtrinsicResolver",
    "ExtrinsicState",
]

_LAZY_ATTRS: dict[str, tuple[str, str]] = {
    # Inertial
    "InertialIntegrator": ("loam_frontend.frontend.imu.imu_integrator", "InertialIntegrator"),
    "ImuHistory": ("loam_frontend.frontend.imu.imu_history", "ImuHistory"),
    "InertialState": ("loam_frontend.frontend.imu.imu_state", "InertialState"),
    # Sweeps
    "Sweep": ("loam_frontend.frontend.sweep.sweep", "Sweep"),
    "SweepAccumulator": ("loam_frontend.frontend.sweep.sweep_accumulator", "SweepAccumulator"),
    "FeatureLabel": ("loam_frontend.frontend.sweep.sweep", "FeatureLabel"),
    # Sensor transform
    "ExtrinsicResolver": ("loam_frontend.frontend.extrinsics", "ExtrinsicResolver"),
    "ExtrinsicState": ("loam_frontend.frontend.extrinsics", "ExtrinsicState"),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
