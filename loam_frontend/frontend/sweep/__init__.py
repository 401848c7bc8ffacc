"""Sweep accumulation: per-ring point buffers and the Sweep data model."""

from loam_frontend.frontend.sweep.sweep import FeatureLabel, RingScan, Sweep
from loam_frontend.frontend.sweep.sweep_accumulator import (
    SweepAccumulator,
    azimuth_phase,
    relative_times_from_azimuth,
)

__all__ = [
    "FeatureLabel",
    "RingScan",
    "Sweep",
    "SweepAccumulator",
    "azimuth_phase",
    "relative_times_from_azimuth",
]
