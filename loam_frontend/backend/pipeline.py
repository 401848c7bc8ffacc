"""
Scan-registration pipeline.

Owns the inertial path (integrator + history), the sweep accumulator and the
extrinsic resolver, and runs the per-sweep chain:

  take sweep -> snapshot history -> motion compensation -> feature extraction

The history is the only state shared between the two producers. Inertial
samples append under a short lock; a sweep takes a snapshot under the same
lock and then processes outside it, so neither producer waits on sweep
processing. Point accumulation and sweep processing touch disjoint Sweep
instances.

Importable without ROS.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from loam_frontend.common.op_report import OpReport
from loam_frontend.common.param_models import RegistrationParams
from loam_frontend.backend.operators.feature_selection import FeatureSets, extract_features
from loam_frontend.backend.operators.motion_compensation import SweepMotionSummary, compensate_sweep
from loam_frontend.frontend.extrinsics import ExtrinsicResolver, ExtrinsicState
from loam_frontend.frontend.imu.imu_history import ImuHistory
from loam_frontend.frontend.imu.imu_integrator import InertialIntegrator
from loam_frontend.frontend.imu.imu_state import InertialState
from loam_frontend.frontend.sweep.sweep import Sweep
from loam_frontend.frontend.sweep.sweep_accumulator import SweepAccumulator, message_relative_times

_logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Everything published for one sweep."""
    stamp: float
    cloud: np.ndarray           # (N,3) compensated full cloud
    intensities: np.ndarray     # (N,) ring + rel_time / scan_period
    features: FeatureSets
    summary: SweepMotionSummary
    reports: List[OpReport] = field(default_factory=list)

    @property
    def compensated(self) -> bool:
        return self.summary.compensated


class ScanRegistrationPipeline:
    """
    Motion-compensated feature extraction for a spinning lidar.

    Construct with validated RegistrationParams (configuration errors surface
    at RegistrationParams construction, before any state exists).

    sweep_per_message=False: points stream in through add_points() and sweep
    boundaries are detected from azimuth wrap / elapsed time.
    sweep_per_message=True: every process_cloud() call is one whole sweep.
    """

    def __init__(
        self,
        params: RegistrationParams,
        resolver: Optional[ExtrinsicResolver] = None,
        sweep_per_message: bool = False,
    ):
        self.params = params
        self.history = ImuHistory(params.imu_history_size)
        self.integrator = InertialIntegrator(self.history, gravity=params.gravity)
        self.accumulator = SweepAccumulator(params, detect_boundaries=not sweep_per_message)
        self.sweep_per_message = bool(sweep_per_message)
        self.resolver = resolver or ExtrinsicResolver(
            max_attempts=params.transform_lookup_retries,
            backoff_sec=params.transform_lookup_backoff_sec,
        )
        self._history_lock = threading.Lock()
        self.sweeps_processed = 0
        self.uncompensated_sweeps = 0

    # ------------------------------------------------------------------
    # Inertial path
    # ------------------------------------------------------------------

    @property
    def compensation_enabled(self) -> bool:
        return not self.resolver.is_disabled()

    def apply_extrinsic(self) -> ExtrinsicState:
        """
        Push the resolver's outcome into the integrator.

        A resolved extrinsic rotates every later sample into the lidar frame;
        samples integrated in the old frame are dropped.
        """
        state = self.resolver.state
        if state is ExtrinsicState.RESOLVED:
            with self._history_lock:
                self.integrator.set_extrinsic(self.resolver.extrinsic.rotation)
                self.history.clear()
        return state

    def add_imu(self, stamp: float, orientation, linear_acceleration) -> Optional[InertialState]:
        """Integrate one raw inertial sample (never blocks on sweep processing)."""
        with self._history_lock:
            return self.integrator.add_sample(stamp, orientation, linear_acceleration)

    def history_snapshot(self) -> ImuHistory:
        with self._history_lock:
            return self.history.snapshot()

    # ------------------------------------------------------------------
    # Point path
    # ------------------------------------------------------------------

    def add_points(
        self,
        stamp: float,
        points: np.ndarray,
        rings: np.ndarray,
        relative_times: Optional[np.ndarray] = None,
    ) -> List[SweepResult]:
        """
        Stream points into the accumulator. relative_times are per-point
        offsets from stamp (derived from azimuth relative to the first point
        if omitted); a sweep is opened at stamp if none is open.

        Returns the results of every sweep completed by this batch.
        """
        if self.sweep_per_message:
            raise RuntimeError("add_points() needs a streaming pipeline (sweep_per_message=False)")
        acc = self.accumulator
        if not acc.is_active():
            acc.begin_sweep(stamp)
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        rings = np.asarray(rings).reshape(-1)
        if relative_times is None:
            relative_times = message_relative_times(
                pts, self.params.scan_period, self.params.clockwise_rotation
            )
        abs_times = float(stamp) + np.asarray(relative_times, dtype=np.float64).reshape(-1)

        results = []
        for i in range(pts.shape[0]):
            # The open sweep's start moves whenever a sweep completes.
            acc.append(pts[i], rings[i], abs_times[i] - acc.start_stamp)
            if acc.is_sweep_complete():
                results.append(self.process_sweep(acc.take_sweep()))
        return results

    def process_cloud(
        self,
        stamp: float,
        points: np.ndarray,
        rings: np.ndarray,
        relative_times: Optional[np.ndarray] = None,
    ) -> SweepResult:
        """Process one message holding a whole sweep that started at stamp."""
        if not self.sweep_per_message:
            raise RuntimeError("process_cloud() needs sweep_per_message=True")
        acc = self.accumulator
        acc.begin_sweep(stamp)
        rejected = acc.append_cloud(points, rings, relative_times)
        if rejected:
            _logger.warning("Sweep at t=%.6f: %d malformed points excluded", float(stamp), rejected)
        acc.complete()
        return self.process_sweep(acc.take_sweep())

    # ------------------------------------------------------------------
    # Per-sweep processing
    # ------------------------------------------------------------------

    def process_sweep(self, sweep: Sweep) -> SweepResult:
        """Compensate and classify one sweep (runs to completion)."""
        history = self.history_snapshot()
        summary, comp_report = compensate_sweep(sweep, history, enabled=self.compensation_enabled)
        features, feat_report = extract_features(sweep, self.params)

        self.sweeps_processed += 1
        if not summary.compensated:
            self.uncompensated_sweeps += 1
        if comp_report.approximation_triggers:
            _logger.debug(
                "Sweep at t=%.6f approximated: %s",
                sweep.start_stamp, ",".join(comp_report.approximation_triggers),
            )

        return SweepResult(
            stamp=sweep.start_stamp,
            cloud=sweep.cloud(),
            intensities=sweep.intensities(),
            features=features,
            summary=summary,
            reports=[comp_report, feat_report],
        )
