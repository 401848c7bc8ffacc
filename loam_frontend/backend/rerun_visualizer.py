"""
Rerun visualization of registered sweeps.

Logs the compensated full cloud (coloured by ring) and the four feature
subsets as Points3D under loam/sweep/*. Optional: spawn the viewer or save to
an .rrd file and open it with `rerun recording.rrd`.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from loam_frontend.backend.pipeline import SweepResult

# Entity path, RGB colour, radius
_FEATURE_STYLE = {
    "sharp": ("loam/sweep/corner_sharp", (1.0, 0.1, 0.1), 0.08),
    "less_sharp": ("loam/sweep/corner_less_sharp", (1.0, 0.6, 0.1), 0.05),
    "flat": ("loam/sweep/surface_flat", (0.1, 0.4, 1.0), 0.08),
    "less_flat": ("loam/sweep/surface_less_flat", (0.3, 0.9, 0.9), 0.03),
}


def _ensure_rerun():
    """Lazy import so rerun is optional when use_rerun=False."""
    try:
        import rerun as rr
        return rr
    except ImportError:
        return None


def _set_rerun_time(rr, time_sec: float) -> None:
    """Set current time on the 'time' timeline across rerun API versions."""
    if hasattr(rr, "set_time_seconds"):
        rr.set_time_seconds("time", time_sec)
    else:
        rr.set_time("time", timestamp=time_sec)


def ring_colors(intensities: np.ndarray, n_rings: int) -> np.ndarray:
    """(N,3) float32 colours cycling through hue by ring index."""
    ring = np.floor(np.asarray(intensities, dtype=np.float64)).astype(np.int64)
    hue = (ring % max(n_rings, 1)) / float(max(n_rings, 1))
    # Piecewise-linear hue -> RGB
    r = np.clip(np.abs(hue * 6.0 - 3.0) - 1.0, 0.0, 1.0)
    g = np.clip(2.0 - np.abs(hue * 6.0 - 2.0), 0.0, 1.0)
    b = np.clip(2.0 - np.abs(hue * 6.0 - 4.0), 0.0, 1.0)
    return np.stack([r, g, b], axis=1).astype(np.float32)


class RerunVisualizer:
    """
    Log sweeps to Rerun.

    Call init() once when use_rerun is True; then log_sweep() per processed sweep.
    """

    def __init__(
        self,
        application_id: str = "loam_frontend",
        spawn: bool = False,
        recording_path: Optional[str] = None,
        n_rings: int = 16,
    ):
        self._application_id = application_id
        self._spawn = spawn
        self._recording_path = recording_path
        self._n_rings = n_rings
        self._initialized = False
        self._rr = None

    @property
    def active(self) -> bool:
        return self._rr is not None

    def init(self) -> bool:
        """Initialize Rerun (spawn viewer and/or record to file). Returns True if active."""
        if self._initialized:
            return self._rr is not None
        rr = _ensure_rerun()
        if rr is None:
            return False
        self._rr = rr
        rr.init(
            application_id=self._application_id,
            default_enabled=True,
            spawn=self._spawn,
        )
        # If recording to file: must call save() before any log (Rerun API).
        if self._recording_path and not self._spawn:
            rr.save(self._recording_path)
        self._initialized = True
        return True

    def log_sweep(self, result: SweepResult) -> None:
        """Log full cloud, feature subsets and motion summary for one sweep."""
        if self._rr is None:
            return
        rr = self._rr
        _set_rerun_time(rr, result.stamp)

        cloud = np.asarray(result.cloud, dtype=np.float32).reshape(-1, 3)
        if cloud.shape[0]:
            rr.log(
                "loam/sweep/cloud",
                rr.Points3D(positions=cloud, colors=ring_colors(result.intensities, self._n_rings), radii=0.02),
            )
        else:
            rr.log("loam/sweep/cloud", rr.Points3D(positions=np.zeros((0, 3), dtype=np.float32)))

        for name, (path, color, radius) in _FEATURE_STYLE.items():
            subset = getattr(result.features, name)
            pts = np.asarray(subset.points, dtype=np.float32).reshape(-1, 3)
            rr.log(path, rr.Points3D(positions=pts, colors=[color], radii=radius))

        s = result.summary
        rr.log(
            "loam/sweep/summary",
            rr.TextLog(
                f"compensated={s.compensated} degraded={s.degraded_points} "
                f"dpos=[{s.position_delta[0]:.3f}, {s.position_delta[1]:.3f}, {s.position_delta[2]:.3f}]"
            ),
        )
