"""
Operator Report for per-sweep accountability.

Every sweep-level operator that can fall back to an approximation emits an
OpReport that:
1. Declares whether the result is exact
2. Lists all approximation triggers (degraded interpolation, extrapolation,
   uncompensated sweep)
3. Carries metrics the downstream consumer can weight on

Downstream consumers weight uncompensated or degraded sweeps differently, so a
fallback is always declared here rather than hidden.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

TRIGGER_DEGRADED = "DegradedInterpolation"
TRIGGER_EXTRAPOLATION = "Extrapolation"
TRIGGER_UNCOMPENSATED = "Uncompensated"

KNOWN_TRIGGERS = (TRIGGER_DEGRADED, TRIGGER_EXTRAPOLATION, TRIGGER_UNCOMPENSATED)


def _json_safe(obj):
    """
    Convert common scientific types to JSON-serializable Python types.

    Values that cannot be converted fall back to their repr (still visible).
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, (list, tuple)):
        return [_json_safe(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}

    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()

    # JAX arrays support .tolist()
    tolist = getattr(obj, "tolist", None)
    if callable(tolist):
        return tolist()

    return repr(obj)


@dataclass
class OpReport:
    """
    Per-sweep operation report.

    Attributes:
        name: Operator name (e.g., "MotionCompensation")
        exact: True if no fallback was taken
        approximation_triggers: What caused the approximation
        metrics: Counters for debugging and downstream weighting
        notes: Human-readable explanation
        timestamp: When the report was generated
    """
    name: str
    exact: bool
    approximation_triggers: list[str] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)
    notes: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def validate(self) -> None:
        """
        Validate the report is self-consistent.

        Raises ValueError if validation fails.
        """
        if self.exact and self.approximation_triggers:
            raise ValueError("Exact op cannot declare approximation triggers.")
        if not self.exact and not self.approximation_triggers:
            raise ValueError("Approximate op must declare at least one trigger.")
        unknown = [t for t in self.approximation_triggers if t not in KNOWN_TRIGGERS]
        if unknown:
            raise ValueError(f"Unknown approximation triggers: {unknown}")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "exact": self.exact,
            "approximation_triggers": list(self.approximation_triggers),
            "metrics": _json_safe(dict(self.metrics)),
            "notes": self.notes,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)
