"""
One-time inertial-to-lidar transform resolution.

State machine (explicit tagged state, DISABLED is terminal):

    UNRESOLVED --resolve()--> RESOLVING(1) --ok--> RESOLVED
                                   |
                                 fail
                                   v
                              RESOLVING(n+1) ... n == max_attempts --> DISABLED

A disabled resolver never retries; the pipeline runs uncompensated for the
rest of the session and every sweep is flagged accordingly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

import numpy as np

from loam_frontend.common import constants

_logger = logging.getLogger(__name__)

# lookup() returns (R 3x3, t 3) or None when the transform is not (yet) available.
TransformLookup = Callable[[], Optional[Tuple[np.ndarray, np.ndarray]]]

_LOOKUP_ERRORS = (LookupError, RuntimeError, ValueError, TypeError)


class ExtrinsicState(Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    DISABLED = "disabled"


@dataclass(frozen=True)
class SensorExtrinsic:
    """Rigid transform taking inertial-frame vectors into the lidar frame."""
    rotation: np.ndarray      # (3,3)
    translation: np.ndarray   # (3,)

    @classmethod
    def identity(cls) -> "SensorExtrinsic":
        return cls(rotation=np.eye(3), translation=np.zeros(3))


class ExtrinsicResolver:
    """
    Bounded-retry resolution of the inertial-to-lidar extrinsic.

    sleep is injectable so tests (and callers running inside an executor) do
    not have to wait out the real backoff.
    """

    def __init__(
        self,
        max_attempts: int = constants.TRANSFORM_LOOKUP_RETRIES_DEFAULT,
        backoff_sec: float = constants.TRANSFORM_LOOKUP_BACKOFF_SEC_DEFAULT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if backoff_sec < 0.0:
            raise ValueError(f"backoff_sec must be >= 0, got {backoff_sec}")
        self.max_attempts = int(max_attempts)
        self.backoff_sec = float(backoff_sec)
        self._sleep = sleep
        self._state = ExtrinsicState.UNRESOLVED
        self._attempt = 0
        self._extrinsic: Optional[SensorExtrinsic] = None

    @property
    def state(self) -> ExtrinsicState:
        return self._state

    @property
    def attempt(self) -> int:
        """Attempts made so far (meaningful in RESOLVING / DISABLED)."""
        return self._attempt

    @property
    def extrinsic(self) -> Optional[SensorExtrinsic]:
        return self._extrinsic

    def is_resolved(self) -> bool:
        return self._state is ExtrinsicState.RESOLVED

    def is_disabled(self) -> bool:
        return self._state is ExtrinsicState.DISABLED

    def try_once(self, lookup: TransformLookup) -> ExtrinsicState:
        """Make a single attempt (no sleeping). Terminal states are returned unchanged."""
        if self._state in (ExtrinsicState.RESOLVED, ExtrinsicState.DISABLED):
            return self._state

        self._attempt += 1
        self._state = ExtrinsicState.RESOLVING
        try:
            found = lookup()
        except _LOOKUP_ERRORS as e:
            _logger.warning("Transform lookup attempt %d/%d failed: %s", self._attempt, self.max_attempts, e)
            found = None

        if found is not None:
            R, t = found
            R = np.asarray(R, dtype=np.float64).reshape(3, 3)
            t = np.asarray(t, dtype=np.float64).reshape(3)
            if np.all(np.isfinite(R)) and np.all(np.isfinite(t)):
                self._extrinsic = SensorExtrinsic(rotation=R, translation=t)
                self._state = ExtrinsicState.RESOLVED
                _logger.info("Inertial-to-lidar transform resolved after %d attempt(s)", self._attempt)
                return self._state
            _logger.warning("Transform lookup attempt %d returned non-finite values", self._attempt)

        if self._attempt >= self.max_attempts:
            self._state = ExtrinsicState.DISABLED
            _logger.error(
                "Inertial-to-lidar transform unavailable after %d attempts; "
                "motion compensation disabled for this session",
                self._attempt,
            )
        return self._state

    def resolve(self, lookup: TransformLookup) -> ExtrinsicState:
        """Retry lookup with fixed backoff until RESOLVED or DISABLED."""
        while True:
            state = self.try_once(lookup)
            if state in (ExtrinsicState.RESOLVED, ExtrinsicState.DISABLED):
                return state
            self._sleep(self.backoff_sec)

    def disable(self, reason: str) -> None:
        """Force the terminal DISABLED state."""
        if self._state is not ExtrinsicState.DISABLED:
            _logger.error("Motion compensation disabled: %s", reason)
        self._state = ExtrinsicState.DISABLED
        self._extrinsic = None
