"""
Common package for the LOAM front end.

Shared constants, parameter models and geometry used by frontend and backend.

Subpackages:
- geometry/: roll/pitch/yaw rotation operators
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "OpReport",
    "RegistrationParams",
    "constants",
]

_LAZY_ATTRS: dict[str, tuple[str, str | None]] = {
    "OpReport": ("loam_frontend.common.op_report", "OpReport"),
    "RegistrationParams": ("loam_frontend.common.param_models", "RegistrationParams"),
    # Expose as a submodule, but do not eagerly import it at package import time.
    "constants": ("loam_frontend.common.constants", None),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return module if attr_name is None else getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
