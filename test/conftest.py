import math
import os
import sys
import pytest
from typing import Dict, Any

import numpy as np

# Ensure local package import works for pytest collection.
_TEST_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_TEST_DIR, ".."))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from loam_frontend.common.param_models import RegistrationParams  # noqa: E402

# =============================================================================
# Production Config Fixtures
# =============================================================================


def _load_yaml_file(path: str) -> Dict[str, Any]:
    """Load a YAML config file, handling the ros__parameters wrapper."""
    import yaml
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    # ROS2 YAML files wrap parameters in /**:/ros__parameters:
    if "/**" in data and "ros__parameters" in data.get("/**", {}):
        return data["/**"]["ros__parameters"]
    return data


@pytest.fixture
def prod_config_path() -> str:
    return os.path.join(_PKG_ROOT, "config", "scan_registration.yaml")


@pytest.fixture
def prod_config(prod_config_path) -> Dict[str, Any]:
    """
    Raw parameter dict of the shipped scan registration config.

    Usage:
        def test_something(prod_config):
            assert prod_config["scanPeriod"] == 0.1
    """
    if not os.path.exists(prod_config_path):
        pytest.skip("config/scan_registration.yaml not found")
    return _load_yaml_file(prod_config_path)


@pytest.fixture
def default_params() -> RegistrationParams:
    return RegistrationParams()


# =============================================================================
# Synthetic Geometry Fixtures
# =============================================================================

@pytest.fixture
def numpy_seed():
    """Set numpy random seed for reproducible tests."""
    np.random.seed(42)
    yield


def make_flat_ring(n: int = 100, spacing: float = 0.01, distance: float = 10.0) -> np.ndarray:
    """n collinear points on a wall at x=distance, centred on the x axis."""
    y = (np.arange(n) - (n - 1) / 2.0) * spacing
    return np.stack([np.full(n, distance), y, np.zeros(n)], axis=1)


def make_corner_ring(n: int = 100, corner: int = 50, step: float = 0.02) -> np.ndarray:
    """Two perpendicular straight legs meeting in a 90 degree corner at index `corner`."""
    c = np.array([5.0, 0.0, 0.0])
    u1 = np.array([step, step, 0.0])
    u2 = np.array([step, -step, 0.0])
    pts = []
    for j in range(n):
        if j <= corner:
            pts.append(c + (corner - j) * u1)
        else:
            pts.append(c + (j - corner) * u2)
    return np.asarray(pts)


def make_room_sweep(
    n_rings: int = 16,
    n_azimuth: int = 720,
    half_x: float = 10.0,
    half_y: float = 8.0,
    scan_period: float = 0.1,
):
    """
    One clockwise sweep of a box room seen from its centre.

    Returns (points (N,3), rings (N,), relative_times (N,)) in firing order
    (all rings at one azimuth, then the next azimuth).
    """
    pts = []
    rings = []
    times = []
    for k in range(n_azimuth):
        az = -2.0 * math.pi * k / n_azimuth
        c, s = math.cos(az), math.sin(az)
        r_h = min(
            half_x / abs(c) if abs(c) > 1e-12 else math.inf,
            half_y / abs(s) if abs(s) > 1e-12 else math.inf,
        )
        for ring in range(n_rings):
            elev = math.radians(-15.0 + 2.0 * ring)
            pts.append((r_h * c, r_h * s, r_h * math.tan(elev)))
            rings.append(ring)
            times.append(scan_period * k / n_azimuth)
    return np.asarray(pts), np.asarray(rings), np.asarray(times)


@pytest.fixture
def flat_ring():
    return make_flat_ring()


@pytest.fixture
def corner_ring():
    return make_corner_ring()


@pytest.fixture
def room_sweep():
    return make_room_sweep()
