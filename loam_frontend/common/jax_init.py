"""
Common JAX Initialization Module.

This module initializes JAX once at import time.
All other modules should import JAX from here instead of importing jax directly
to ensure consistent initialization.

Usage:
    from loam_frontend.common.jax_init import jax, jnp

The per-sweep correction kernel is small and latency bound, so the default
platform is CPU. Export JAX_PLATFORMS=cuda before import to run it on a GPU.
"""

from __future__ import annotations

import os

# Configure JAX environment variables BEFORE importing JAX.
os.environ.setdefault("JAX_PLATFORMS", "cpu")
os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")

import jax
import jax.numpy as jnp

# x64 keeps timestamps (seconds since epoch) and positions exact enough for
# sub-millimetre corrections.
jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
