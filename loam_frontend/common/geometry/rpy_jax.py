"""
JAX roll/pitch/yaw rotation operators.

Same convention as rpy_numpy: R = Rz(yaw) @ Ry(pitch) @ Rx(roll).
All functions are jit/vmap compatible.

THIS MODULE REQUIRES JAX. There is no NumPy fallback.
"""

from __future__ import annotations

from loam_frontend.common.jax_init import jax, jnp


@jax.jit
def rpy_to_rotmat(rpy: jnp.ndarray) -> jnp.ndarray:
    """(3,) [roll, pitch, yaw] -> (3,3) body->world rotation."""
    rpy = jnp.asarray(rpy, dtype=jnp.float64).reshape(-1)
    sr, cr = jnp.sin(rpy[0]), jnp.cos(rpy[0])
    sp, cp = jnp.sin(rpy[1]), jnp.cos(rpy[1])
    sy, cy = jnp.sin(rpy[2]), jnp.cos(rpy[2])
    return jnp.array([
        [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
        [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
        [-sp, cp * sr, cp * cr],
    ])


@jax.jit
def rotate_from_start(
    point: jnp.ndarray,
    rpy_point: jnp.ndarray,
    pos_point: jnp.ndarray,
    rpy_start: jnp.ndarray,
    pos_start: jnp.ndarray,
) -> jnp.ndarray:
    """
    Re-express a point measured at pose (rpy_point, pos_point) in the frame
    of pose (rpy_start, pos_start):

        p_start = R_start^T @ (R_point @ p + pos_point - pos_start)
    """
    R_point = rpy_to_rotmat(rpy_point)
    R_start = rpy_to_rotmat(rpy_start)
    return R_start.T @ (R_point @ point + pos_point - pos_start)
