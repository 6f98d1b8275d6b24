"""
Geometry Helpers - rotations, quaternions and blending.

Quaternions are handled as (w, x, y, z) numpy arrays everywhere in this
package; scipy uses (x, y, z, w) internally, so conversion happens here
and nowhere else.
"""

import math
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation, Slerp

ORTHONORMAL_TOL = 1e-6


# ============================================================================
# Scalar Utilities
# ============================================================================

def clamp(v: float, lo: float, hi: float) -> float:
    """Clamp value between lo and hi."""
    return max(lo, min(hi, v))


def ema(old: np.ndarray, new: np.ndarray, alpha: float) -> np.ndarray:
    """Exponential moving average: alpha * new + (1 - alpha) * old."""
    return alpha * np.asarray(new, dtype=np.float64) + (1.0 - alpha) * np.asarray(old, dtype=np.float64)


# ============================================================================
# Elementary Rotations
# ============================================================================

def rotx(angle: float) -> np.ndarray:
    """Rotation about the X axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([
        [1.0, 0.0, 0.0],
        [0.0, c, -s],
        [0.0, s, c],
    ])


def roty(angle: float) -> np.ndarray:
    """Rotation about the Y axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([
        [c, 0.0, s],
        [0.0, 1.0, 0.0],
        [-s, 0.0, c],
    ])


def rotz(angle: float) -> np.ndarray:
    """Rotation about the Z axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([
        [c, -s, 0.0],
        [s, c, 0.0],
        [0.0, 0.0, 1.0],
    ])


def is_rotation(rot: np.ndarray, tol: float = ORTHONORMAL_TOL) -> bool:
    """
    Check that a matrix is a proper rotation.

    Columns must be unit length and pairwise orthogonal within tol, and the
    determinant must be positive (no reflection).
    """
    rot = np.asarray(rot, dtype=np.float64)
    if rot.shape != (3, 3) or not np.all(np.isfinite(rot)):
        return False
    gram = rot.T @ rot
    if not np.allclose(gram, np.eye(3), rtol=0.0, atol=tol):
        return False
    return float(np.linalg.det(rot)) > 0.0


# ============================================================================
# Quaternions
# ============================================================================

def matrix_to_quat(rot: np.ndarray) -> np.ndarray:
    """
    Convert a rotation matrix to a unit quaternion (w, x, y, z).

    The sign is fixed so that w >= 0.
    """
    x, y, z, w = Rotation.from_matrix(rot).as_quat()
    q = np.array([w, x, y, z])
    if q[0] < 0.0:
        q = -q
    return q


def quat_to_matrix(q: Sequence[float]) -> np.ndarray:
    """Convert a quaternion (w, x, y, z) to a rotation matrix."""
    w, x, y, z = q
    return Rotation.from_quat([x, y, z, w]).as_matrix()


def geodesic_angle(rot_a: np.ndarray, rot_b: np.ndarray) -> float:
    """
    Angular separation of two orientations in radians.

    angle = 2 * acos(|q_a . q_b|), which is the length of the shortest arc
    between them on the rotation manifold.
    """
    qa = matrix_to_quat(rot_a)
    qb = matrix_to_quat(rot_b)
    d = clamp(abs(float(np.dot(qa, qb))), -1.0, 1.0)
    return 2.0 * math.acos(d)


def slerp(rot_a: np.ndarray, rot_b: np.ndarray, t: float) -> np.ndarray:
    """Spherical linear interpolation from rot_a (t=0) to rot_b (t=1)."""
    if t <= 0.0:
        return np.array(rot_a, dtype=np.float64)
    if t >= 1.0:
        return np.array(rot_b, dtype=np.float64)
    key_rots = Rotation.from_matrix(np.stack([rot_a, rot_b]))
    interp = Slerp([0.0, 1.0], key_rots)
    return interp([t]).as_matrix()[0]
