"""
Isotropic point normalization (Hartley preconditioning).

Linear solves on raw pixel coordinates are badly conditioned: the design
matrix mixes entries of order 1 with entries of order x*x' (~1e5 or more).
Before solving we map each point set with

    T = [[s, 0, -s*cx],
         [0, s, -s*cy],
         [0, 0,     1]]

so the mapped set has its centroid at the origin and a mean distance of
sqrt(2) from it. The same canonical distance is used for both point sets
of a pair, so a model solved in normalized coordinates de-normalizes as

    M = inv(T2) @ M_normalized @ T1
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import DegenerateInputError
from .types import Points2D, Mat3x3

CANONICAL_MEAN_DISTANCE = float(np.sqrt(2.0))

# Mean distance below this is treated as "all points coincident".
_EPS_SPREAD = 1e-12


def centroid_and_mean_distance(pts: Points2D) -> Tuple[np.ndarray, float]:
    """
    Return (centroid, mean Euclidean distance from centroid).

    Raises DegenerateInputError for an empty set or coincident points.
    """
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts.shape}")
    if pts.shape[0] < 1:
        raise DegenerateInputError("Cannot normalize an empty point set")

    centroid = pts.mean(axis=0)
    mean_dist = float(np.linalg.norm(pts - centroid, axis=1).mean())

    # scale the tolerance with the coordinate magnitude
    scale_ref = max(1.0, float(np.abs(centroid).max()))
    if not np.isfinite(mean_dist) or mean_dist <= _EPS_SPREAD * scale_ref:
        raise DegenerateInputError("All points are coincident; no finite normalization scale")
    return centroid, mean_dist


def normalization_transform(pts: Points2D) -> Mat3x3:
    """Build the 3x3 scale+translate matrix T described in the module docstring."""
    centroid, mean_dist = centroid_and_mean_distance(pts)
    s = CANONICAL_MEAN_DISTANCE / mean_dist

    T = np.array(
        [
            [s, 0.0, -s * centroid[0]],
            [0.0, s, -s * centroid[1]],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )
    return T


def normalize_points(pts: Points2D) -> Tuple[Mat3x3, Points2D]:
    """
    Normalize a point set.

    Returns (T, normalized) where normalized = T applied to pts.
    Pure function: pts is not modified.
    """
    T = normalization_transform(pts)
    # T is scale+translate only, no homogeneous division needed
    normalized = pts * T[0, 0] + T[:2, 2]
    return T, normalized


def denormalize(M_normalized: Mat3x3, T1: Mat3x3, T2: Mat3x3) -> Mat3x3:
    """Undo normalization of a model solved between T1-mapped and T2-mapped points."""
    return np.linalg.inv(T2) @ M_normalized @ T1
