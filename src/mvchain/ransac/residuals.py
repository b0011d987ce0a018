"""
Applying 3x3 models to points, and the per-family error metrics used to
score RANSAC candidates.

Transforms (euclidean / similarity / affine / homography):
    symmetric transfer error, in pixels
        e_i = sqrt( (|M x1_i - x2_i|^2 + |M^-1 x2_i - x1_i|^2) / 2 )

Fundamental:
    Sampson distance, a first-order approximation of the geometric
    distance of a correspondence to the epipolar constraint
        e_i = |x2^T F x1| / sqrt((F x1)_0^2 + (F x1)_1^2 + (F^T x2)_0^2 + (F^T x2)_1^2)
"""

from __future__ import annotations

import numpy as np

from .types import (
    Points2D, PointsHomog, Mat3x3, FloatArray, ModelKind,
    as_homogeneous)

# Homogeneous w below this maps the point to infinity.
_EPS_W = 1e-12


# ---------- Apply transform ----------
def apply_T(T: Mat3x3, pts: Points2D) -> Points2D:
    """
    Apply a 3x3 transform to (N,2) points, returning (N,2) points.

        [x', y', w]^T = T @ [x, y, 1]^T,   result = (x'/w, y'/w)

    For affine-like matrices w is always 1. Points mapped to w ~ 0 come
    back as inf.
    """
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts.shape}")
    if T.shape != (3, 3):
        raise ValueError(f"Expected T shape (3,3), got {T.shape}")

    ph: PointsHomog = as_homogeneous(pts)

    # Each point is a row, so multiply by T^T
    ph_t = ph @ T.T
    w = ph_t[:, 2:3]

    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(np.abs(w) > _EPS_W, ph_t[:, :2] / w, np.inf)
    return out.astype(np.float64)


def transfer_error(T: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """
    Forward-only L2 residuals in pixels:

        e_i = || apply_T(T, pts0[i]) - pts1[i] ||_2

    Returns shape (N,)
    """
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    predicted = apply_T(T, pts0)
    diff = predicted - pts1.astype(np.float64)
    return np.linalg.norm(diff, axis=1).astype(np.float64)


def symmetric_transfer_error(T: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """RMS of the forward and backward transfer errors. Raises LinAlgError if T is singular."""
    T_inv = np.linalg.inv(T)
    fwd = transfer_error(T, pts0, pts1)
    bwd = transfer_error(T_inv, pts1, pts0)
    return np.sqrt(0.5 * (fwd * fwd + bwd * bwd))


# ---------- Epipolar errors ----------
def epipolar_residuals(F: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """Signed algebraic residuals x2^T F x1, shape (N,)."""
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    x1 = as_homogeneous(pts0)
    x2 = as_homogeneous(pts1)
    return np.einsum("ij,jk,ik->i", x2, F, x1)


def sampson_error(F: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    x1 = as_homogeneous(pts0)
    x2 = as_homogeneous(pts1)

    Fx1 = x1 @ F.T      # rows: F @ x1_i
    Ftx2 = x2 @ F       # rows: F^T @ x2_i
    num = np.abs(np.sum(x2 * Fx1, axis=1))
    den = np.sqrt(Fx1[:, 0] ** 2 + Fx1[:, 1] ** 2 + Ftx2[:, 0] ** 2 + Ftx2[:, 1] ** 2)

    with np.errstate(divide="ignore", invalid="ignore"):
        err = np.where(den > 0.0, num / den, np.where(num > 0.0, np.inf, 0.0))
    return err.astype(np.float64)


def model_residuals(kind: ModelKind, M: Mat3x3, pts0: Points2D, pts1: Points2D) -> FloatArray:
    """Dispatch to the scoring metric of a model family."""
    if kind is ModelKind.FUNDAMENTAL:
        return sampson_error(M, pts0, pts1)
    return symmetric_transfer_error(M, pts0, pts1)
