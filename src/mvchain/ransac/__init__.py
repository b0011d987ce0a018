"""
RANSAC package

This module provides:
- Typed geometry primitives and the model families
- Point normalization and linear solvers for every family
- A reusable generic RANSAC implementation
- The robust pairwise estimator built on top of it
"""

from .types import (
    FloatArray, BoolArray, Points2D, PointsHomog, Mask2D, Mat3x3,
    ModelKind, GeometricModel, ModelFitter, RansacResult,
    as_points2d, as_homogeneous, is_valid_mat3x3,
)

from .errors import (
    DegenerateInputError, InsufficientCorrespondencesError,
    RobustEstimationFailedError, CorrespondenceLookupError, ChainCancelledError,
)

from .normalize import normalize_points, normalization_transform, CANONICAL_MEAN_DISTANCE

from .linear import (
    solve, solve_euclidean, solve_similarity, solve_affine,
    solve_homography, solve_fundamental, enforce_rank2,
)

from .residuals import (
    apply_T, transfer_error, symmetric_transfer_error,
    epipolar_residuals, sampson_error, model_residuals,
)

from .fitters import LinearModelFitter, fitter_for, is_valid_model

from .core import ransac, estimate_robust, required_iterations

__all__ = [
    "FloatArray", "BoolArray", "Points2D", "PointsHomog", "Mask2D", "Mat3x3",
    "ModelKind", "GeometricModel", "ModelFitter", "RansacResult",
    "as_points2d", "as_homogeneous", "is_valid_mat3x3",
    "DegenerateInputError", "InsufficientCorrespondencesError",
    "RobustEstimationFailedError", "CorrespondenceLookupError", "ChainCancelledError",
    "normalize_points", "normalization_transform", "CANONICAL_MEAN_DISTANCE",
    "solve", "solve_euclidean", "solve_similarity", "solve_affine",
    "solve_homography", "solve_fundamental", "enforce_rank2",
    "apply_T", "transfer_error", "symmetric_transfer_error",
    "epipolar_residuals", "sampson_error", "model_residuals",
    "LinearModelFitter", "fitter_for", "is_valid_model",
    "ransac", "estimate_robust", "required_iterations",
]
