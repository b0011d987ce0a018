"""
Generic RANSAC loop (model-agnostic) and the robust pairwise estimator.

RANSAC overview:
- Randomly sample a *minimal* subset of correspondences
- Fit a candidate model from that subset
- Score all correspondences by computing residual errors
- Mark inliers where error <= tau
- Keep the model with the most inliers (ties: lower inlier RMS error)
- Shrink the trial budget as the observed inlier ratio grows
- Refit using all inliers to get the final model

Uses the ModelFitter Protocol from types.py, so the loop works with any
model family.
"""
from __future__ import annotations

import logging
from typing import Optional, TypeVar

import numpy as np
import numpy.typing as npt

from .errors import InsufficientCorrespondencesError, RobustEstimationFailedError
from .fitters import fitter_for
from .types import (
    Points2D, Mask2D, GeometricModel, ModelFitter, ModelKind, RansacResult,
    as_points2d)

M = TypeVar("M")

logger = logging.getLogger(__name__)

# Returned when no all-inlier sample can be expected; callers cap it.
_UNBOUNDED_ITERS = int(1e9)


def required_iterations(
        *,
        confidence: float,
        inlier_ratio: float,
        sample_size: int,
) -> int:
    """
    Compute the number of RANSAC iterations needed so that the probability
    of having drawn at least ONE all-inlier minimal sample is >= confidence.

    inlier ratio w = (# inliers) / N, minimal sample s,
    - P(all-inliers) = w^s
    - P(not-all-inliers-for-k-times) = (1 - w^s)^k
    - 1 - (1 - w^s)^k >= p   =>   k >= log(1 - p) / log(1 - w^s)

    Edge cases:
     - w == 0  -> impossible, return "infinite-ish" (capped elsewhere)
     - w == 1  -> 1 iteration is enough
    """
    p = float(np.clip(confidence, 1e-12, 1.0 - 1e-12))
    w = float(np.clip(inlier_ratio, 0.0, 1.0))
    s = int(sample_size)

    if s <= 0:
        raise ValueError("sample_size must be >= 1")

    if w >= 1.0:
        return 1
    if w <= 0.0:
        return _UNBOUNDED_ITERS

    # If w^s is extremely tiny, log(1 - w^s) is close to 0
    w_to_s = float(np.clip(w ** s, 1e-12, 1.0 - 1e-12))

    k = int(np.ceil(np.log(1.0 - p) / np.log(1.0 - w_to_s)))
    return int(min(max(1, k), _UNBOUNDED_ITERS))


def ransac(
        model_fitter: ModelFitter[M],
        pts0: Points2D,
        pts1: Points2D,
        *,
        min_samples: int,
        tau: float = 1.0,
        confidence: float = 0.99,
        initial_inlier_ratio: float = 0.5,
        max_iters: int = 10000,
        rng: Optional[np.random.Generator] = None,
) -> RansacResult[M]:
    """
    Run RANSAC to fit a model between pts0 -> pts1.

    Inputs:
    - model_fitter: provides fit_minimal, fit_least_squares, residuals
    - pts0, pts1: (N,2) corresponding points (same N)
    - min_samples: minimal number of correspondences needed by the model
    - tau: inlier threshold on the fitter's residual
    - confidence: wanted probability of drawing one all-inlier sample
    - initial_inlier_ratio: assumed inlier ratio for the starting budget
    - max_iters: hard upper bound on iterations
    - rng: random source; default np.random.default_rng(0)

    Returns RansacResult with the refit model + inlier mask.
    Raises InsufficientCorrespondencesError if N < min_samples and
    RobustEstimationFailedError if no trial produced a usable model.
    """
    # ---------- Input validation ----------
    if pts0.shape != pts1.shape:
        raise ValueError(f"pts0 and pts1 must have same shape, got {pts0.shape} vs {pts1.shape}")
    if pts0.ndim != 2 or pts0.shape[1] != 2:
        raise ValueError(f"Expected pts shape (N,2), got {pts0.shape}")
    if max_iters < 1:
        raise ValueError("max_iters must be >= 1")

    n = pts0.shape[0]
    if n < min_samples:
        raise InsufficientCorrespondencesError(min_samples, n)

    if rng is None:
        rng = np.random.default_rng(0)

    # Track the best hypothesis
    best_model: Optional[M] = None
    best_inliers: Optional[Mask2D] = None
    best_num_inliers = 0
    best_rms = float("inf")

    # ---------- Adaptive Stopping ----------
    target_iters = min(
        max_iters,
        required_iterations(
            confidence=confidence,
            inlier_ratio=initial_inlier_ratio,
            sample_size=min_samples,
        ),
    )
    iters_run = 0

    # ---------- Main RANSAC Loop ----------
    while iters_run < target_iters:
        iters_run += 1

        # unique indices, no replacement
        sample_idx = rng.choice(n, size=min_samples, replace=False)

        model = model_fitter.fit_minimal(pts0[sample_idx], pts1[sample_idx])
        if model is None:
            continue

        err = model_fitter.residuals(model, pts0, pts1)
        inliers: Mask2D = (err <= tau)

        num_inliers = int(np.count_nonzero(inliers))
        if num_inliers < min_samples:
            # Not enough inliers to be meaningful
            continue

        inlier_err = err[inliers]
        rms = float(np.sqrt(np.mean(inlier_err * inlier_err)))

        # Primary criterion: more inliers. If tie: lower RMS error
        is_better = (num_inliers > best_num_inliers) or (
                num_inliers == best_num_inliers and rms < best_rms
        )
        if not is_better:
            continue

        best_model = model
        best_inliers = inliers
        best_num_inliers = num_inliers
        best_rms = rms

        w = best_num_inliers / float(n)
        iter_needed = required_iterations(
            confidence=confidence,
            inlier_ratio=w,
            sample_size=min_samples,
        )
        target_iters = min(target_iters, max(iter_needed, iters_run))
        logger.debug(
            "better model: inliers=%d/%d, w=%.3f, target_iters=%d",
            best_num_inliers, n, w, target_iters,
        )

    if best_model is None or best_inliers is None:
        raise RobustEstimationFailedError(
            f"No valid model in {iters_run} trials over {n} correspondences"
        )

    # ---------- Refit on all inliers ----------
    refit = model_fitter.fit_least_squares(pts0[best_inliers], pts1[best_inliers])

    # If the refit fails, fall back to the best minimal model
    if refit is None:
        logger.warning("refit on %d inliers failed; keeping minimal-sample model", best_num_inliers)
    final_model = refit if refit is not None else best_model

    final_err = model_fitter.residuals(final_model, pts0, pts1)[best_inliers]
    final_rms = float(np.sqrt(np.mean(final_err * final_err)))

    return RansacResult(
        model=final_model,
        inliers=best_inliers,
        num_inliers=best_num_inliers,
        rms_error=final_rms,
        iterations=iters_run,
        threshold=float(tau),
    )


def estimate_robust(
        kind: ModelKind | str,
        x1: npt.ArrayLike,
        x2: npt.ArrayLike,
        max_reprojection_error: float = 1.0,
        outlier_probability: float = 1e-2,
        *,
        rng: Optional[np.random.Generator] = None,
        max_iters: int = 10000,
        assumed_outlier_fraction: float = 0.5,
) -> RansacResult[GeometricModel]:
    """
    Robustly estimate a model of family `kind` mapping x1 -> x2.

    - max_reprojection_error: inlier threshold in pixels (Sampson
      distance for the fundamental matrix)
    - outlier_probability: accepted probability of never drawing an
      all-inlier sample; the loop runs until that bound is met
    - assumed_outlier_fraction: prior used for the initial trial budget

    The trial budget starts from assumed_outlier_fraction and only ever
    shrinks. When the real outlier fraction is well above that prior the
    budget can run out before an all-inlier sample is drawn; raise
    assumed_outlier_fraction for such data.

    Returns RansacResult whose `model` is a GeometricModel refit on every
    inlier and whose `inliers` / `inlier_indices` give the InlierSet.
    """
    kind = ModelKind.parse(kind)
    if not 0.0 < outlier_probability < 1.0:
        raise ValueError("outlier_probability must be in (0, 1)")
    if not 0.0 <= assumed_outlier_fraction < 1.0:
        raise ValueError("assumed_outlier_fraction must be in [0, 1)")
    if max_reprojection_error <= 0.0:
        raise ValueError("max_reprojection_error must be > 0")

    pts0 = as_points2d(x1)
    pts1 = as_points2d(x2)
    if pts0.shape != pts1.shape:
        raise ValueError(f"x1 and x2 must have same shape, got {pts0.shape} vs {pts1.shape}")

    result = ransac(
        fitter_for(kind),
        pts0,
        pts1,
        min_samples=kind.min_samples,
        tau=max_reprojection_error,
        confidence=1.0 - outlier_probability,
        initial_inlier_ratio=1.0 - assumed_outlier_fraction,
        max_iters=max_iters,
        rng=rng,
    )
    logger.debug(
        "%s: %d/%d inliers after %d iterations (rms=%.4f)",
        kind.label, result.num_inliers, pts0.shape[0], result.iterations, result.rms_error,
    )
    return result
