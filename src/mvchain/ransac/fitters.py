"""
Adapter: makes the linear solvers conform to the ModelFitter Protocol.

One fitter per model family, looked up by ModelKind. This keeps
ransac/core.py generic and reusable.

Solver failures (degenerate samples, singular results) come back as
None, which the RANSAC loop treats as "skip this trial".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from .errors import DegenerateInputError, InsufficientCorrespondencesError
from .linear import solve
from .residuals import model_residuals
from .types import (
    Points2D, FloatArray, GeometricModel, ModelFitter, ModelKind,
    is_valid_mat3x3)

logger = logging.getLogger(__name__)


def is_valid_model(model: GeometricModel, eps_det: float = 1e-12) -> bool:
    """
    Reject numerically degenerate models.

    - any family: finite, non-zero matrix
    - transforms: also non-singular (they get inverted for scoring/chaining)
    """
    T = model.matrix
    if not is_valid_mat3x3(T):
        return False
    norm = float(np.linalg.norm(T))
    if norm == 0.0:
        return False
    if model.kind.is_transform:
        # scale-free determinant test
        det = float(np.linalg.det(T / norm))
        if abs(det) < eps_det:
            return False
    return True


@dataclass(frozen=True)
class LinearModelFitter(ModelFitter[GeometricModel]):
    kind: ModelKind

    @property
    def min_samples(self) -> int:
        return self.kind.min_samples

    def _fit(self, pts0: Points2D, pts1: Points2D) -> Optional[GeometricModel]:
        try:
            model = solve(self.kind, pts0, pts1)
        except (InsufficientCorrespondencesError, DegenerateInputError, np.linalg.LinAlgError) as exc:
            logger.debug("%s fit rejected: %s", self.kind.label, exc)
            return None
        if not is_valid_model(model):
            logger.debug("%s fit rejected: degenerate matrix", self.kind.label)
            return None
        return model

    def fit_minimal(self, pts0: Points2D, pts1: Points2D) -> Optional[GeometricModel]:
        return self._fit(pts0, pts1)

    def fit_least_squares(self, pts0: Points2D, pts1: Points2D) -> Optional[GeometricModel]:
        return self._fit(pts0, pts1)

    def residuals(self, model: GeometricModel, pts0: Points2D, pts1: Points2D) -> FloatArray:
        return model_residuals(model.kind, model.matrix, pts0, pts1)


_FITTERS: Dict[ModelKind, LinearModelFitter] = {kind: LinearModelFitter(kind) for kind in ModelKind}


def fitter_for(kind: ModelKind | str) -> LinearModelFitter:
    return _FITTERS[ModelKind.parse(kind)]
