"""
Shared typed primitives for the two-view estimation core.

Defines:
- Typed NumPy aliases for geometry
    - Points are (N,2) float arrays
    - Models are 3x3 homogeneous matrices
- The model families (ModelKind) and the tagged model container
- Generic model protocol for RANSAC
- Structured RANSAC result container (model + inliers + stats)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, TypeVar, Generic, Optional, TypeAlias

import numpy as np
import numpy.typing as npt

# ---------- Numpy typing aliases ----------
# - float64 for geometry / matrices (more stable for linear algebra)
# - bool_ for masks

FloatArray: TypeAlias = npt.NDArray[np.float64]
BoolArray: TypeAlias = npt.NDArray[np.bool_]
IndexArray: TypeAlias = npt.NDArray[np.intp]

# Points in 2D image coordinates.
Points2D: TypeAlias = FloatArray      # shape: (N, 2)

# Homogeneous points [x, y, 1].
PointsHomog: TypeAlias = FloatArray   # shape: (N, 3)

# Boolean inlier mask: True as inlier, False as outlier
Mask2D: TypeAlias = BoolArray         # shape: (N,)

# 3x3 homogeneous matrix (transform or fundamental matrix).
Mat3x3: TypeAlias = FloatArray        # shape: (3, 3)


# ---------- Model families ----------
class ModelKind(enum.Enum):
    """
    The supported 2D model families.

    Each member carries:
    - min_samples: correspondences in a minimal sample
    - dof: degrees of freedom of the model
    """
    EUCLIDEAN = ("euclidean", 2, 3)
    SIMILARITY = ("similarity", 2, 4)
    AFFINE = ("affine", 3, 6)
    HOMOGRAPHY = ("homography", 4, 8)
    FUNDAMENTAL = ("fundamental", 8, 7)

    def __init__(self, label: str, min_samples: int, dof: int) -> None:
        self.label = label
        self.min_samples = min_samples
        self.dof = dof

    @property
    def is_transform(self) -> bool:
        """True for point-to-point transforms (everything except FUNDAMENTAL)."""
        return self is not ModelKind.FUNDAMENTAL

    @classmethod
    def parse(cls, value: "ModelKind | str") -> "ModelKind":
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper()
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown model kind: {value!r}") from None


@dataclass(frozen=True, eq=False)
class GeometricModel:
    """
    A 3x3 matrix tagged with the family it was estimated for.

    The matrix is copied and made read-only so a model cannot change
    after estimation. Two models are equal when kind and every matrix
    entry match exactly; the hash follows the same rule.
    """
    kind: ModelKind
    matrix: Mat3x3

    def __post_init__(self) -> None:
        mat = np.array(self.matrix, dtype=np.float64, copy=True)
        if mat.shape != (3, 3):
            raise ValueError(f"Expected (3,3) model matrix, got {mat.shape}")
        mat.setflags(write=False)
        object.__setattr__(self, "matrix", mat)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GeometricModel):
            return NotImplemented
        return self.kind is other.kind and np.array_equal(self.matrix, other.matrix)

    def __hash__(self) -> int:
        # +0.0 folds -0.0 into 0.0 so hash agrees with np.array_equal
        return hash((self.kind, (self.matrix + 0.0).tobytes()))

    def apply(self, pts: Points2D) -> Points2D:
        """Map (N,2) points of the first image into the second image."""
        if not self.kind.is_transform:
            raise TypeError("A fundamental matrix does not map points to points")
        # local import: residuals imports this module
        from .residuals import apply_T
        return apply_T(self.matrix, pts)

    def inverse(self) -> "GeometricModel":
        if not self.kind.is_transform:
            raise TypeError("A fundamental matrix has no inverse transform")
        inv = np.linalg.inv(self.matrix)
        if self.kind is ModelKind.HOMOGRAPHY and abs(inv[2, 2]) > 1e-12:
            inv = inv / inv[2, 2]
        return GeometricModel(self.kind, inv)


# ---------- Generic model typing ----------
M = TypeVar("M")


class ModelFitter(Protocol[M]):
    """
    What the RANSAC loop in core.py needs from a model family.

    LinearModelFitter covers euclidean through fundamental; any other
    object with these three methods plugs into the same loop.
    """

    def fit_minimal(self, pts0: Points2D, pts1: Points2D) -> Optional[M]:
        """
        Hypothesis from one random sample (2, 3, 4 or 8 pairs by family).
        None marks the sample as unusable (coincident or collinear points,
        singular result) and the trial is skipped.
        """
        ...

    def fit_least_squares(self, pts0: Points2D, pts1: Points2D) -> Optional[M]:
        """
        Over-determined fit on the final inlier set.
        None tells the loop to keep the best sampled hypothesis.
        """
        ...

    def residuals(self, model: M, pts0: Points2D, pts1: Points2D) -> FloatArray:
        """
        Per-correspondence error in pixels, shape (N,), compared
        against the inlier threshold (transfer error or Sampson distance).
        """
        ...


# ---------- RANSAC output container ----------
@dataclass(frozen=True, eq=False)
class RansacResult(Generic[M]):
    model: M            # refit model (GeometricModel for estimate_robust)
    inliers: Mask2D     # boolean mask of inliers under the best candidate
    num_inliers: int    # count of True values in inliers
    rms_error: float    # RMS error of inliers under the refit model
    iterations: int     # how many RANSAC iterations were actually run
    threshold: float    # the inlier threshold tau used

    @property
    def inlier_indices(self) -> IndexArray:
        return np.flatnonzero(self.inliers)


# ---------- Helper Functions ----------
def as_points2d(pts: npt.ArrayLike) -> Points2D:
    """
    Coerce array-like input to a float64 (N,2) array.
    Empty input becomes shape (0,2).
    """
    arr = np.asarray(pts, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError(f"Expected points shape (N, 2) but got {arr.shape}")
    return arr


def as_homogeneous(pts: Points2D) -> PointsHomog:
    """
    Convert (N,2) points -> (N,3) homogeneous points: [x, y, 1].
    """
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected points shape (N, 2) but got {pts.shape}")

    ones = np.ones((pts.shape[0], 1), dtype=np.float64)
    return np.hstack([pts.astype(np.float64), ones])


def is_valid_mat3x3(T: Mat3x3) -> bool:
    """
    Verify a 3x3 matrix.
    Used for rejecting failed fits.
    """
    return isinstance(T, np.ndarray) and T.shape == (3, 3) and np.isfinite(T).all()
