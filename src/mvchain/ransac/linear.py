"""
Linear (total-least-squares) solvers for every model family.

Each solver:
  1) normalizes both point sets (see normalize.py)
  2) builds a homogeneous linear system A @ theta = 0
  3) takes theta as the right singular vector of the smallest singular value
  4) reshapes theta into a 3x3 matrix and de-normalizes it

For exactly-minimal input the null space is one-dimensional and the solve
is exact. For more input the SVD solution minimizes ||A theta|| subject to
||theta|| = 1, i.e. the algebraic error over all correspondences.

Families and unknowns (in normalized coordinates):

    similarity:  [[a, -b, tx],       theta = [a, b, tx, ty, s]
                  [b,  a, ty],
                  [0,  0,  1]]

    affine:      [[a, b, tx],        theta = [a, b, tx, c, d, ty, s]
                  [c, d, ty],
                  [0, 0,  1]]

    homography:  9 entries of H      theta = [h11 ... h33]
    fundamental: 9 entries of F      theta = [f11 ... f33]

The trailing `s` in the similarity/affine vectors multiplies the target
coordinate; dividing by it gives the inhomogeneous parameters.

Euclidean (rotation + translation) is not linear in its parameters; we
solve the similarity system and project the 2x2 part onto the nearest
rotation.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

from .errors import DegenerateInputError, InsufficientCorrespondencesError
from .normalize import normalize_points, denormalize
from .types import Points2D, Mat3x3, ModelKind, GeometricModel, as_points2d

# A design matrix whose second-smallest singular value is below this
# (relative to the largest) has more than one solution.
_EPS_NULLITY = 1e-10

# Parameters whose homogeneous scale is below this cannot be de-homogenized.
_EPS_SCALE = 1e-12


# ---------- SVD helpers ----------
def _null_vector(A: np.ndarray, *, require_unique: bool = True) -> np.ndarray:
    """
    Return the unit vector theta minimizing ||A theta||.

    With require_unique, raise DegenerateInputError when the null space of
    A is more than one-dimensional (e.g. collinear points for affine).
    """
    n_unknowns = A.shape[1]
    _, s, vt = np.linalg.svd(A, full_matrices=True)

    if require_unique:
        # pad: a wide A has fewer singular values than unknowns
        s_full = np.zeros(n_unknowns, dtype=np.float64)
        s_full[: s.shape[0]] = s
        if s_full[0] <= 0.0 or s_full[-2] <= _EPS_NULLITY * s_full[0]:
            raise DegenerateInputError("Linear system has no unique solution (degenerate configuration)")

    return vt[-1]


def _check_inputs(kind: ModelKind, x1: Points2D, x2: Points2D) -> None:
    if x1.shape != x2.shape:
        raise ValueError(f"x1 and x2 must have same shape, got {x1.shape} vs {x2.shape}")
    if x1.shape[0] < kind.min_samples:
        raise InsufficientCorrespondencesError(kind.min_samples, x1.shape[0])


def _dehomogenize_params(theta: np.ndarray) -> np.ndarray:
    """Divide the affine/similarity parameters by their trailing scale entry."""
    scale = theta[-1]
    if abs(scale) < _EPS_SCALE:
        raise DegenerateInputError("Solution has a vanishing scale component")
    return theta[:-1] / scale


# ---------- Similarity ----------
def _solve_similarity_normalized(p: Points2D, q: Points2D) -> Mat3x3:
    n = p.shape[0]
    A = np.zeros((2 * n, 5), dtype=np.float64)

    # x' = a*x - b*y + tx
    # y' = b*x + a*y + ty
    A[0::2, 0] = p[:, 0]
    A[0::2, 1] = -p[:, 1]
    A[0::2, 2] = 1.0
    A[0::2, 4] = -q[:, 0]

    A[1::2, 0] = p[:, 1]
    A[1::2, 1] = p[:, 0]
    A[1::2, 3] = 1.0
    A[1::2, 4] = -q[:, 1]

    a, b, tx, ty = _dehomogenize_params(_null_vector(A))
    return np.array(
        [
            [a, -b, tx],
            [b, a, ty],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )


def solve_similarity(x1: Points2D, x2: Points2D) -> Mat3x3:
    """Rotation + uniform scale + translation, N >= 2."""
    _check_inputs(ModelKind.SIMILARITY, x1, x2)
    T1, p = normalize_points(x1)
    T2, q = normalize_points(x2)
    return denormalize(_solve_similarity_normalized(p, q), T1, T2)


# ---------- Euclidean ----------
def solve_euclidean(x1: Points2D, x2: Points2D) -> Mat3x3:
    """
    Rotation + translation, N >= 2.

    1) S = similarity fit (linear)
    2) R = nearest rotation to S[:2, :2] (polar factor via SVD)
    3) t = c2 - R @ c1, which is the least-squares translation for fixed R
    """
    _check_inputs(ModelKind.EUCLIDEAN, x1, x2)
    S = solve_similarity(x1, x2)

    U, _, Vt = np.linalg.svd(S[:2, :2])
    R = U @ Vt
    if np.linalg.det(R) < 0:
        # reflection: flip the last singular direction
        U[:, -1] *= -1.0
        R = U @ Vt

    t = x2.mean(axis=0) - R @ x1.mean(axis=0)

    E = np.eye(3, dtype=np.float64)
    E[:2, :2] = R
    E[:2, 2] = t
    return E


# ---------- Affine ----------
def solve_affine(x1: Points2D, x2: Points2D) -> Mat3x3:
    """General 6-dof affine transform, N >= 3."""
    _check_inputs(ModelKind.AFFINE, x1, x2)
    T1, p = normalize_points(x1)
    T2, q = normalize_points(x2)

    n = p.shape[0]
    A = np.zeros((2 * n, 7), dtype=np.float64)

    # x' = a*x + b*y + tx
    A[0::2, 0] = p[:, 0]
    A[0::2, 1] = p[:, 1]
    A[0::2, 2] = 1.0
    A[0::2, 6] = -q[:, 0]

    # y' = c*x + d*y + ty
    A[1::2, 3] = p[:, 0]
    A[1::2, 4] = p[:, 1]
    A[1::2, 5] = 1.0
    A[1::2, 6] = -q[:, 1]

    params = _dehomogenize_params(_null_vector(A))
    M_n = np.vstack([params.reshape(2, 3), [0.0, 0.0, 1.0]])
    return denormalize(M_n, T1, T2)


# ---------- Homography ----------
def solve_homography(x1: Points2D, x2: Points2D) -> Mat3x3:
    """
    Direct linear transform, N >= 4.

    From x' ~ H x, each correspondence gives two rows:
        [-x, -y, -1,  0,  0,  0, x'x, x'y, x']
        [ 0,  0,  0, -x, -y, -1, y'x, y'y, y']
    """
    _check_inputs(ModelKind.HOMOGRAPHY, x1, x2)
    T1, p = normalize_points(x1)
    T2, q = normalize_points(x2)

    n = p.shape[0]
    x, y = p[:, 0], p[:, 1]
    xp, yp = q[:, 0], q[:, 1]
    zeros = np.zeros(n, dtype=np.float64)
    ones = np.ones(n, dtype=np.float64)

    A = np.empty((2 * n, 9), dtype=np.float64)
    A[0::2] = np.column_stack([-x, -y, -ones, zeros, zeros, zeros, xp * x, xp * y, xp])
    A[1::2] = np.column_stack([zeros, zeros, zeros, -x, -y, -ones, yp * x, yp * y, yp])

    H = denormalize(_null_vector(A).reshape(3, 3), T1, T2)
    if abs(H[2, 2]) > _EPS_SCALE * np.linalg.norm(H):
        return H / H[2, 2]
    return H / np.linalg.norm(H)


# ---------- Fundamental ----------
def enforce_rank2(F: Mat3x3) -> Mat3x3:
    """Closest rank-2 matrix in Frobenius norm (zero the smallest singular value)."""
    U, s, Vt = np.linalg.svd(F)
    s[2] = 0.0
    return U @ np.diag(s) @ Vt


def solve_fundamental(x1: Points2D, x2: Points2D) -> Mat3x3:
    """
    Normalized 8-point algorithm, N >= 8.

    Epipolar constraint x2^T F x1 = 0, one row per correspondence:
        [x'x, x'y, x', y'x, y'y, y', x, y, 1]

    The null space is not required to be unique: a rank-deficient system
    (e.g. pure translation on a grid) still gives an F satisfying every
    constraint.
    """
    _check_inputs(ModelKind.FUNDAMENTAL, x1, x2)
    T1, p = normalize_points(x1)
    T2, q = normalize_points(x2)

    x, y = p[:, 0], p[:, 1]
    xp, yp = q[:, 0], q[:, 1]
    A = np.column_stack([xp * x, xp * y, xp, yp * x, yp * y, yp, x, y, np.ones_like(x)])

    F_n = enforce_rank2(_null_vector(A, require_unique=False).reshape(3, 3))

    # x2n^T Fn x1n = x2^T (T2^T Fn T1) x1
    F = T2.T @ F_n @ T1
    return F / np.linalg.norm(F)


# ---------- Dispatch ----------
_SOLVERS: Dict[ModelKind, Callable[[Points2D, Points2D], Mat3x3]] = {
    ModelKind.EUCLIDEAN: solve_euclidean,
    ModelKind.SIMILARITY: solve_similarity,
    ModelKind.AFFINE: solve_affine,
    ModelKind.HOMOGRAPHY: solve_homography,
    ModelKind.FUNDAMENTAL: solve_fundamental,
}


def solve(kind: ModelKind | str, x1, x2) -> GeometricModel:
    """
    Solve a model of the given family from N >= min_samples correspondences.

    Deterministic for a given input order; inputs are not modified.
    Raises InsufficientCorrespondencesError or DegenerateInputError.
    """
    kind = ModelKind.parse(kind)
    p1 = as_points2d(x1)
    p2 = as_points2d(x2)
    return GeometricModel(kind, _SOLVERS[kind](p1, p2))
