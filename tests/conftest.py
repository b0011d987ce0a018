"""Shared synthetic-data helpers for the test suite."""

from __future__ import annotations

import numpy as np
import pytest

from mvchain.ransac.residuals import apply_T
from mvchain.ransac.types import ModelKind

IMAGE_SIZE = (640.0, 480.0)


def euclidean(theta: float, tx: float, ty: float) -> np.ndarray:
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s, tx], [s, c, ty], [0.0, 0.0, 1.0]], dtype=np.float64)


def similarity(scale: float, theta: float, tx: float, ty: float) -> np.ndarray:
    S = euclidean(theta, tx, ty)
    S[:2, :2] *= scale
    return S


TRUE_MODELS = {
    ModelKind.EUCLIDEAN: euclidean(0.3, 12.0, -7.0),
    ModelKind.SIMILARITY: similarity(1.2, -0.15, -20.0, 9.5),
    ModelKind.AFFINE: np.array(
        [[1.05, 0.02, 15.0],
         [-0.01, 0.98, -8.0],
         [0.0, 0.0, 1.0]],
        dtype=np.float64,
    ),
    ModelKind.HOMOGRAPHY: np.array(
        [[1.02, 0.03, 5.0],
         [-0.02, 0.98, -3.0],
         [1e-4, -5e-5, 1.0]],
        dtype=np.float64,
    ),
}


def random_points(rng: np.random.Generator, n: int) -> np.ndarray:
    return rng.uniform([0.0, 0.0], IMAGE_SIZE, size=(n, 2)).astype(np.float64)


def stereo_pair(rng: np.random.Generator, n: int):
    """
    Project random 3D points into two pinhole cameras.

    Returns (x1, x2, F_true) with F_true normalized to unit Frobenius norm.
    """
    K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
    angle = 0.1
    R = np.array(
        [[np.cos(angle), 0.0, np.sin(angle)],
         [0.0, 1.0, 0.0],
         [-np.sin(angle), 0.0, np.cos(angle)]]
    )
    t = np.array([1.0, 0.2, 0.1])

    X = np.column_stack([
        rng.uniform(-2.0, 2.0, n),
        rng.uniform(-1.5, 1.5, n),
        rng.uniform(4.0, 8.0, n),
    ])

    p1 = (K @ X.T).T
    p2 = (K @ (R @ X.T + t[:, None])).T
    x1 = p1[:, :2] / p1[:, 2:3]
    x2 = p2[:, :2] / p2[:, 2:3]

    tx = np.array([[0.0, -t[2], t[1]], [t[2], 0.0, -t[0]], [-t[1], t[0], 0.0]])
    K_inv = np.linalg.inv(K)
    F = K_inv.T @ tx @ R @ K_inv
    return x1, x2, F / np.linalg.norm(F)


def with_outliers(rng: np.random.Generator, x1: np.ndarray, x2: np.ndarray, k: int):
    """Append k random (wrong) correspondences after the given inliers."""
    o1 = random_points(rng, k)
    o2 = random_points(rng, k)
    return np.vstack([x1, o1]), np.vstack([x2, o2])


def same_up_to_sign(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """Flip A so its largest entry has the same sign as in B."""
    idx = np.unravel_index(np.argmax(np.abs(B)), B.shape)
    return A if np.sign(A[idx]) == np.sign(B[idx]) else -A


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture(params=list(TRUE_MODELS), ids=lambda k: k.label)
def transform_case(request, rng):
    kind = request.param
    T = TRUE_MODELS[kind]
    x1 = random_points(rng, 30)
    x2 = apply_T(T, x1)
    return kind, T, x1, x2
