"""
mvchain: robust 2D two-view estimation and transform chaining.

    from mvchain import estimate_robust, build_chain, ModelKind
"""

from .ransac import (
    ModelKind, GeometricModel, RansacResult,
    DegenerateInputError, InsufficientCorrespondencesError,
    RobustEstimationFailedError, CorrespondenceLookupError, ChainCancelledError,
    normalize_points, solve, estimate_robust,
)
from .chain import (
    RobustParams, ChainConfig, ChainLink, RelativeTransformChain, build_chain,
)

__all__ = [
    "ModelKind", "GeometricModel", "RansacResult",
    "DegenerateInputError", "InsufficientCorrespondencesError",
    "RobustEstimationFailedError", "CorrespondenceLookupError", "ChainCancelledError",
    "normalize_points", "solve", "estimate_robust",
    "RobustParams", "ChainConfig", "ChainLink", "RelativeTransformChain", "build_chain",
]
