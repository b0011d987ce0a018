from .config import RobustParams, ChainConfig, SkipPolicy
from .builder import (
    ChainLink, RelativeTransformChain, CorrespondenceLookup,
    build_chain, compose_cumulative,
    SKIP_INSUFFICIENT, SKIP_ESTIMATION_FAILED,
)


__all__ = [
    "RobustParams", "ChainConfig", "SkipPolicy",
    "ChainLink", "RelativeTransformChain", "CorrespondenceLookup",
    "build_chain", "compose_cumulative",
    "SKIP_INSUFFICIENT", "SKIP_ESTIMATION_FAILED",
]
