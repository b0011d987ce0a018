"""
Configuration for sequence-level estimation.

Everything the chain builder needs is passed in explicitly; nothing is
read from globals or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# What a skipped link means for the images after it:
# - "identity": the link counts as no motion, cumulative[i] = cumulative[i-1]
# - "gap": images after the link have no transform to image 0 (None)
SkipPolicy = Literal["identity", "gap"]


@dataclass(frozen=True)
class RobustParams:
    """
    Per-pair RANSAC settings.

    - max_reprojection_error: inlier threshold in pixels (default: 1px)
    - outlier_probability: accepted chance of never drawing an
      all-inlier sample (default: 1e-2)
    - max_iters: upper bound on RANSAC iterations
    - assumed_outlier_fraction: prior for the initial trial budget
    - seed: root seed; every pair gets its own child stream
    """
    max_reprojection_error: float = 1.0
    outlier_probability: float = 1e-2
    max_iters: int = 10000
    assumed_outlier_fraction: float = 0.5
    seed: int = 0


@dataclass(frozen=True)
class ChainConfig:
    robust: RobustParams = field(default_factory=RobustParams)
    skip_policy: SkipPolicy = "identity"

    # >1 estimates pairs on a thread pool; composition stays in order
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.skip_policy not in ("identity", "gap"):
            raise ValueError(f"Unknown skip_policy: {self.skip_policy}")
        if self.max_workers < 1:
            raise ValueError("ChainConfig.max_workers must be >= 1")
