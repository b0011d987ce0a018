"""Exceptions raised by the estimation core and the chain builder."""

from __future__ import annotations


class DegenerateInputError(ValueError):
    """Points have no spread (or no unique solution); normalization or solving is impossible."""


class InsufficientCorrespondencesError(ValueError):
    """Fewer correspondences than the model family's minimal sample size."""

    def __init__(self, required: int, got: int) -> None:
        super().__init__(f"Need at least {required} correspondences, got {got}")
        self.required = required
        self.got = got


class RobustEstimationFailedError(RuntimeError):
    """No RANSAC trial produced a valid, scorable model."""


class CorrespondenceLookupError(RuntimeError):
    """The external correspondence source failed for an image pair."""

    def __init__(self, source: object, target: object, message: str) -> None:
        super().__init__(f"Correspondence lookup failed for ({source!r}, {target!r}): {message}")
        self.source = source
        self.target = target


class ChainCancelledError(RuntimeError):
    """Chain construction was cancelled before every pair was estimated."""
