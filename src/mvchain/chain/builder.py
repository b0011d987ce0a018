"""
Chain relative transforms across an ordered image sequence.

For consecutive images (k-1, k) we get correspondences from an external
lookup, run the robust estimator, and store one relative model per link:

    x_k ~ relative[k-1] @ x_{k-1}

The cumulative transforms map every image into the frame of image 0:

    cumulative[0] = I
    cumulative[k] = cumulative[k-1] @ inv(relative[k-1])

so for relative T1 (0->1) and T2 (1->2), cumulative[2] = inv(T1) @ inv(T2).

Links without enough correspondences, or whose estimation failed, are
kept as skipped links. The ChainConfig.skip_policy decides what they mean
for the cumulative transforms after them:
  - "identity": treat the link as no motion
  - "gap": images after the link get None (not expressible in frame 0)

Lookup failures are never skipped: they abort the whole build.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from ..ransac.core import estimate_robust
from ..ransac.errors import (
    ChainCancelledError, CorrespondenceLookupError,
    InsufficientCorrespondencesError, RobustEstimationFailedError)
from ..ransac.residuals import apply_T
from ..ransac.types import (
    GeometricModel, Mat3x3, ModelKind, Points2D, RansacResult, as_points2d)
from .config import ChainConfig, RobustParams, SkipPolicy

logger = logging.getLogger(__name__)

ImageID = Hashable
CorrespondenceLookup = Callable[[ImageID, ImageID], Tuple[npt.ArrayLike, npt.ArrayLike]]

SKIP_INSUFFICIENT = "insufficient_correspondences"
SKIP_ESTIMATION_FAILED = "estimation_failed"


@dataclass(frozen=True, eq=False)
class ChainLink:
    """Estimation outcome for one consecutive image pair."""
    source: ImageID
    target: ImageID
    model: Optional[GeometricModel]
    result: Optional[RansacResult[GeometricModel]]
    num_correspondences: int
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.model is None


@dataclass(frozen=True, eq=False)
class RelativeTransformChain:
    kind: ModelKind
    images: Tuple[ImageID, ...]
    links: Tuple[ChainLink, ...]
    cumulative: Tuple[Optional[Mat3x3], ...]
    skip_policy: SkipPolicy

    @property
    def relative(self) -> Tuple[Optional[Mat3x3], ...]:
        """One matrix per link (image k-1 -> image k), None where skipped."""
        return tuple(None if link.model is None else link.model.matrix for link in self.links)

    @property
    def skipped_indices(self) -> Tuple[int, ...]:
        return tuple(i for i, link in enumerate(self.links) if link.skipped)

    def to_reference(self, index: int, pts: npt.ArrayLike) -> Points2D:
        """Map (N,2) points of image `index` into image 0 coordinates."""
        T = self.cumulative[index]
        if T is None:
            raise ValueError(f"Image {index} is past a gap in the chain; no transform to image 0")
        return apply_T(T, as_points2d(pts))


# ---------- Lookup ----------
def _lookup_pair(lookup: CorrespondenceLookup, source: ImageID, target: ImageID) -> Tuple[Points2D, Points2D]:
    try:
        raw0, raw1 = lookup(source, target)
    except CorrespondenceLookupError:
        raise
    except Exception as exc:
        raise CorrespondenceLookupError(source, target, str(exc)) from exc

    try:
        pts0 = as_points2d(raw0)
        pts1 = as_points2d(raw1)
    except (TypeError, ValueError) as exc:
        raise CorrespondenceLookupError(source, target, f"malformed points: {exc}") from exc

    if pts0.shape != pts1.shape:
        raise CorrespondenceLookupError(
            source, target, f"point sets are not aligned: {pts0.shape} vs {pts1.shape}"
        )
    return pts0, pts1


# ---------- Per-pair estimation ----------
def _estimate_link(
        kind: ModelKind,
        source: ImageID,
        target: ImageID,
        pts0: Points2D,
        pts1: Points2D,
        params: RobustParams,
        rng: np.random.Generator,
        cancel_event: Optional[threading.Event],
) -> ChainLink:
    if cancel_event is not None and cancel_event.is_set():
        raise ChainCancelledError(f"Cancelled before estimating ({source!r}, {target!r})")

    n = pts0.shape[0]
    if n < kind.min_samples:
        logger.info("skip %r -> %r: %d correspondences, need %d", source, target, n, kind.min_samples)
        return ChainLink(source, target, None, None, n, SKIP_INSUFFICIENT)

    try:
        result = estimate_robust(
            kind,
            pts0,
            pts1,
            params.max_reprojection_error,
            params.outlier_probability,
            rng=rng,
            max_iters=params.max_iters,
            assumed_outlier_fraction=params.assumed_outlier_fraction,
        )
    except InsufficientCorrespondencesError:
        return ChainLink(source, target, None, None, n, SKIP_INSUFFICIENT)
    except RobustEstimationFailedError as exc:
        logger.warning("skip %r -> %r: %s", source, target, exc)
        return ChainLink(source, target, None, None, n, SKIP_ESTIMATION_FAILED)

    logger.debug("%r -> %r: %d/%d inliers", source, target, result.num_inliers, n)
    return ChainLink(source, target, result.model, result, n)


# ---------- Composition ----------
def compose_cumulative(links: Sequence[ChainLink], skip_policy: SkipPolicy) -> Tuple[Optional[Mat3x3], ...]:
    """
    cumulative[0] = I, cumulative[k] = cumulative[k-1] @ inv(relative[k-1]).

    Skipped links follow skip_policy. Returned matrices are read-only.
    """
    if skip_policy not in ("identity", "gap"):
        raise ValueError(f"Unknown skip_policy: {skip_policy}")

    current: Optional[Mat3x3] = np.eye(3, dtype=np.float64)
    out: List[Optional[Mat3x3]] = [current]

    for link in links:
        if current is None:
            out.append(None)
            continue

        if link.model is None:
            if skip_policy == "gap":
                current = None
                out.append(None)
                continue
            # identity: carry the previous transform forward
        else:
            current = current @ link.model.inverse().matrix
            if link.model.kind is ModelKind.HOMOGRAPHY and abs(current[2, 2]) > 1e-12:
                current = current / current[2, 2]

        frozen = np.array(current, dtype=np.float64, copy=True)
        frozen.setflags(write=False)
        out.append(frozen)

    return tuple(out)


def build_chain(
        kind: ModelKind | str,
        images: Sequence[ImageID],
        lookup: CorrespondenceLookup,
        config: ChainConfig = ChainConfig(),
        *,
        cancel_event: Optional[threading.Event] = None,
) -> RelativeTransformChain:
    """
    Estimate one relative transform per consecutive pair of `images` and
    compose them into image-0 coordinates.

    1) look up correspondences for every pair (sequential, fails fast)
    2) estimate each pair with its own random stream (optionally threaded)
    3) compose cumulative transforms in sequence order

    Raises CorrespondenceLookupError if the lookup fails and
    ChainCancelledError if cancel_event is set before all pairs ran.
    The fundamental matrix is rejected: it does not compose.
    """
    kind = ModelKind.parse(kind)
    if not kind.is_transform:
        raise ValueError("Fundamental matrices cannot be chained into cumulative transforms")

    image_ids = tuple(images)
    pairs = list(zip(image_ids[:-1], image_ids[1:]))
    logger.info("estimating %d %s links over %d images", len(pairs), kind.label, len(image_ids))

    correspondences = [_lookup_pair(lookup, a, b) for a, b in pairs]

    # independent child streams: results do not depend on max_workers
    seeds = np.random.SeedSequence(config.robust.seed).spawn(len(pairs))

    def run(i: int) -> ChainLink:
        source, target = pairs[i]
        pts0, pts1 = correspondences[i]
        return _estimate_link(
            kind, source, target, pts0, pts1,
            config.robust, np.random.default_rng(seeds[i]), cancel_event,
        )

    if config.max_workers > 1 and len(pairs) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
            links = list(pool.map(run, range(len(pairs))))
    else:
        links = [run(i) for i in range(len(pairs))]

    cumulative = compose_cumulative(links, config.skip_policy) if image_ids else ()

    skipped = sum(1 for link in links if link.skipped)
    if skipped:
        logger.warning("%d of %d links skipped (policy=%s)", skipped, len(links), config.skip_policy)

    return RelativeTransformChain(
        kind=kind,
        images=image_ids,
        links=tuple(links),
        cumulative=cumulative,
        skip_policy=config.skip_policy,
    )
