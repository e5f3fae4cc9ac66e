# ============================================================
# Vector Face ID
# core/matcher/matcher.py
# ============================================================
# Nearest-neighbour identification with per-identity top-k
# aggregation.
#
#   query ──► distance to every gallery vector (strategy metric)
#         ──► stable sort ascending ──► group by display name
#         ──► mean of the k smallest per name ──► stable sort
#         ──► best candidate + strict threshold decision
# ============================================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from core.gallery.models import FeatureVector
from core.matcher.metrics import DistanceMetric, get_metric, similarity_from_distance
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 25.0
DEFAULT_TOP_K = 3
UNKNOWN_LABEL = "Unknown"


# ============================================================
# Data Types
# ============================================================

@dataclass(frozen=True)
class MatchCandidate:
    """
    One identity's aggregated distance to a query.

    Attributes:
        name:         Display name the gallery vectors were grouped by.
        distance:     Mean of the (at most k) smallest distances.
        identity_id:  ID of the owning identity; None for orphaned vectors.
        samples:      How many distances went into the mean.
    """

    name: str
    distance: float
    identity_id: Optional[str] = None
    samples: int = 0

    @property
    def similarity(self) -> float:
        return similarity_from_distance(self.distance)


@dataclass
class MatchResult:
    """
    Ranked outcome of one ``Matcher.match`` call.

    Attributes:
        candidates:  Every identity, ascending by aggregate distance.
        threshold:   Threshold the decision was made against.
        metric:      Name of the pairwise metric used.
    """

    candidates: List[MatchCandidate] = field(default_factory=list)
    threshold: float = DEFAULT_THRESHOLD
    metric: str = "euclidean"
    unknown_label: str = UNKNOWN_LABEL

    @property
    def best(self) -> MatchCandidate:
        """Closest candidate, or ``(unknown_label, +inf)`` for an empty gallery."""
        if not self.candidates:
            return MatchCandidate(name=self.unknown_label, distance=math.inf)
        return self.candidates[0]

    @property
    def distance(self) -> float:
        return self.best.distance

    @property
    def similarity(self) -> float:
        return similarity_from_distance(self.best.distance)

    @property
    def is_match(self) -> bool:
        return self.best.distance < self.threshold

    @property
    def label(self) -> str:
        """Best candidate's name when matched, otherwise the unknown label."""
        return self.best.name if self.is_match else self.unknown_label

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    def top(self, n: int = 3) -> List[MatchCandidate]:
        return self.candidates[: max(0, int(n))]

    def __repr__(self) -> str:
        best = self.best
        return (
            f"MatchResult(best={best.name!r}, "
            f"distance={best.distance:.3f}, "
            f"match={self.is_match}, "
            f"candidates={len(self.candidates)})"
        )


GalleryItem = Sequence  # (identity_id, display_name, FeatureVector | ndarray)


# ============================================================
# Matcher
# ============================================================

class Matcher:
    """
    Ranks gallery identities by their top-k mean distance to a query.

    Usage::

        matcher = Matcher(threshold=25.0)
        result = matcher.match(sample.vector, store.gallery_entries())
        result.label, result.distance, result.is_match

    Args:
        threshold:      Aggregate distance strictly below which the best
                        candidate is a match. Must be positive.
        top_k:          Number of closest samples averaged per identity.
        metric:         ``"euclidean"``, ``"cosine"`` or a DistanceMetric.
        unknown_label:  Label reported when nothing matches.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
        metric: Union[str, DistanceMetric] = "euclidean",
        unknown_label: str = UNKNOWN_LABEL,
    ) -> None:
        if int(top_k) < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}.")
        self.threshold = threshold
        self.top_k = int(top_k)
        self.metric = get_metric(metric)
        self.unknown_label = unknown_label

        logger.debug(
            f"Matcher created | threshold={self._threshold} | "
            f"top_k={self.top_k} | metric={self.metric.name}"
        )

    @classmethod
    def from_settings(cls, matcher_settings=None) -> "Matcher":
        """Build a matcher from ``settings.matcher``."""
        if matcher_settings is None:
            from config.settings import settings
            matcher_settings = settings.matcher
        return cls(
            threshold=matcher_settings.threshold,
            top_k=matcher_settings.top_k,
            metric=matcher_settings.metric,
            unknown_label=matcher_settings.unknown_label,
        )

    # ------------------------------------------------------------------
    # Threshold
    # ------------------------------------------------------------------

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value) or value <= 0.0:
            raise ValueError(f"threshold must be a positive number, got {value}.")
        self._threshold = value

    def is_match(self, distance: float) -> bool:
        """Strict comparison: a distance equal to the threshold is not a match."""
        return distance < self._threshold

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match(self, query: np.ndarray, gallery: Iterable[GalleryItem]) -> MatchResult:
        """
        Rank every identity in *gallery* against *query*.

        Args:
            query:   (D,) feature vector.
            gallery: Iterable of ``(identity_id, display_name, vector)``
                     entries, e.g. ``GalleryStore.gallery_entries()``.
                     *vector* may be a FeatureVector or an ndarray.

        Returns:
            MatchResult; ``best`` is ``(unknown_label, inf)`` when the
            gallery holds no usable vector.

        Raises:
            ValueError: If *query* is not a non-empty finite 1-D vector.
        """
        q = np.asarray(query, dtype=np.float64)
        if q.ndim != 1 or q.size == 0:
            raise ValueError(f"Query must be a non-empty 1-D vector, got shape {q.shape}.")
        if not np.isfinite(q).all():
            raise ValueError("Query vector contains NaN or Inf values.")

        ids: List[Optional[str]] = []
        names: List[str] = []
        rows: List[np.ndarray] = []
        skipped = 0
        for identity_id, name, vector in gallery:
            data = vector.data if isinstance(vector, FeatureVector) else np.asarray(vector)
            if data.ndim != 1 or data.shape[0] != q.shape[0]:
                skipped += 1
                continue
            ids.append(identity_id)
            names.append(name)
            rows.append(data)

        if skipped:
            logger.warning(
                f"Skipped {skipped} gallery vector(s) whose length differs from the query ({q.shape[0]})."
            )

        if not rows:
            return MatchResult(
                threshold=self._threshold,
                metric=self.metric.name,
                unknown_label=self.unknown_label,
            )

        distances = self.metric.pairwise(q, np.stack(rows, axis=0))
        candidates = self.aggregate(distances, names, ids)

        result = MatchResult(
            candidates=candidates,
            threshold=self._threshold,
            metric=self.metric.name,
            unknown_label=self.unknown_label,
        )
        logger.debug(
            f"Match: best={result.best.name!r}, "
            f"dist={result.distance:.3f}, "
            f"match={result.is_match}, "
            f"vectors={len(rows)}"
        )
        return result

    def aggregate(
        self,
        distances: np.ndarray,
        names: Sequence[str],
        identity_ids: Optional[Sequence[Optional[str]]] = None,
    ) -> List[MatchCandidate]:
        """
        Group per-vector distances by name and rank the groups.

        Distances are visited in ascending order (ties keep gallery
        order); each name keeps its first k, and groups are ranked by the
        mean of those. Groups with equal means keep the order in which
        they were first reached.
        """
        distances = np.asarray(distances, dtype=np.float64)
        if identity_ids is None:
            identity_ids = [None] * len(names)

        order = np.argsort(distances, kind="stable")
        groups: Dict[str, List[float]] = {}
        owners: Dict[str, Optional[str]] = {}
        for idx in order:
            name = names[idx]
            bucket = groups.setdefault(name, [])
            owners.setdefault(name, identity_ids[idx])
            if len(bucket) < self.top_k:
                bucket.append(float(distances[idx]))

        candidates = [
            MatchCandidate(
                name=name,
                distance=sum(bucket) / len(bucket),
                identity_id=owners[name],
                samples=len(bucket),
            )
            for name, bucket in groups.items()
        ]
        candidates.sort(key=lambda c: c.distance)
        return candidates

    def __repr__(self) -> str:
        return (
            f"Matcher(threshold={self._threshold}, "
            f"top_k={self.top_k}, "
            f"metric={self.metric.name!r})"
        )
