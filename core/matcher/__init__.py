# ============================================================
# Vector Face ID
# core/matcher/__init__.py
# ============================================================

from core.matcher.matcher import MatchCandidate, Matcher, MatchResult
from core.matcher.metrics import (
    CosineMetric,
    DistanceMetric,
    EuclideanMetric,
    cosine_distance,
    euclidean,
    get_metric,
    l2_normalize,
    similarity_from_distance,
)
from core.matcher.smoother import TemporalSmoother

__all__ = [
    "MatchCandidate",
    "Matcher",
    "MatchResult",
    "CosineMetric",
    "DistanceMetric",
    "EuclideanMetric",
    "cosine_distance",
    "euclidean",
    "get_metric",
    "l2_normalize",
    "similarity_from_distance",
    "TemporalSmoother",
]
