# ============================================================
# Vector Face ID
# core/matcher/metrics.py
# ============================================================
# Pairwise distance strategies between feature vectors.
#
#   DistanceMetric  (abstract)
#       └── EuclideanMetric: L2 distance (default)
#       └── CosineMetric: 1 - cosine similarity
#
# The matcher only ever calls ``metric.pairwise(query, gallery)``,
# so aggregation never depends on which metric is in use.
# ============================================================

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, Union

import numpy as np


# ============================================================
# Module-level helpers
# ============================================================

def euclidean(a: np.ndarray, b: np.ndarray) -> float:
    """
    Euclidean (L2) distance between two 1-D vectors.

    Raises:
        ValueError: If vectors have different shapes.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: a={a.shape}, b={b.shape}")
    return float(np.sqrt(np.sum((a - b) ** 2)))


def l2_normalize(matrix: np.ndarray) -> np.ndarray:
    """
    L2-normalise a vector or the rows of a matrix.

    Zero rows are left as zeros.
    """
    arr = np.asarray(matrix, dtype=np.float64)
    norms = np.linalg.norm(arr, axis=-1, keepdims=True)
    return np.divide(arr, norms, out=np.zeros_like(arr), where=norms > 1e-10)


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    ``1 - cosine_similarity(a, b)``, in [0, 2].

    A zero vector has similarity 0 with everything, i.e. distance 1.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: a={a.shape}, b={b.shape}")
    sim = float(np.clip(np.dot(l2_normalize(a), l2_normalize(b)), -1.0, 1.0))
    return 1.0 - sim


def similarity_from_distance(distance: float) -> float:
    """
    Display percentage for a distance: ``max(0, 1 - d / 100) * 100``.

    Infinite (or NaN) distances map to 0.
    """
    if not math.isfinite(distance):
        return 0.0
    return max(0.0, 1.0 - distance / 100.0) * 100.0


# ============================================================
# Strategies
# ============================================================

class DistanceMetric(ABC):
    """A distance between one query vector and each row of a gallery matrix."""

    name: str = "base"

    @abstractmethod
    def pairwise(self, query: np.ndarray, gallery: np.ndarray) -> np.ndarray:
        """
        Args:
            query:   (D,) vector.
            gallery: (M, D) matrix.

        Returns:
            (M,) float64 array of non-negative distances.
        """

    def __call__(self, a: np.ndarray, b: np.ndarray) -> float:
        b = np.asarray(b, dtype=np.float64)
        return float(self.pairwise(a, b[np.newaxis, :])[0])

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class EuclideanMetric(DistanceMetric):
    name = "euclidean"

    def pairwise(self, query: np.ndarray, gallery: np.ndarray) -> np.ndarray:
        q = np.asarray(query, dtype=np.float64)
        g = np.asarray(gallery, dtype=np.float64)
        return np.sqrt(np.sum((g - q) ** 2, axis=1))


class CosineMetric(DistanceMetric):
    name = "cosine"

    def pairwise(self, query: np.ndarray, gallery: np.ndarray) -> np.ndarray:
        q = l2_normalize(query)
        g = l2_normalize(gallery)
        return 1.0 - np.clip(g @ q, -1.0, 1.0)


METRICS: Dict[str, DistanceMetric] = {
    EuclideanMetric.name: EuclideanMetric(),
    CosineMetric.name: CosineMetric(),
}


def get_metric(metric: Union[str, DistanceMetric]) -> DistanceMetric:
    """
    Resolve a metric name (``"euclidean"`` / ``"cosine"``) or pass through
    a DistanceMetric instance.

    Raises:
        ValueError: For an unknown name.
    """
    if isinstance(metric, DistanceMetric):
        return metric
    key = str(metric).strip().lower()
    if key not in METRICS:
        raise ValueError(
            f"Unknown distance metric {metric!r}. Choose from: {sorted(METRICS)}"
        )
    return METRICS[key]
