# ============================================================
# Vector Face ID
# core/gallery/recognition_log.py
# ============================================================
# Append-only, bounded audit log of recognition decisions,
# persisted inside the gallery blob.
# ============================================================

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

from core.gallery.gallery_store import GalleryStore
from core.gallery.models import MatchAttempt, now_ms
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_STATS_WINDOW = 25


@dataclass(frozen=True)
class RecognitionStats:
    """
    Dashboard counters.

    Attributes:
        people:        Number of enrolled identities.
        samples:       Number of stored feature vectors.
        attempts:      Attempts considered (at most the stats window).
        matches:       Matched attempts among those considered.
        success_rate:  matches / attempts as a percentage (0 when empty).
    """

    people: int
    samples: int
    attempts: int
    matches: int
    success_rate: float


class RecognitionLog:
    """
    Bounded log of MatchAttempts stored alongside the gallery.

    Entries are never edited. Once the store's ``max_log_entries`` cap is
    reached, each new entry evicts the oldest one.
    """

    def __init__(
        self,
        store: GalleryStore,
        max_entries: Optional[int] = None,
        stats_window: int = DEFAULT_STATS_WINDOW,
    ) -> None:
        self.store = store
        self.max_entries = int(max_entries) if max_entries is not None else store.max_log_entries
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {self.max_entries}.")
        self.stats_window = int(stats_window)
        if self.stats_window < 1:
            raise ValueError(f"stats_window must be >= 1, got {self.stats_window}.")

    def record(
        self,
        person_id: Optional[str],
        distance: float,
        similarity: float,
        is_match: bool,
        timestamp: Optional[int] = None,
    ) -> MatchAttempt:
        """Append one attempt, dropping the oldest entries beyond the cap."""
        attempt = MatchAttempt(
            person_id=person_id,
            distance=float(distance),
            similarity=float(similarity),
            is_match=bool(is_match),
            timestamp=int(timestamp) if timestamp is not None else now_ms(),
        )
        with self.store.transaction() as state:
            state.attempts.append(attempt)
            overflow = len(state.attempts) - self.max_entries
            if overflow > 0:
                del state.attempts[:overflow]

        dist = f"{attempt.distance:.2f}" if math.isfinite(attempt.distance) else "inf"
        logger.debug(f"Attempt recorded | match={attempt.is_match} | distance={dist}")
        return attempt

    def recent(self, limit: Optional[int] = None) -> List[MatchAttempt]:
        """Most recent attempts first."""
        attempts = self.store.list_attempts()
        return attempts if limit is None else attempts[: max(0, int(limit))]

    def summary(self, window: Optional[int] = None) -> RecognitionStats:
        """
        Counts for the dashboard; success rate over the last *window*
        attempts (``stats_window`` when omitted).
        """
        recent = self.recent(self.stats_window if window is None else window)
        matches = sum(1 for a in recent if a.is_match)
        rate = (matches / len(recent) * 100.0) if recent else 0.0
        return RecognitionStats(
            people=self.store.identity_count,
            samples=self.store.vector_count,
            attempts=len(recent),
            matches=matches,
            success_rate=rate,
        )

    def __len__(self) -> int:
        return self.store.attempt_count

    def __repr__(self) -> str:
        return f"RecognitionLog(entries={len(self)}, max={self.max_entries})"
