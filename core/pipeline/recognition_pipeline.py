# ============================================================
# Vector Face ID
# core/pipeline/recognition_pipeline.py
# ============================================================
# Orchestrates one recognition cycle:
#
#   Input Image (+ optional bbox)
#       │
#       ▼
#   [1] FeatureExtractor   → FeatureSample (vector, brightness, contrast)
#       │
#       ▼
#   [2] Matcher            → MatchResult (ranked candidates)
#       │
#       ▼
#   [3] TemporalSmoother   → smoothed distance   (live mode only)
#       │
#       ▼
#   [4] Decision + RecognitionLog entry
#       │
#       ▼
#   RecognitionOutcome
#
# Also hosts bulk enrollment from a batch of images.
# ============================================================

from __future__ import annotations

import time
from dataclasses import dataclass, field
from itertools import islice
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import numpy as np

from core.extractor.feature_extractor import FeatureExtractor, FeatureSample
from core.gallery.gallery_store import GalleryStore
from core.gallery.models import Identity, MatchAttempt
from core.gallery.recognition_log import RecognitionLog
from core.matcher.matcher import MatchCandidate, Matcher, MatchResult
from core.matcher.metrics import similarity_from_distance
from core.matcher.smoother import DEFAULT_WINDOW_SIZE, TemporalSmoother
from utils.image_utils import load_image
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TOP_CANDIDATES = 3
DEFAULT_MAX_SAMPLES = 50

ImageSource = Union[str, Path, bytes, np.ndarray]


# ============================================================
# Stage timing
# ============================================================

@dataclass
class RecognitionTiming:
    """Wall-clock time (ms) spent in each stage of one cycle."""

    extract_ms: float = 0.0
    match_ms:   float = 0.0
    total_ms:   float = 0.0

    def __repr__(self) -> str:
        return (
            f"RecognitionTiming("
            f"extract={self.extract_ms:.1f}ms, "
            f"match={self.match_ms:.1f}ms, "
            f"total={self.total_ms:.1f}ms)"
        )


# ============================================================
# Result
# ============================================================

@dataclass
class RecognitionOutcome:
    """
    The decision produced by one recognition cycle.

    Attributes:
        name:        Best candidate's display name ("Unknown" for an empty
                     gallery), reported even when it is not a match.
        label:       *name* when matched, otherwise the unknown label.
        distance:    Decision distance: smoothed in live mode, raw otherwise.
        raw_distance: Best candidate's aggregate distance for this frame.
        similarity:  Display percentage derived from *distance*.
        is_match:    ``distance < threshold``.
        brightness:  Query sample brightness.
        contrast:    Query sample contrast.
        candidates:  Top ranked candidates for display.
        attempt:     The MatchAttempt written to the log (None if not recorded).
        timing:      Per-stage timing breakdown.
    """

    name:         str
    label:        str
    distance:     float
    raw_distance: float
    similarity:   float
    is_match:     bool
    brightness:   float
    contrast:     float
    candidates:   List[MatchCandidate] = field(default_factory=list)
    attempt:      Optional[MatchAttempt] = None
    timing:       RecognitionTiming = field(default_factory=RecognitionTiming)

    def __repr__(self) -> str:
        return (
            f"RecognitionOutcome("
            f"label={self.label!r}, "
            f"distance={self.distance:.3f}, "
            f"similarity={self.similarity:.1f}%, "
            f"match={self.is_match})"
        )


# ============================================================
# RecognitionPipeline
# ============================================================

class RecognitionPipeline:
    """
    Extract → match → (smooth) → decide → log.

    All components are injected so the pipeline is testable with
    in-memory stores and stub locators.

    Example usage::

        store    = GalleryStore(FileBackend("data"))
        pipeline = RecognitionPipeline(store)

        pipeline.enroll_images("1", "Alice", ["alice_1.jpg", "alice_2.jpg"])
        outcome = pipeline.recognize_image(load_image("query.jpg"))
        outcome.label, outcome.similarity

    Args:
        store:          Gallery store (identities, vectors, log).
        extractor:      Feature extractor; default 100×100 centre crop.
        matcher:        Matcher; default threshold 25, top-3, Euclidean.
        log:            Recognition log; defaults to one over *store*.
        window_size:    Smoothing window for live sessions.
        top_candidates: Number of ranked candidates kept on outcomes.
        max_samples:    Default sample cap for one enrollment.
    """

    def __init__(
        self,
        store:          GalleryStore,
        extractor:      Optional[FeatureExtractor] = None,
        matcher:        Optional[Matcher] = None,
        log:            Optional[RecognitionLog] = None,
        window_size:    int = DEFAULT_WINDOW_SIZE,
        top_candidates: int = DEFAULT_TOP_CANDIDATES,
        max_samples:    int = DEFAULT_MAX_SAMPLES,
    ) -> None:
        if int(max_samples) < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}.")
        self.store          = store
        self.extractor      = extractor or FeatureExtractor()
        self.matcher        = matcher or Matcher()
        self.log            = log if log is not None else RecognitionLog(store)
        self.window_size    = int(window_size)
        self.top_candidates = int(top_candidates)
        self.max_samples    = int(max_samples)

    @classmethod
    def from_settings(cls, app_settings=None, store: Optional[GalleryStore] = None) -> "RecognitionPipeline":
        """
        Wire every component from the application settings.

        The Haar cascade locator is attached when
        ``settings.extractor.use_face_locator`` is set.
        """
        if app_settings is None:
            from config.settings import settings
            app_settings = settings

        locator = None
        if app_settings.extractor.use_face_locator:
            from core.detector.haar_detector import HaarCascadeLocator
            locator = HaarCascadeLocator()

        extractor = FeatureExtractor(
            canonical_size=app_settings.extractor.canonical_size,
            locator=locator,
        )
        if store is None:
            store = GalleryStore.from_settings(
                app_settings.gallery, feature_dim=extractor.feature_dim
            )
        return cls(
            store=store,
            extractor=extractor,
            matcher=Matcher.from_settings(app_settings.matcher),
            log=RecognitionLog(
                store,
                max_entries=app_settings.gallery.max_log_entries,
                stats_window=app_settings.gallery.stats_window,
            ),
            window_size=app_settings.smoothing.window_size,
            top_candidates=app_settings.matcher.top_candidates,
            max_samples=app_settings.gallery.max_samples_per_session,
        )

    def new_smoother(self) -> TemporalSmoother:
        return TemporalSmoother(self.window_size)

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------

    def recognize_image(self, image: np.ndarray, bbox: Any = None) -> RecognitionOutcome:
        """
        Single-shot recognition: decide on the raw best distance and log it.

        Raises:
            TypeError / ValueError: If *image* is not a usable pixel buffer.
        """
        sample, result, timing = self._extract_and_match(image, bbox)
        return self._decide(sample, result, result.distance, timing, record=True)

    def process_frame(
        self,
        image: np.ndarray,
        smoother: TemporalSmoother,
        bbox: Any = None,
        record: bool = True,
    ) -> RecognitionOutcome:
        """
        Live-mode recognition: push the raw best distance through
        *smoother* and decide on the window mean.
        """
        sample, result, timing = self._extract_and_match(image, bbox)
        return self.smooth_and_decide(sample, result, timing, smoother, record=record)

    def measure_frame(self, image: np.ndarray, bbox: Any = None):
        """
        Extract and match one frame without touching any smoothing window
        or the log.

        Returns:
            ``(sample, result, timing)`` for ``smooth_and_decide``.
        """
        return self._extract_and_match(image, bbox)

    def smooth_and_decide(
        self,
        sample: FeatureSample,
        result: MatchResult,
        timing: RecognitionTiming,
        smoother: TemporalSmoother,
        record: bool = True,
    ) -> RecognitionOutcome:
        """Push the raw best distance into *smoother* and decide on the window mean."""
        smoothed = smoother.push(result.distance)
        return self._decide(sample, result, smoothed, timing, record=record)

    def record_outcome(self, outcome: RecognitionOutcome) -> MatchAttempt:
        """Write *outcome* to the log and attach the resulting attempt."""
        person_id = self._resolve_person_id(outcome.name) if outcome.is_match else None
        outcome.attempt = self.log.record(
            person_id=person_id,
            distance=outcome.distance,
            similarity=outcome.similarity,
            is_match=outcome.is_match,
        )
        return outcome.attempt

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll_sample(self, identity_id: str, image: np.ndarray, bbox: Any = None) -> FeatureSample:
        """Extract one sample from *image* and store it under *identity_id*."""
        sample = self.extractor.extract(image, bbox=bbox)
        self.store.add_sample(identity_id, sample.vector, sample.brightness, sample.contrast)
        return sample

    def enroll_images(
        self,
        code: Optional[str],
        name: str,
        images: Iterable[ImageSource],
        max_samples: Optional[int] = None,
    ) -> Identity:
        """
        Enroll a new identity from a batch of images or file paths.

        Only the first *max_samples* images are considered (the pipeline's
        ``max_samples`` when omitted). An image that cannot be decoded or
        vectorised is skipped with a warning.

        Returns:
            The Identity with its final sample count.
        """
        limit = self.max_samples if max_samples is None else max(0, int(max_samples))
        identity = self.store.enroll(code, name)
        added = 0
        for idx, source in enumerate(islice(images, limit)):
            try:
                image = load_image(source)
                self.enroll_sample(identity.id, image)
            except (TypeError, ValueError, OSError) as exc:
                logger.warning(f"Skipping enrollment image #{idx} for {name!r}: {exc}")
                continue
            added += 1

        logger.info(f"Enrolled {name!r} from {added} image(s)")
        return self.store.get_identity(identity.id) or identity

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _extract_and_match(self, image: np.ndarray, bbox: Any):
        timing = RecognitionTiming()
        t_total = _timer()

        t0 = _timer()
        sample = self.extractor.extract(image, bbox=bbox)
        timing.extract_ms = _timer() - t0

        t0 = _timer()
        result = self.matcher.match(
            sample.vector,
            self.store.gallery_entries(self.matcher.unknown_label),
        )
        timing.match_ms = _timer() - t0
        timing.total_ms = _timer() - t_total
        return sample, result, timing

    def _decide(
        self,
        sample: FeatureSample,
        result: MatchResult,
        distance: float,
        timing: RecognitionTiming,
        record: bool,
    ) -> RecognitionOutcome:
        best = result.best
        is_match = self.matcher.is_match(distance)
        outcome = RecognitionOutcome(
            name=best.name,
            label=best.name if is_match else self.matcher.unknown_label,
            distance=distance,
            raw_distance=best.distance,
            similarity=similarity_from_distance(distance),
            is_match=is_match,
            brightness=sample.brightness,
            contrast=sample.contrast,
            candidates=result.top(self.top_candidates),
            timing=timing,
        )
        if record:
            self.record_outcome(outcome)
        logger.debug(f"Decision: {outcome!r}")
        return outcome

    def _resolve_person_id(self, name: str) -> Optional[str]:
        """First enrolled identity (in enrollment order) carrying *name*."""
        for identity in self.store.list_identities():
            if identity.display_name == name:
                return identity.id
        return None

    def __repr__(self) -> str:
        return (
            f"RecognitionPipeline("
            f"extractor={self.extractor!r}, "
            f"matcher={self.matcher!r}, "
            f"store={self.store!r})"
        )


def _timer() -> float:
    """Return current time in milliseconds (monotonic clock)."""
    return time.perf_counter() * 1000.0
