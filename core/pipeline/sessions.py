# ============================================================
# Vector Face ID
# core/pipeline/sessions.py
# ============================================================
# Stateful front-ends over RecognitionPipeline for streamed frames:
#
#   LiveRecognitionSession: one smoothed decision per frame, at most
#       one cycle in flight
#   EnrollmentSession: captures up to N samples for a new identity,
#       cancellable
# ============================================================

from __future__ import annotations

import threading
from typing import Any, Iterable, Optional

import numpy as np

from core.extractor.feature_extractor import FeatureSample
from core.gallery.gallery_store import IdentityNotFoundError
from core.gallery.models import Identity
from core.pipeline.recognition_pipeline import RecognitionOutcome, RecognitionPipeline
from utils.logger import get_logger

logger = get_logger(__name__)


class LiveRecognitionSession:
    """
    Continuous recognition over a frame stream.

    ``submit`` runs one extract → match → smooth → decide → log cycle.
    Frames submitted while a cycle is still running are dropped rather
    than queued. A cycle that completes after ``stop()`` is discarded and
    leaves the log untouched.

    Usage::

        session = LiveRecognitionSession(pipeline)
        session.start()
        for frame in frames:
            outcome = session.submit(frame)
            if outcome is not None:
                show(outcome.label, outcome.similarity)
        session.stop()
    """

    def __init__(self, pipeline: RecognitionPipeline) -> None:
        self.pipeline = pipeline
        self.smoother = pipeline.new_smoother()
        self.frames_processed = 0
        self.frames_dropped = 0

        self._running = False
        self._generation = 0
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Begin a new session with an empty smoothing window."""
        with self._state_lock:
            self._generation += 1
            self.smoother.reset()
            self.frames_processed = 0
            self.frames_dropped = 0
            self._running = True
        logger.info("Live recognition started")

    def stop(self) -> None:
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            self._generation += 1
        logger.info(
            f"Live recognition stopped | processed={self.frames_processed} "
            f"dropped={self.frames_dropped}"
        )

    def submit(self, frame: np.ndarray, bbox: Any = None) -> Optional[RecognitionOutcome]:
        """
        Process one frame.

        Returns:
            The outcome, or None when the session is stopped, a previous
            cycle is still in flight, or the session was stopped while
            this cycle ran.
        """
        if not self._running:
            return None
        if not self._cycle_lock.acquire(blocking=False):
            with self._state_lock:
                self.frames_dropped += 1
            return None
        try:
            generation = self._generation
            sample, result, timing = self.pipeline.measure_frame(frame, bbox=bbox)
            # The window belongs to the generation that is current now
            with self._state_lock:
                if not self._running or generation != self._generation:
                    logger.debug("Discarding cycle that finished after stop")
                    return None
                outcome = self.pipeline.smooth_and_decide(
                    sample, result, timing, self.smoother, record=True
                )
                self.frames_processed += 1
            return outcome
        finally:
            self._cycle_lock.release()

    def __enter__(self) -> "LiveRecognitionSession":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def __repr__(self) -> str:
        return (
            f"LiveRecognitionSession(running={self._running}, "
            f"processed={self.frames_processed}, "
            f"smoother={self.smoother!r})"
        )


class EnrollmentSession:
    """
    Collects up to ``max_samples`` samples for one new identity.

    The identity is created on ``start()``. Each ``capture`` vectorises one
    frame and stores it; a frame that fails extraction is skipped. After
    ``cancel()`` nothing more is written. The cap defaults to the
    pipeline's ``max_samples``. If the identity disappears from the store
    (the gallery was cleared) the session cancels itself.
    """

    def __init__(
        self,
        pipeline: RecognitionPipeline,
        code: Optional[str],
        full_name: str,
        max_samples: Optional[int] = None,
    ) -> None:
        if max_samples is None:
            max_samples = pipeline.max_samples
        if int(max_samples) < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}.")
        self.pipeline = pipeline
        self.code = code
        self.full_name = full_name
        self.max_samples = int(max_samples)

        self.identity: Optional[Identity] = None
        self.captured = 0
        self.skipped = 0
        self.cancelled = False

    def start(self) -> Identity:
        """
        Enroll the identity.

        Raises:
            RuntimeError: If the session was already started.
            ValueError:   If *full_name* is empty.
        """
        if self.identity is not None:
            raise RuntimeError("Enrollment session already started.")
        self.identity = self.pipeline.store.enroll(self.code, self.full_name)
        logger.info(f"Enrollment started for {self.identity.display_name!r}")
        return self.identity

    @property
    def is_active(self) -> bool:
        return self.identity is not None and not self.cancelled and not self.is_complete

    @property
    def is_complete(self) -> bool:
        return self.captured >= self.max_samples

    @property
    def progress(self) -> float:
        """Fraction of the sample target reached, in [0, 1]."""
        return min(1.0, self.captured / self.max_samples)

    def capture(self, frame: np.ndarray, bbox: Any = None) -> Optional[FeatureSample]:
        """
        Vectorise *frame* and add it to the identity.

        Returns:
            The stored sample, or None if the session is inactive, the
            frame could not be vectorised, or the identity was removed.
        """
        if not self.is_active:
            return None
        try:
            sample = self.pipeline.enroll_sample(self.identity.id, frame, bbox=bbox)
        except (TypeError, ValueError) as exc:
            self.skipped += 1
            logger.warning(f"Enrollment frame skipped: {exc}")
            return None
        except IdentityNotFoundError:
            self.cancelled = True
            logger.warning(
                f"Identity {self.identity.display_name!r} no longer in the gallery; "
                f"enrollment cancelled after {self.captured} samples"
            )
            return None

        self.captured += 1
        if self.is_complete:
            logger.info(
                f"Enrollment complete for {self.identity.display_name!r} "
                f"({self.captured} samples)"
            )
        return sample

    def capture_all(self, frames: Iterable[np.ndarray]) -> int:
        """Capture from *frames* until complete or cancelled; returns samples added."""
        before = self.captured
        for frame in frames:
            if not self.is_active:
                break
            self.capture(frame)
        return self.captured - before

    def cancel(self) -> None:
        self.cancelled = True
        logger.info(f"Enrollment cancelled after {self.captured} samples")

    def __repr__(self) -> str:
        name = self.identity.display_name if self.identity else self.full_name
        return (
            f"EnrollmentSession(name={name!r}, "
            f"progress={self.captured}/{self.max_samples}, "
            f"cancelled={self.cancelled})"
        )
