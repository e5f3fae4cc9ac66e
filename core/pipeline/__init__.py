from core.pipeline.recognition_pipeline import (
    RecognitionOutcome,
    RecognitionPipeline,
    RecognitionTiming,
)
from core.pipeline.sessions import EnrollmentSession, LiveRecognitionSession

__all__ = [
    # Single-shot / per-frame pipeline
    "RecognitionOutcome",
    "RecognitionPipeline",
    "RecognitionTiming",
    # Streaming sessions
    "EnrollmentSession",
    "LiveRecognitionSession",
]
