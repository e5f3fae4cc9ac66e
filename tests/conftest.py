"""Shared pytest fixtures for all test modules."""

from __future__ import annotations

import numpy as np
import pytest

from core.detector.base_detector import FaceBox
from core.extractor.feature_extractor import FeatureExtractor
from core.gallery.gallery_store import GalleryStore
from core.gallery.storage import InMemoryBackend
from core.matcher.matcher import Matcher
from core.pipeline.recognition_pipeline import RecognitionPipeline

DIM = 10_000


@pytest.fixture
def blank_image() -> np.ndarray:
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def white_image() -> np.ndarray:
    return np.full((480, 640, 3), 255, dtype=np.uint8)


@pytest.fixture
def random_image() -> np.ndarray:
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def other_random_image() -> np.ndarray:
    rng = np.random.default_rng(4242)
    return rng.integers(0, 256, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def sample_face_box() -> FaceBox:
    return FaceBox(x1=100, y1=80, x2=300, y2=320, confidence=0.92)


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def store(memory_backend) -> GalleryStore:
    return GalleryStore(memory_backend)


@pytest.fixture
def extractor() -> FeatureExtractor:
    return FeatureExtractor(canonical_size=(100, 100))


@pytest.fixture
def matcher() -> Matcher:
    return Matcher(threshold=25.0, top_k=3)


@pytest.fixture
def pipeline(store, extractor, matcher) -> RecognitionPipeline:
    return RecognitionPipeline(store, extractor=extractor, matcher=matcher)


@pytest.fixture
def zero_vector() -> np.ndarray:
    return np.zeros(DIM, dtype=np.float32)
