# ============================================================
# Vector Face ID
# core/gallery/__init__.py
# ============================================================

from core.gallery.gallery_store import GalleryEntry, GalleryStore, IdentityNotFoundError
from core.gallery.models import FeatureVector, GalleryState, Identity, MatchAttempt
from core.gallery.recognition_log import RecognitionLog, RecognitionStats
from core.gallery.storage import FileBackend, InMemoryBackend, StorageBackend

__all__ = [
    "GalleryEntry",
    "GalleryStore",
    "IdentityNotFoundError",
    "FeatureVector",
    "GalleryState",
    "Identity",
    "MatchAttempt",
    "RecognitionLog",
    "RecognitionStats",
    "FileBackend",
    "InMemoryBackend",
    "StorageBackend",
]
