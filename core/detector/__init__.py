# ============================================================
# Vector Face ID
# core/detector/__init__.py
# ============================================================

from core.detector.base_detector import (
    AvailableLocator,
    BaseFaceLocator,
    FaceBox,
    UnavailableLocator,
    coerce_face_box,
    face_box_from_xywh,
)
from core.detector.haar_detector import HaarCascadeLocator

__all__ = [
    "AvailableLocator",
    "BaseFaceLocator",
    "FaceBox",
    "UnavailableLocator",
    "coerce_face_box",
    "face_box_from_xywh",
    "HaarCascadeLocator",
]
