# Defines the optional face-localisation capability used as a crop
# hint by the feature extractor, plus the FaceBox data type.
#
# Locators: AvailableLocator wraps a detect callable, UnavailableLocator
# never finds a face, HaarCascadeLocator (haar_detector.py) uses OpenCV.

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class FaceBox:
    """Corner-form face rectangle in source pixels; x2 and y2 are exclusive."""

    x1: int
    y1: int
    x2: int
    y2: int
    confidence: float = 1.0

    @property
    def width(self) -> int:
        return max(0, self.x2 - self.x1)

    @property
    def height(self) -> int:
        return max(0, self.y2 - self.y1)

    @property
    def is_empty(self) -> bool:
        return self.width * self.height == 0

    @property
    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x1, self.y1, self.x2, self.y2

    def __repr__(self) -> str:
        x1, y1, x2, y2 = self.as_tuple
        return f"FaceBox({x1},{y1},{x2},{y2} {self.width}x{self.height} conf={self.confidence:.3f})"


def face_box_from_xywh(
    x: float,
    y: float,
    width: float,
    height: float,
    confidence: float = 1.0,
) -> FaceBox:
    """Rounded FaceBox from the (x, y, w, h) layout OpenCV cascades produce."""
    left, top = int(round(x)), int(round(y))
    return FaceBox(left, top, left + int(round(width)), top + int(round(height)), float(confidence))


def coerce_face_box(value: Any) -> Optional[FaceBox]:
    """
    Normalise a localiser answer into a FaceBox.

    Accepts a FaceBox, an (x, y, width, height) sequence or None.
    Boxes with no area are treated as "no face".

    Raises:
        TypeError: For any other value.
    """
    if value is None:
        return None
    if isinstance(value, FaceBox):
        box = value
    elif isinstance(value, (tuple, list, np.ndarray)) and len(value) == 4:
        box = face_box_from_xywh(*(float(v) for v in value))
    else:
        raise TypeError(
            f"Face locator returned unsupported value of type {type(value).__name__}."
        )
    return None if box.is_empty else box


class BaseFaceLocator(ABC):
    """
    Optional face-localisation capability.

    ``locate`` returns the box of the most prominent face, or None.
    Implementations may raise; callers that need a fallback treat any
    exception as "no face" (see ``FeatureExtractor``).
    """

    @property
    def is_available(self) -> bool:
        """True when the capability can actually return boxes."""
        return True

    @abstractmethod
    def locate(self, image: np.ndarray) -> Optional[FaceBox]:
        """Box of the most prominent face in an RGB uint8 frame, or None."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(available={self.is_available})"


class AvailableLocator(BaseFaceLocator):
    """Wraps a detect callable ``image -> FaceBox | (x, y, w, h) | None``."""

    def __init__(self, detect_fn: Callable[[np.ndarray], Any]) -> None:
        if not callable(detect_fn):
            raise TypeError("detect_fn must be callable.")
        self._detect_fn = detect_fn

    def locate(self, image: np.ndarray) -> Optional[FaceBox]:
        return coerce_face_box(self._detect_fn(image))


class UnavailableLocator(BaseFaceLocator):
    """Capability absent: never returns a box."""

    @property
    def is_available(self) -> bool:
        return False

    def locate(self, image: np.ndarray) -> Optional[FaceBox]:
        return None
