# OpenCV Haar-cascade face locator.
#
# A lightweight, model-free implementation of the face-localisation
# capability: it ships with opencv-python, needs no downloads, and
# returns the largest frontal face as a crop hint.

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from core.detector.base_detector import BaseFaceLocator, FaceBox, face_box_from_xywh
from utils.image_utils import rgb_to_luma
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CASCADE = "haarcascade_frontalface_default.xml"


class HaarCascadeLocator(BaseFaceLocator):
    """
    Largest-face locator backed by ``cv2.CascadeClassifier``.

    The cascade is loaded lazily on the first ``locate`` call.

    Args:
        cascade_path:  Path to a cascade XML file. Defaults to the frontal
                       face cascade bundled with OpenCV.
        scale_factor:  Image pyramid scale step for ``detectMultiScale``.
        min_neighbors: Minimum neighbouring detections to keep a box.
        min_size:      Minimum face size in pixels (width, height).
    """

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: Tuple[int, int] = (40, 40),
    ) -> None:
        self.cascade_path = cascade_path or (cv2.data.haarcascades + DEFAULT_CASCADE)
        self.scale_factor = float(scale_factor)
        self.min_neighbors = int(min_neighbors)
        self.min_size = tuple(min_size)
        self._cascade: Optional[cv2.CascadeClassifier] = None

    def load(self) -> None:
        """Load the cascade file. Raises RuntimeError if it cannot be read."""
        cascade = cv2.CascadeClassifier(self.cascade_path)
        if cascade.empty():
            raise RuntimeError(f"Failed to load Haar cascade from {self.cascade_path}")
        self._cascade = cascade
        logger.debug(f"Haar cascade loaded ← {self.cascade_path}")

    def locate(self, image: np.ndarray) -> Optional[FaceBox]:
        if self._cascade is None:
            self.load()

        gray = rgb_to_luma(image) if image.ndim == 3 else image
        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
        )
        if len(faces) == 0:
            return None

        # Largest face wins
        x, y, w, h = max(faces, key=lambda f: int(f[2]) * int(f[3]))
        return face_box_from_xywh(x, y, w, h)

    def __repr__(self) -> str:
        return (
            f"HaarCascadeLocator("
            f"scale_factor={self.scale_factor}, "
            f"min_neighbors={self.min_neighbors}, "
            f"loaded={self._cascade is not None})"
        )
