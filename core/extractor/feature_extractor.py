# ============================================================
# Vector Face ID
# core/extractor/feature_extractor.py
# ============================================================
# Converts an RGB image region into a fixed-length grayscale
# intensity vector plus brightness / contrast statistics.
#
#   RGB frame ──► crop source (bbox | locator hint | centre)
#             ──► resample to canonical size (e.g. 100×100)
#             ──► BT.601 luma, 8-bit ──► / 255 ──► row-major vector
#
# The transform is deterministic: identical pixels and crop
# source always yield identical vectors.
# ============================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np

from core.detector.base_detector import BaseFaceLocator, FaceBox, coerce_face_box
from utils.image_utils import center_box, crop_region, normalise_channels, rgb_to_luma
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CANONICAL_SIZE: Tuple[int, int] = (100, 100)


@dataclass
class FeatureSample:
    """
    One vectorised face sample.

    Attributes:
        vector:      (D,) float32 array of normalised intensities in [0, 1],
                     row-major over the canonical crop.
        brightness:  Mean of *vector*.
        contrast:    Population standard deviation of *vector*.
        crop_box:    (x1, y1, x2, y2) source rectangle that was sampled.
        located:     True if the crop came from a face-locator hint.
    """

    vector: np.ndarray
    brightness: float
    contrast: float
    crop_box: Tuple[int, int, int, int] = (0, 0, 0, 0)
    located: bool = False

    @property
    def dim(self) -> int:
        return int(self.vector.shape[0])

    def __repr__(self) -> str:
        return (
            f"FeatureSample(dim={self.dim}, "
            f"brightness={self.brightness:.3f}, "
            f"contrast={self.contrast:.3f}, "
            f"located={self.located})"
        )


def vectorize_gray(gray: np.ndarray) -> FeatureSample:
    """
    Normalise an 8-bit grey buffer and compute its statistics.

    Args:
        gray: uint8 array of any shape; flattened in row-major order.

    Returns:
        FeatureSample with the normalised vector, brightness and contrast.
    """
    values = np.asarray(gray, dtype=np.float64).reshape(-1) / 255.0
    if values.size == 0:
        raise ValueError("Grey buffer is empty.")
    brightness = float(values.mean())
    contrast = float(np.sqrt(np.mean((values - brightness) ** 2)))
    return FeatureSample(
        vector=values.astype(np.float32),
        brightness=brightness,
        contrast=contrast,
    )


class FeatureExtractor:
    """
    Deterministic grayscale vectoriser.

    Usage::

        extractor = FeatureExtractor(canonical_size=(100, 100))
        sample = extractor.extract(rgb_frame)
        sample.vector.shape      # (10000,)

    With a face locator the located box becomes the crop source; when the
    locator is absent, returns nothing or raises, the centred square of
    canonical size is used instead.
    """

    def __init__(
        self,
        canonical_size: Tuple[int, int] = DEFAULT_CANONICAL_SIZE,
        locator: Optional[BaseFaceLocator] = None,
    ) -> None:
        """
        Args:
            canonical_size: (width, height) every region is resampled to.
            locator:        Optional face-localisation capability.
        """
        cw, ch = (int(v) for v in canonical_size)
        if cw <= 0 or ch <= 0:
            raise ValueError(f"canonical_size must be positive, got {canonical_size}.")
        self.canonical_size: Tuple[int, int] = (cw, ch)
        self.locator = locator

        logger.debug(
            f"FeatureExtractor created | size={cw}x{ch} | "
            f"locator={locator!r}"
        )

    @property
    def feature_dim(self) -> int:
        """Length D of every extracted vector."""
        return self.canonical_size[0] * self.canonical_size[1]

    def extract(self, image: np.ndarray, bbox: Any = None) -> FeatureSample:
        """
        Vectorise one image region.

        Args:
            image: RGB pixel buffer (H, W, 3); GRAY (H, W) and RGBA
                   (H, W, 4) are converted.
            bbox:  Optional explicit crop source, a FaceBox or an
                   (x, y, width, height) sequence. Skips the locator.

        Returns:
            FeatureSample with a vector of length ``feature_dim``.

        Raises:
            TypeError:  If *image* is not a numeric ndarray.
            ValueError: If *image* is empty or has an unsupported shape.
        """
        frame = normalise_channels(image)
        h, w = frame.shape[:2]

        box = coerce_face_box(bbox)
        located = False
        if box is None:
            box = self._locate(frame)
            located = box is not None

        if box is None:
            crop = center_box(w, h, self.canonical_size)
        else:
            crop = box.as_tuple

        region = crop_region(frame, crop, self.canonical_size)
        sample = vectorize_gray(rgb_to_luma(region))
        sample.crop_box = tuple(int(v) for v in crop)
        sample.located = located
        return sample

    def _locate(self, frame: np.ndarray) -> Optional[FaceBox]:
        """Ask the locator for a hint; every failure means "no hint"."""
        if self.locator is None or not self.locator.is_available:
            return None
        try:
            return coerce_face_box(self.locator.locate(frame))
        except Exception as exc:
            logger.debug(f"Face locator failed, using centre crop: {exc}")
            return None

    def __repr__(self) -> str:
        cw, ch = self.canonical_size
        return f"FeatureExtractor(size={cw}x{ch}, locator={self.locator!r})"
