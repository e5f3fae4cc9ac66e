from __future__ import annotations

from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from PIL import Image

from utils.logger import get_logger

logger = get_logger(__name__)

# Frames are RGB uint8 (H, W, 3) throughout the package
Frame = np.ndarray
BBox = Tuple[int, int, int, int]  # (x1, y1, x2, y2)

# ITU-R BT.601 luma weights (R, G, B)
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def load_image(source: Union[str, Path, bytes, np.ndarray, Image.Image]) -> Frame:
    """
    Load an image from a file path, encoded bytes, a PIL image or an array.

    Arrays are assumed to already be RGB and are only channel-normalised.

    Args:
        source: File path, encoded bytes, PIL image or ndarray.

    Returns:
        RGB uint8 ndarray of shape (H, W, 3).

    Raises:
        FileNotFoundError: If a path does not exist.
        ValueError:        If the data cannot be decoded.
        TypeError:         For unsupported source types.
    """
    if isinstance(source, np.ndarray):
        return normalise_channels(source)

    if isinstance(source, Image.Image):
        return np.array(source.convert("RGB"))

    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")
        img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if img is None:
            raise ValueError(f"OpenCV could not decode image: {path}")
    elif isinstance(source, (bytes, bytearray)):
        arr = np.frombuffer(bytes(source), dtype=np.uint8)
        img = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED)
        if img is None:
            raise ValueError("OpenCV could not decode image from bytes.")
    else:
        raise TypeError(f"Unsupported source type: {type(source).__name__}")

    # OpenCV decodes to BGR / BGRA / GRAY
    if img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGB)
    elif img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    return normalise_channels(img)


def normalise_channels(image: np.ndarray) -> Frame:
    """
    Ensure the image is a non-empty uint8 RGB array with exactly 3 channels.

    GRAY → RGB and RGBA → RGB are converted; float images in [0, 1] are
    rescaled to 0..255.

    Raises:
        TypeError:  If *image* is not a numeric ndarray.
        ValueError: If the shape is unsupported or the array is empty.
    """
    if not isinstance(image, np.ndarray):
        raise TypeError(f"Expected numpy ndarray, got {type(image).__name__}.")
    if image.size == 0:
        raise ValueError("Image array is empty (zero size).")
    if not (np.issubdtype(image.dtype, np.integer) or np.issubdtype(image.dtype, np.floating)):
        raise TypeError(f"Unsupported pixel dtype: {image.dtype}.")

    if np.issubdtype(image.dtype, np.floating):
        if not np.isfinite(image).all():
            raise ValueError("Image contains NaN or Inf pixel values.")
        scale = 255.0 if float(image.max()) <= 1.0 else 1.0
        image = np.clip(image * scale, 0, 255).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.ndim == 3:
        c = image.shape[2]
        if c == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
        if c == 3:
            return image
        if c == 1:
            return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGB)
    raise ValueError(f"Unsupported image shape: {image.shape}")


def center_box(
    image_width: int,
    image_height: int,
    size: Tuple[int, int],
) -> BBox:
    """
    Return the centred box of exactly *size* (width, height).

    The box may extend past the image edges when the image is smaller
    than *size*; ``crop_region`` fills those pixels with black.
    """
    cw, ch = size
    x1 = (image_width - cw) // 2
    y1 = (image_height - ch) // 2
    return x1, y1, x1 + cw, y1 + ch


def crop_region(
    image: Frame,
    bbox: BBox,
    out_size: Tuple[int, int],
) -> Frame:
    """
    Sample the rectangle *bbox* of *image* into an array of *out_size*.

    Pixels of the rectangle that fall outside the image read as black.
    When the rectangle already has the output size no resampling happens,
    otherwise it is resized with bilinear interpolation.

    Args:
        image:    RGB uint8 source frame.
        bbox:     (x1, y1, x2, y2) source rectangle in pixel coordinates.
        out_size: (width, height) of the result.

    Returns:
        RGB uint8 ndarray of shape (out_h, out_w, 3).

    Raises:
        ValueError: If the rectangle has zero or negative area.
    """
    x1, y1, x2, y2 = (int(v) for v in bbox)
    rw, rh = x2 - x1, y2 - y1
    if rw <= 0 or rh <= 0:
        raise ValueError(f"Crop region has no area: {bbox}")

    h, w = image.shape[:2]
    region = np.zeros((rh, rw, image.shape[2]), dtype=image.dtype)

    ix1, iy1 = max(0, x1), max(0, y1)
    ix2, iy2 = min(w, x2), min(h, y2)
    if ix2 > ix1 and iy2 > iy1:
        region[iy1 - y1 : iy2 - y1, ix1 - x1 : ix2 - x1] = image[iy1:iy2, ix1:ix2]
    else:
        logger.debug(f"Crop region {bbox} lies outside the {w}x{h} image")

    ow, oh = out_size
    if (rw, rh) == (ow, oh):
        return region
    return cv2.resize(region, (ow, oh), interpolation=cv2.INTER_LINEAR)


def rgb_to_luma(image: Frame) -> np.ndarray:
    """
    Convert an RGB frame to 8-bit luma using Y = 0.299R + 0.587G + 0.114B.

    Values are rounded to the nearest integer and clamped to 0..255, the
    same quantisation an 8-bit grey buffer applies.

    Returns:
        uint8 ndarray of shape (H, W).
    """
    y = image[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    return np.clip(np.rint(y), 0, 255).astype(np.uint8)
