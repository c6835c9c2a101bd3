"""Image preprocessing helpers."""
from io import BytesIO
from typing import Optional

import numpy as np
import cv2
from PIL import Image, ImageOps, UnidentifiedImageError

from bodyscan.errors import DetectionError


def bytes_to_pil(image_bytes: bytes) -> Image.Image:
    """Decode bytes to an upright RGB image (phone photos carry EXIF rotation)."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image = ImageOps.exif_transpose(image)
    except (UnidentifiedImageError, OSError) as exc:
        raise DetectionError("We couldn't read that photo. Please take it again.") from exc
    return image.convert('RGB')


def limit_size(img: np.ndarray, max_dimension: int) -> np.ndarray:
    h, w = img.shape[:2]
    longest = max(h, w)
    if longest <= max_dimension:
        return img
    scale = max_dimension / longest
    return cv2.resize(img, (round(w * scale), round(h * scale)), interpolation=cv2.INTER_AREA)


def bytes_to_rgb_array(image_bytes: bytes, max_dimension: Optional[int] = None) -> np.ndarray:
    """Decode image bytes to an RGB numpy array ready for pose detection."""
    img = np.asarray(bytes_to_pil(image_bytes))
    if max_dimension:
        img = limit_size(img, max_dimension)
    return img
