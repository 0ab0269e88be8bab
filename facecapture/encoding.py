"""Encode crop regions into raster images and data URLs."""

from __future__ import annotations

import base64
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from facecapture.errors import CropBoundsInvalid
from facecapture.types import CropRect

LOGGER = logging.getLogger("facecapture.encoding")

MIME_TYPES: Dict[str, str] = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
_EXTENSIONS: Dict[str, str] = {"jpeg": ".jpg", "png": ".png", "webp": ".webp"}

# Empirical ratio between a data URL's base64 length and the decoded byte count.
_DATA_URL_BYTE_RATIO = 0.5624896334383812


@dataclass
class EncodedImage:
    data: bytes
    mime_type: str
    width: int
    height: int

    @property
    def data_url(self) -> str:
        payload = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"

    @property
    def size_kb(self) -> float:
        return len(self.data) / 1024


def normalize_format(image_format: str) -> str:
    fmt = image_format.lower().strip()
    if fmt.startswith("image/"):
        fmt = fmt[len("image/") :]
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in MIME_TYPES:
        raise ValueError(f"Unsupported image format {image_format!r}; expected one of {sorted(MIME_TYPES)}")
    return fmt


def _encode_params(fmt: str, quality: Optional[int]) -> List[int]:
    if quality is None:
        return []
    if fmt == "jpeg":
        return [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
    if fmt == "webp":
        return [cv2.IMWRITE_WEBP_QUALITY, int(quality)]
    # PNG takes a compression level rather than a quality.
    return []


def crop_region(image: np.ndarray, rect: CropRect) -> np.ndarray:
    height, width = image.shape[:2]
    if not rect.fits_within(width, height):
        raise CropBoundsInvalid("Crop rectangle outside image", rect=(rect.x, rect.y, rect.width, rect.height))
    rows, cols = rect.as_slices()
    region = image[rows, cols]
    if region.size == 0:
        raise CropBoundsInvalid("Crop rectangle is empty", rect=(rect.x, rect.y, rect.width, rect.height))
    return region


def encode_image(image: np.ndarray, image_format: str = "jpeg", quality: Optional[int] = None) -> EncodedImage:
    fmt = normalize_format(image_format)
    ok, buffer = cv2.imencode(_EXTENSIONS[fmt], image, _encode_params(fmt, quality))
    if not ok:
        raise RuntimeError(f"OpenCV failed to encode {fmt} image")
    height, width = image.shape[:2]
    return EncodedImage(data=buffer.tobytes(), mime_type=MIME_TYPES[fmt], width=width, height=height)


def encode_crop(
    image: np.ndarray,
    rect: CropRect,
    image_format: str = "jpeg",
    quality: Optional[int] = None,
) -> EncodedImage:
    """Cut ``rect`` out of ``image`` and encode it."""
    region = np.ascontiguousarray(crop_region(image, rect))
    encoded = encode_image(region, image_format, quality)
    LOGGER.debug(
        "Encoded %dx%d crop as %s (%.1f KB)",
        encoded.width,
        encoded.height,
        encoded.mime_type,
        encoded.size_kb,
    )
    return encoded


def estimate_data_url_size(data_url: str) -> float:
    """Approximate decoded byte size of a base64 data URL."""
    return 4 * math.ceil(len(data_url) / 3) * _DATA_URL_BYTE_RATIO


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Split a ``data:`` URL into its raw bytes and mime type."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("Not a data URL")
    mime_type = header[len("data:") :].split(";")[0]
    return base64.b64decode(payload), mime_type


def decode_image(data: bytes) -> np.ndarray:
    array = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(array, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("Unable to decode image bytes")
    return image
