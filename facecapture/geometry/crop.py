"""Crop rectangle computation around a detected face."""

from __future__ import annotations

import logging

from facecapture.errors import CropBoundsInvalid
from facecapture.types import (
    BoundingBox,
    CropMode,
    CropRect,
    CropRequest,
    FixedIdFormat,
    ProportionalPadding,
)

LOGGER = logging.getLogger("facecapture.geometry.crop")

# Vertical padding multipliers: more room above for forehead and hair than below for chin and neck.
PAD_ABOVE = 1.95
PAD_BELOW = 1.9


def proportional_padding_crop(
    source_width: float,
    source_height: float,
    face_box: BoundingBox,
    factor: float = 0.25,
) -> CropRect:
    """Pad the face box by ``face_box.width * factor`` and clamp to the source."""
    adjusted_pad = face_box.width * factor

    x1 = max(face_box.x - adjusted_pad, 0)
    y1 = max(face_box.y - adjusted_pad * PAD_ABOVE, 0)
    x2 = min(face_box.x + face_box.width + adjusted_pad, source_width)
    y2 = min(face_box.y + face_box.height + adjusted_pad * PAD_BELOW, source_height)

    if x1 < 0 or y1 < 0 or x2 < 0 or y2 < 0:
        raise CropBoundsInvalid(rect=(x1, y1, x2, y2))
    if x2 <= x1 or y2 <= y1:
        raise CropBoundsInvalid("Face box lies outside the source image.", rect=(x1, y1, x2, y2))

    return CropRect(x1, y1, x2 - x1, y2 - y1)


def fixed_id_crop(
    source_width: float,
    source_height: float,
    face_box: BoundingBox,
    mode: FixedIdFormat,
) -> CropRect:
    """Fixed-size ID crop ending ``mode.bottom_margin`` pixels below the face.

    The horizontal origin is clamped to 0; the vertical origin is only clamped
    when ``mode.clamp_origin`` is set. A rectangle that still falls outside the
    source raises :class:`CropBoundsInvalid`.
    """
    target_width = mode.target_width
    target_height = mode.target_height
    if target_height > source_height:
        target_height = source_height

    center_x = face_box.center_x
    crop_y = face_box.y + face_box.height - target_height + mode.bottom_margin
    crop_x = max(0, center_x - target_width / 2)
    if mode.clamp_origin:
        crop_y = max(0, crop_y)

    crop_width = min(target_width, source_width - crop_x)
    crop_height = min(target_height, source_height - crop_y)
    rect = CropRect(crop_x, crop_y, crop_width, crop_height)

    if not rect.fits_within(source_width, source_height):
        LOGGER.warning(
            "ID crop out of bounds x=%.1f y=%.1f w=%.1f h=%.1f source=%sx%s",
            crop_x,
            crop_y,
            crop_width,
            crop_height,
            source_width,
            source_height,
        )
        raise CropBoundsInvalid(
            "ID crop falls outside the source image.",
            rect=(crop_x, crop_y, crop_width, crop_height),
        )
    return rect


def compute_crop(
    source_width: float,
    source_height: float,
    face_box: BoundingBox,
    mode: CropMode,
) -> CropRect:
    if isinstance(mode, ProportionalPadding):
        return proportional_padding_crop(source_width, source_height, face_box, mode.factor)
    if isinstance(mode, FixedIdFormat):
        return fixed_id_crop(source_width, source_height, face_box, mode)
    raise TypeError(f"Unsupported crop mode {mode!r}")


def compute_crop_request(request: CropRequest) -> CropRect:
    return compute_crop(request.source_width, request.source_height, request.face_box, request.mode)
