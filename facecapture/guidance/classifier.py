"""Live framing guidance from a single detection result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from facecapture.types import (
    COLOR_LIME,
    COLOR_RED,
    COLOR_YELLOW,
    LEFT_EYE,
    LEFT_WRIST,
    NO_FACE_STATE,
    PENDING_STATE,
    RIGHT_EYE,
    RIGHT_WRIST,
    DetectionResult,
    FaceObservation,
    GuidanceState,
    GuidanceStatus,
)


@dataclass(frozen=True)
class GuidanceThresholds:
    too_far_ratio: float = 0.2
    too_close_ratio: float = 0.8
    eye_confidence: float = 0.2


DEFAULT_THRESHOLDS = GuidanceThresholds()


def face_area_ratio(face: FaceObservation, frame_width: float, frame_height: float) -> float:
    frame_area = frame_width * frame_height
    if frame_area <= 0:
        return 0.0
    return face.box.area / frame_area


def _eyes_visible(face: FaceObservation, min_confidence: float) -> bool:
    left = face.keypoint_score(LEFT_EYE)
    right = face.keypoint_score(RIGHT_EYE)
    return left is not None and right is not None and left > min_confidence and right > min_confidence


def classify(
    detection: DetectionResult,
    frame_width: float,
    frame_height: float,
    previous: Optional[GuidanceState] = None,
    thresholds: GuidanceThresholds = DEFAULT_THRESHOLDS,
) -> GuidanceState:
    """Map a detection to a guidance state.

    Rules run in a fixed order and each one that matches overwrites the
    tentative value left by the ones before it, so the ratio checks at the end
    take precedence over the facing and occlusion checks. The tentative value
    starts from ``previous`` (the state currently shown), or ``PENDING``.
    """
    face = detection.primary
    if face is None:
        return NO_FACE_STATE

    start = previous or PENDING_STATE
    status, message, color = start.status, start.message, start.color
    facing = face.is_facing_forward
    wrists_visible = face.has_keypoint(LEFT_WRIST) or face.has_keypoint(RIGHT_WRIST)
    ratio = face_area_ratio(face, frame_width, frame_height)

    if not facing:
        status, message, color = GuidanceStatus.NOT_FACING_FORWARD, "Face forward", COLOR_YELLOW

    if not face.is_mouth_visible or not _eyes_visible(face, thresholds.eye_confidence):
        # keeps the last message that was set
        status, color = GuidanceStatus.OCCLUDED, COLOR_YELLOW

    if thresholds.too_far_ratio < ratio <= thresholds.too_close_ratio and facing and not wrists_visible:
        status, message, color = GuidanceStatus.READY, "Perfect!", COLOR_LIME
    elif ratio < thresholds.too_far_ratio:
        status, message, color = GuidanceStatus.TOO_FAR, "Too far", COLOR_RED
    elif facing and ratio > thresholds.too_close_ratio:
        status, message, color = GuidanceStatus.TOO_CLOSE, "Too close", COLOR_YELLOW

    return GuidanceState(status, message, color)
