"""Common dataclasses and type aliases used across the facecapture package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

# Keypoint names consulted by the guidance classifier
LEFT_EYE = "leftEye"
RIGHT_EYE = "rightEye"
LEFT_WRIST = "leftWrist"
RIGHT_WRIST = "rightWrist"

# Gesture tags
FACING_CENTER = "facing-center"
MOUTH_VISIBLE = "mouth-visible"

Frame = np.ndarray


@dataclass(frozen=True)
class ConstraintProfile:
    """Exact camera resolution request."""

    exact_width: int
    exact_height: int

    @property
    def area(self) -> int:
        return self.exact_width * self.exact_height

    def __str__(self) -> str:
        return f"{self.exact_width}x{self.exact_height}"


DEFAULT_PROFILES: Tuple[ConstraintProfile, ...] = (
    ConstraintProfile(320, 180),
    ConstraintProfile(320, 240),
    ConstraintProfile(640, 360),
    ConstraintProfile(640, 480),
    ConstraintProfile(1280, 720),
    ConstraintProfile(1920, 1080),
)


@dataclass
class DeviceInfo:
    """Settings reported by an acquired stream."""

    device_id: Union[int, str, None]
    capture_width: Optional[int] = None
    capture_height: Optional[int] = None
    is_facing_user: Optional[bool] = None


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face box in source-image pixels (x, y, width, height)."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"BoundingBox dimensions must be >= 0, got {self.width}x{self.height}")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2


@dataclass(frozen=True)
class FaceObservation:
    """One detected face with its keypoint confidences and gesture tags."""

    box: BoundingBox
    keypoints: Mapping[str, float] = field(default_factory=dict)
    gestures: FrozenSet[str] = frozenset()

    def keypoint_score(self, name: str) -> Optional[float]:
        return self.keypoints.get(name)

    def has_keypoint(self, name: str) -> bool:
        return name in self.keypoints

    @property
    def is_facing_forward(self) -> bool:
        return FACING_CENTER in self.gestures

    @property
    def is_mouth_visible(self) -> bool:
        return any("mouth" in gesture for gesture in self.gestures)


@dataclass(frozen=True)
class DetectionResult:
    """Ordered faces returned by a detector; only the first one is consulted."""

    faces: Sequence[FaceObservation] = ()

    @property
    def primary(self) -> Optional[FaceObservation]:
        return self.faces[0] if self.faces else None

    def __bool__(self) -> bool:
        return bool(self.faces)


class GuidanceStatus(str, Enum):
    PENDING = "pending"
    NO_FACE = "no_face"
    NOT_FACING_FORWARD = "not_facing_forward"
    OCCLUDED = "occluded"
    TOO_FAR = "too_far"
    TOO_CLOSE = "too_close"
    READY = "ready"


# Visual affordance tags
COLOR_RED = "red"
COLOR_YELLOW = "yellow"
COLOR_LIME = "lime"


@dataclass(frozen=True)
class GuidanceState:
    status: GuidanceStatus
    message: str = ""
    color: str = COLOR_RED

    @property
    def is_ready(self) -> bool:
        return self.status is GuidanceStatus.READY


PENDING_STATE = GuidanceState(GuidanceStatus.PENDING, "", COLOR_RED)
NO_FACE_STATE = GuidanceState(GuidanceStatus.NO_FACE, "No face detected", COLOR_RED)


@dataclass(frozen=True)
class ProportionalPadding:
    """Selfie crop: pad the face box by ``factor`` times its width."""

    factor: float = 0.25


@dataclass(frozen=True)
class FixedIdFormat:
    """ID-photo crop of a fixed pixel size (35x45 mm at 300 DPI by default)."""

    target_width: int = 413
    target_height: int = 531
    bottom_margin: float = 30
    # When off, a negative vertical origin is reported as out of bounds.
    clamp_origin: bool = False


CropMode = Union[ProportionalPadding, FixedIdFormat]


@dataclass(frozen=True)
class CropRequest:
    source_width: int
    source_height: int
    face_box: BoundingBox
    mode: CropMode


@dataclass(frozen=True)
class CropRect:
    x: float
    y: float
    width: float
    height: float

    def as_slices(self) -> Tuple[slice, slice]:
        """Integer row/column slices for indexing an HxW(xC) array."""
        x0 = int(round(self.x))
        y0 = int(round(self.y))
        x1 = int(round(self.x + self.width))
        y1 = int(round(self.y + self.height))
        return slice(y0, y1), slice(x0, x1)

    def fits_within(self, source_width: float, source_height: float) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.width > 0
            and self.height > 0
            and self.x + self.width <= source_width
            and self.y + self.height <= source_height
        )
