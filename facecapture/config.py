"""Capture configuration loaded from YAML."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from facecapture.camera.negotiator import ResolutionHint, ResolutionOption, order_profiles
from facecapture.encoding import normalize_format
from facecapture.errors import ConfigError
from facecapture.guidance.classifier import GuidanceThresholds
from facecapture.io_utils import dump_yaml, load_yaml
from facecapture.types import (
    DEFAULT_PROFILES,
    ConstraintProfile,
    CropMode,
    FixedIdFormat,
    ProportionalPadding,
)

LOGGER = logging.getLogger("facecapture.config")

MIRROR_FLIP_WHEN_USER_FACING = "flip_when_user_facing"
MIRROR_NONE = "no_flipping"
CROP_MODE_SELFIE = "selfie"
CROP_MODE_ID = "id"


@dataclass
class CaptureConfig:
    sample_interval_ms: float = 500.0
    profiles: Tuple[Tuple[int, int], ...] = tuple((p.exact_width, p.exact_height) for p in DEFAULT_PROFILES)
    # auto keeps the list order; maximum / low_first / nearest reorder it
    profile_order: str = ResolutionOption.MAXIMUM.value
    nearest_resolution: Optional[Tuple[int, int]] = None
    crop_mode: str = CROP_MODE_SELFIE
    padding_factor: float = 0.25
    id_target_width: int = 413
    id_target_height: int = 531
    id_bottom_margin: float = 30.0
    clamp_id_origin: bool = False
    image_format: str = "jpeg"
    image_quality: Optional[int] = 92
    mirror: str = MIRROR_NONE
    too_far_ratio: float = 0.2
    too_close_ratio: float = 0.8
    eye_confidence: float = 0.2

    def validate(self) -> "CaptureConfig":
        if self.sample_interval_ms <= 0:
            raise ConfigError("sample_interval_ms must be positive")
        if not self.profiles:
            raise ConfigError("at least one camera profile is required")
        try:
            ResolutionOption(self.profile_order)
        except ValueError as exc:
            raise ConfigError(f"unknown profile_order {self.profile_order!r}") from exc
        if self.profile_order == ResolutionOption.NEAREST.value and self.nearest_resolution is None:
            raise ConfigError("profile_order 'nearest' requires nearest_resolution")
        if self.crop_mode not in {CROP_MODE_SELFIE, CROP_MODE_ID}:
            raise ConfigError(f"crop_mode must be '{CROP_MODE_SELFIE}' or '{CROP_MODE_ID}'")
        if not 0.0 <= self.padding_factor <= 1.0:
            raise ConfigError("padding_factor must be within [0, 1]")
        if self.id_target_width <= 0 or self.id_target_height <= 0:
            raise ConfigError("ID target size must be positive")
        if self.mirror not in {MIRROR_FLIP_WHEN_USER_FACING, MIRROR_NONE}:
            raise ConfigError(f"unknown mirror behaviour {self.mirror!r}")
        if not 0.0 <= self.too_far_ratio < self.too_close_ratio:
            raise ConfigError("too_far_ratio must be below too_close_ratio")
        if self.image_quality is not None and not 0 <= self.image_quality <= 100:
            raise ConfigError("image_quality must be within [0, 100]")
        try:
            self.image_format = normalize_format(self.image_format)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return self

    @property
    def constraint_profiles(self) -> List[ConstraintProfile]:
        return [ConstraintProfile(int(w), int(h)) for w, h in self.profiles]

    @property
    def resolution_hint(self) -> ResolutionHint:
        option = ResolutionOption(self.profile_order)
        if option is ResolutionOption.NEAREST and self.nearest_resolution is not None:
            width, height = self.nearest_resolution
            return ResolutionHint.nearest(int(width), int(height))
        return ResolutionHint(option)

    def ordered_profiles(self) -> List[ConstraintProfile]:
        return order_profiles(self.constraint_profiles, self.resolution_hint)

    @property
    def thresholds(self) -> GuidanceThresholds:
        return GuidanceThresholds(
            too_far_ratio=self.too_far_ratio,
            too_close_ratio=self.too_close_ratio,
            eye_confidence=self.eye_confidence,
        )

    def crop(self, mode: Optional[str] = None) -> CropMode:
        mode = mode or self.crop_mode
        if mode == CROP_MODE_ID:
            return FixedIdFormat(
                target_width=self.id_target_width,
                target_height=self.id_target_height,
                bottom_margin=self.id_bottom_margin,
                clamp_origin=self.clamp_id_origin,
            )
        return ProportionalPadding(self.padding_factor)


def config_from_mapping(data: Mapping[str, Any], base: Optional[CaptureConfig] = None) -> CaptureConfig:
    """Overlay ``data`` onto ``base`` (or the defaults) and validate."""
    known = {f.name for f in fields(CaptureConfig)}
    values: Dict[str, Any] = asdict(base) if base is not None else {}
    for key, value in data.items():
        if key not in known:
            LOGGER.warning("Ignoring unknown capture config key %s", key)
            continue
        if value is None and key not in {"image_quality", "nearest_resolution"}:
            continue
        values[key] = value
    if "profiles" in values:
        values["profiles"] = _parse_profiles(values["profiles"])
    if values.get("nearest_resolution") is not None:
        values["nearest_resolution"] = tuple(int(v) for v in values["nearest_resolution"])
    try:
        config = CaptureConfig(**values)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc
    return config.validate()


def _parse_profiles(raw: Any) -> Tuple[Tuple[int, int], ...]:
    parsed = []
    for entry in raw:
        try:
            if isinstance(entry, Mapping):
                width, height = entry.get("width"), entry.get("height")
            elif isinstance(entry, str):
                width, height = entry.lower().split("x", 1)
            else:
                width, height = entry
            parsed.append((int(width), int(height)))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid camera profile {entry!r}") from exc
    return tuple(parsed)


def load_capture_config(path: Optional[Path]) -> CaptureConfig:
    if path is None:
        return CaptureConfig().validate()
    if not path.exists():
        LOGGER.warning("Capture config %s not found; using defaults", path)
        return CaptureConfig().validate()
    data = load_yaml(path)
    section = data.get("capture", data)
    return config_from_mapping(section)


def save_capture_config(path: Path, config: CaptureConfig) -> None:
    payload = asdict(config)
    payload["profiles"] = [f"{w}x{h}" for w, h in config.profiles]
    if config.nearest_resolution is not None:
        payload["nearest_resolution"] = list(config.nearest_resolution)
    dump_yaml(path, {"capture": payload})
