"""Sequential camera constraint negotiation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from facecapture.camera.base import CameraProvider, CameraSession, DeviceId
from facecapture.errors import CameraUnavailable
from facecapture.types import ConstraintProfile

LOGGER = logging.getLogger("facecapture.camera.negotiator")


class ResolutionOption(str, Enum):
    AUTO = "auto"
    MAXIMUM = "maximum"
    LOW_FIRST = "low_first"
    NEAREST = "nearest"


@dataclass(frozen=True)
class ResolutionHint:
    option: ResolutionOption = ResolutionOption.AUTO
    width: Optional[int] = None
    height: Optional[int] = None

    @classmethod
    def nearest(cls, width: int, height: int) -> "ResolutionHint":
        return cls(ResolutionOption.NEAREST, width, height)


def order_profiles(
    profiles: Sequence[ConstraintProfile],
    hint: Optional[ResolutionHint] = None,
) -> List[ConstraintProfile]:
    """Return the probing order for ``profiles`` under ``hint``.

    ``AUTO`` keeps the given order. Sorting is stable so ties keep their
    relative position.
    """
    hint = hint or ResolutionHint()
    ordered = list(profiles)
    if hint.option is ResolutionOption.MAXIMUM:
        ordered.sort(key=lambda p: p.area, reverse=True)
    elif hint.option is ResolutionOption.LOW_FIRST:
        ordered.sort(key=lambda p: p.area)
    elif hint.option is ResolutionOption.NEAREST:
        if hint.width is None or hint.height is None:
            raise ValueError("NEAREST resolution hint requires width and height")
        target = hint.width * hint.height
        ordered.sort(key=lambda p: abs(p.area - target))
    return ordered


class ConstraintNegotiator:
    """Try resolution profiles in order until the camera accepts one."""

    def __init__(self, provider: CameraProvider) -> None:
        self.provider = provider
        self.session: Optional[CameraSession] = None
        self.attempts = 0

    async def acquire(self, profiles: Sequence[ConstraintProfile], device_id: DeviceId = None) -> CameraSession:
        self.attempts = 0
        for index, profile in enumerate(profiles):
            self.release()
            self.attempts += 1
            LOGGER.info("Requesting camera device=%s profile=%s (%d/%d)", device_id, profile, index + 1, len(profiles))
            try:
                handle = await self.provider.acquire(device_id, profile)
            except Exception as exc:
                LOGGER.warning("Camera rejected profile %s: %s", profile, exc)
                continue
            self.session = CameraSession(self.provider, handle, device_id, profile)
            LOGGER.info(
                "Acquired camera device=%s at %sx%s",
                device_id,
                self.session.device_info.capture_width,
                self.session.device_info.capture_height,
            )
            return self.session

        self.release()
        raise CameraUnavailable(
            f"Couldn't get user media for device {device_id!r} after {self.attempts} profile(s)",
            attempts=self.attempts,
        )

    def release(self) -> None:
        if self.session is not None:
            self.session.release()
            self.session = None
