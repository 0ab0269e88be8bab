"""OpenCV VideoCapture implementation of the camera capability."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import cv2
import numpy as np

from facecapture.camera.base import DeviceId
from facecapture.types import ConstraintProfile

LOGGER = logging.getLogger("facecapture.camera.opencv")


class OpenCVStream:
    """A VideoCapture opened at an exact resolution."""

    def __init__(self, capture: "cv2.VideoCapture", width: int, height: int, facing_mode: Optional[str] = None) -> None:
        self._capture = capture
        self.width = width
        self.height = height
        self.facing_mode = facing_mode

    def read_sync(self) -> np.ndarray:
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise RuntimeError("Unable to read frame from camera")
        return frame

    async def read(self) -> np.ndarray:
        return await asyncio.to_thread(self.read_sync)

    def close(self) -> None:
        self._capture.release()


class OpenCVCameraProvider:
    """Open local capture devices and insist on the exact requested size.

    OpenCV silently falls back to the nearest supported mode, so the size of
    the first frame is checked against the profile.
    """

    def __init__(self, facing_mode: Optional[str] = "user", api_preference: int = cv2.CAP_ANY) -> None:
        self.facing_mode = facing_mode
        self.api_preference = api_preference

    def _open(self, device_id: DeviceId, profile: ConstraintProfile) -> OpenCVStream:
        source = 0 if device_id is None else device_id
        if isinstance(source, str) and source.isdigit():
            source = int(source)
        capture = cv2.VideoCapture(source, self.api_preference)
        if not capture.isOpened():
            capture.release()
            raise RuntimeError(f"Unable to open camera {source!r}")
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, profile.exact_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.exact_height)
        ok, frame = capture.read()
        if not ok or frame is None:
            capture.release()
            raise RuntimeError(f"Camera {source!r} returned no frames at {profile}")
        height, width = frame.shape[:2]
        if (width, height) != (profile.exact_width, profile.exact_height):
            capture.release()
            raise RuntimeError(f"Camera {source!r} delivered {width}x{height}, requested {profile}")
        return OpenCVStream(capture, width, height, self.facing_mode)

    async def acquire(self, device_id: DeviceId, profile: ConstraintProfile) -> OpenCVStream:
        return await asyncio.to_thread(self._open, device_id, profile)

    def release(self, handle: OpenCVStream) -> None:
        handle.close()
        LOGGER.debug("Closed OpenCV capture %sx%s", handle.width, handle.height)
