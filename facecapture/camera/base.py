"""Camera capability interfaces and the owned stream session."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Union

from facecapture.types import ConstraintProfile, DeviceInfo, Frame

LOGGER = logging.getLogger("facecapture.camera")

DeviceId = Union[int, str, None]


class StreamHandle(Protocol):
    width: int
    height: int
    facing_mode: Optional[str]

    async def read(self) -> Frame:
        ...


class CameraProvider(Protocol):
    async def acquire(self, device_id: DeviceId, profile: ConstraintProfile) -> StreamHandle:
        """Open ``device_id`` at exactly ``profile``; raise on failure."""
        ...

    def release(self, handle: StreamHandle) -> None:
        ...


class CameraSession:
    """Owns exactly one live stream handle until :meth:`release` is called."""

    def __init__(
        self,
        provider: CameraProvider,
        handle: StreamHandle,
        device_id: DeviceId,
        profile: ConstraintProfile,
    ) -> None:
        self._provider = provider
        self._handle: Optional[StreamHandle] = handle
        self.device_id = device_id
        self.profile = profile
        self.device_info = DeviceInfo(
            device_id=device_id,
            capture_width=getattr(handle, "width", None),
            capture_height=getattr(handle, "height", None),
            is_facing_user=_is_facing_user(getattr(handle, "facing_mode", None)),
        )

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> StreamHandle:
        if self._handle is None:
            raise RuntimeError("Camera session already released")
        return self._handle

    async def read(self) -> Frame:
        return await self.handle.read()

    def release(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        self._provider.release(handle)
        LOGGER.debug("Released stream device=%s profile=%s", self.device_id, self.profile)

    def __enter__(self) -> "CameraSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


def _is_facing_user(facing_mode: Optional[str]) -> Optional[bool]:
    if facing_mode is None:
        return None
    return "user" in facing_mode
