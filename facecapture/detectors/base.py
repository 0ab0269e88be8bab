"""Detector capability interfaces."""

from __future__ import annotations

from typing import Protocol

from facecapture.types import DetectionResult, Frame


class FaceDetector(Protocol):
    async def detect(self, image: Frame) -> DetectionResult:
        ...


class ModelLoader(Protocol):
    @property
    def is_loaded(self) -> bool:
        ...

    def load(self) -> None:
        ...
