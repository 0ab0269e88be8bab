"""Error taxonomy for the capture flow."""

from __future__ import annotations

from typing import Optional


class FaceCaptureError(RuntimeError):
    """Base class for capture-flow failures."""


class CameraUnavailable(FaceCaptureError):
    """Every constraint profile was tried and none could be acquired."""

    def __init__(self, message: str = "Couldn't get user media", attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class NoFaceDetected(FaceCaptureError):
    def __init__(self, message: str = "No faces detected") -> None:
        super().__init__(message)


class CropBoundsInvalid(FaceCaptureError):
    """Computed crop rectangle does not lie inside the source image."""

    def __init__(
        self,
        message: str = "Factor passed is too high/low.",
        rect: Optional[tuple] = None,
    ) -> None:
        super().__init__(message)
        self.rect = rect


class ModelLoadFailure(FaceCaptureError):
    """Detector was invoked before its model data finished loading."""


class ConfigError(ValueError):
    """Invalid capture configuration."""
