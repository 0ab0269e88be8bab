"""Capture pipeline orchestration.

Drives the live guidance loop (periodic detect -> classify) and the one-shot
capture sequence (detect -> crop -> encode) on top of a negotiated camera
session. Everything runs on one asyncio loop; detector and camera calls are
the only suspension points.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Set

import cv2
import numpy as np

from facecapture.camera.base import CameraProvider, CameraSession, DeviceId
from facecapture.camera.negotiator import ConstraintNegotiator
from facecapture.config import MIRROR_FLIP_WHEN_USER_FACING, CaptureConfig
from facecapture.detectors.base import FaceDetector
from facecapture.encoding import EncodedImage, encode_crop
from facecapture.errors import (
    CameraUnavailable,
    CropBoundsInvalid,
    FaceCaptureError,
    ModelLoadFailure,
    NoFaceDetected,
)
from facecapture.geometry.crop import compute_crop
from facecapture.guidance.classifier import classify
from facecapture.types import (
    PENDING_STATE,
    BoundingBox,
    ConstraintProfile,
    CropMode,
    CropRect,
    GuidanceState,
)

LOGGER = logging.getLogger("facecapture.pipeline")

GuidanceCallback = Callable[[GuidanceState], None]


class PipelineState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    LIVE = "live"
    CAPTURING = "capturing"
    DONE = "done"


@dataclass
class CaptureOutcome:
    """Result of one capture attempt; ``error`` is set instead of raising."""

    image: Optional[EncodedImage] = None
    crop: Optional[CropRect] = None
    face_box: Optional[BoundingBox] = None
    error: Optional[FaceCaptureError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.image is not None


class CapturePipeline:
    def __init__(
        self,
        camera: CameraProvider,
        detector: FaceDetector,
        config: Optional[CaptureConfig] = None,
        capture_detector: Optional[FaceDetector] = None,
        on_guidance: Optional[GuidanceCallback] = None,
    ) -> None:
        self.config = (config or CaptureConfig()).validate()
        self.detector = detector
        self.capture_detector = capture_detector or detector
        self.on_guidance = on_guidance
        self.negotiator = ConstraintNegotiator(camera)
        self.state = PipelineState.IDLE
        self.guidance: GuidanceState = PENDING_STATE
        self.last_capture: Optional[CaptureOutcome] = None
        self.skipped_ticks = 0
        self._busy = False
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._ready = asyncio.Event()

    @property
    def session(self) -> Optional[CameraSession]:
        return self.negotiator.session

    @property
    def detecting(self) -> bool:
        return self._busy

    async def start(
        self,
        device_id: DeviceId = None,
        profiles: Optional[Sequence[ConstraintProfile]] = None,
    ) -> CameraSession:
        """Negotiate the camera and enter the live guidance loop."""
        if self.state not in (PipelineState.IDLE, PipelineState.DONE):
            raise RuntimeError(f"Cannot start pipeline in state {self.state.value}")
        self.state = PipelineState.NEGOTIATING
        ordered = list(profiles) if profiles is not None else self.config.ordered_profiles()
        try:
            session = await self.negotiator.acquire(ordered, device_id)
        except CameraUnavailable:
            self.state = PipelineState.IDLE
            LOGGER.error("No camera profile could be acquired for device %s", device_id)
            raise
        self.state = PipelineState.LIVE
        self._set_guidance(PENDING_STATE)
        self._timer = asyncio.create_task(self._run_timer())
        return session

    async def _run_timer(self) -> None:
        interval = self.config.sample_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            self.tick()

    def tick(self) -> Optional[asyncio.Task]:
        """Issue one background sample unless a detection is already in flight."""
        if self.state is not PipelineState.LIVE:
            return None
        if self._busy:
            self.skipped_ticks += 1
            LOGGER.debug("Detection in flight; skipping tick (%d skipped)", self.skipped_ticks)
            return None
        task = asyncio.create_task(self._background_sample())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _background_sample(self) -> None:
        try:
            await self.sample_once()
        except Exception:
            LOGGER.exception("Guidance sample failed")

    async def sample_once(self) -> Optional[GuidanceState]:
        """Detect on the latest frame and update the guidance state.

        Returns ``None`` when skipped (busy, not live, detector not loaded) or
        when the result went stale because the pipeline stopped meanwhile.
        """
        if self.state is not PipelineState.LIVE or self._busy:
            return None
        session = self.session
        if session is None:
            return None
        generation = self._generation
        self._busy = True
        try:
            frame = await self._read_frame(session)
            detection = await self.detector.detect(frame)
        except ModelLoadFailure as exc:
            LOGGER.debug("Detector not ready, no guidance yet: %s", exc)
            return None
        finally:
            self._busy = False

        if generation != self._generation or self.state is not PipelineState.LIVE:
            LOGGER.debug("Discarding stale detection result")
            return None
        height, width = frame.shape[:2]
        state = classify(detection, width, height, previous=self.guidance, thresholds=self.config.thresholds)
        self._set_guidance(state)
        return state

    def _set_guidance(self, state: GuidanceState) -> None:
        changed = state != self.guidance
        self.guidance = state
        if state.is_ready:
            self._ready.set()
        else:
            self._ready.clear()
        if changed:
            LOGGER.debug("Guidance -> %s (%s)", state.status.value, state.message)
        if self.on_guidance is not None:
            self.on_guidance(state)

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.guidance.is_ready and self.state is PipelineState.LIVE

    async def _read_frame(self, session: CameraSession) -> np.ndarray:
        frame = await session.read()
        if self.config.mirror == MIRROR_FLIP_WHEN_USER_FACING and session.device_info.is_facing_user:
            frame = cv2.flip(frame, 1)
        return frame

    async def capture(self, mode: Optional[CropMode] = None) -> Optional[CaptureOutcome]:
        """Run the capture sequence; a no-op returning ``None`` unless live and ready.

        A trigger that arrives while a guidance sample is in flight waits for
        that sample first, so the trigger is judged against fresh guidance.
        """
        if self.state is PipelineState.LIVE and self._busy and self._pending:
            await asyncio.wait(set(self._pending))
        if self.state is not PipelineState.LIVE or not self.guidance.is_ready or self._busy:
            LOGGER.info(
                "Ignoring capture trigger (state=%s guidance=%s busy=%s)",
                self.state.value,
                self.guidance.status.value,
                self._busy,
            )
            return None
        session = self.session
        if session is None:
            return None

        self.state = PipelineState.CAPTURING
        # Background results issued before this point are stale.
        self._generation += 1
        generation = self._generation
        mode = mode or self.config.crop()
        self._busy = True
        try:
            frame = await self._read_frame(session)
            detection = await self.capture_detector.detect(frame)
        except Exception:
            if self.state is PipelineState.CAPTURING:
                self.state = PipelineState.LIVE
            raise
        finally:
            self._busy = False

        if generation != self._generation:
            LOGGER.info("Pipeline stopped during capture; discarding result")
            return None

        face = detection.primary
        if face is None:
            self.state = PipelineState.LIVE
            LOGGER.info("Capture aborted: no face detected")
            return CaptureOutcome(error=NoFaceDetected())

        height, width = frame.shape[:2]
        try:
            rect = compute_crop(width, height, face.box, mode)
            image = encode_crop(frame, rect, self.config.image_format, self.config.image_quality)
        except CropBoundsInvalid as exc:
            self.state = PipelineState.LIVE
            LOGGER.warning("Capture aborted: %s", exc)
            return CaptureOutcome(face_box=face.box, error=exc)
        except Exception:
            self.state = PipelineState.LIVE
            LOGGER.exception("Capture failed while cropping or encoding")
            raise

        outcome = CaptureOutcome(image=image, crop=rect, face_box=face.box)
        self.last_capture = outcome
        await self._teardown()
        self.state = PipelineState.DONE
        LOGGER.info(
            "Captured %dx%d %s from %dx%d frame",
            image.width,
            image.height,
            image.mime_type,
            width,
            height,
        )
        return outcome

    async def _teardown(self) -> int:
        """Stop the timer, drop in-flight samples and release the camera.

        Returns the number of background samples that were cancelled.
        """
        self._generation += 1
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass
        pending = [task for task in self._pending if task is not asyncio.current_task()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.negotiator.release()
        self._ready.clear()
        return len(pending)

    async def stop(self) -> None:
        """Stop sampling and release the camera; in-flight detections are dropped."""
        cancelled = await self._teardown()
        if self.state is not PipelineState.DONE:
            self.state = PipelineState.IDLE
        LOGGER.debug("Pipeline stopped (%d pending detection(s) cancelled)", cancelled)

    async def reset(self) -> None:
        await self._teardown()
        self.state = PipelineState.IDLE
        self.guidance = PENDING_STATE
        self.last_capture = None
        self.skipped_ticks = 0

    async def __aenter__(self) -> "CapturePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
