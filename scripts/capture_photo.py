#!/usr/bin/env python3
"""CLI for live webcam capture with framing guidance."""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from facecapture.camera.opencv_provider import OpenCVCameraProvider
from facecapture.config import CROP_MODE_ID, CROP_MODE_SELFIE, CaptureConfig, config_from_mapping, load_capture_config
from facecapture.detectors.haar import HaarFaceDetector
from facecapture.errors import CameraUnavailable
from facecapture.io_utils import dump_json, setup_logging, write_bytes
from facecapture.pipeline import CaptureOutcome, CapturePipeline
from facecapture.types import GuidanceState


LOGGER = logging.getLogger("scripts.capture_photo")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Capture a framed selfie or ID photo from a webcam")
    parser.add_argument("--device", default="0", help="Camera index or device path")
    parser.add_argument("--output", type=Path, default=Path("capture.jpg"), help="Where to write the cropped photo")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/capture.yaml"),
        help="Capture configuration YAML",
    )
    parser.add_argument("--mode", choices=[CROP_MODE_SELFIE, CROP_MODE_ID], default=None)
    parser.add_argument(
        "--profile-order",
        choices=["auto", "maximum", "low_first", "nearest"],
        default=None,
        help="Order in which camera resolutions are probed",
    )
    parser.add_argument("--interval-ms", type=float, default=None, help="Guidance sampling interval")
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for a ready frame")
    parser.add_argument("--attempts", type=int, default=3, help="Capture attempts before giving up")
    parser.add_argument("--facing", choices=["user", "environment"], default="user")
    parser.add_argument("--metadata", type=Path, default=None, help="Optional JSON file describing the capture")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> CaptureConfig:
    overrides = {
        "crop_mode": args.mode,
        "profile_order": args.profile_order,
        "sample_interval_ms": args.interval_ms,
    }
    base = load_capture_config(args.config)
    return config_from_mapping({k: v for k, v in overrides.items() if v is not None}, base=base)


def _log_guidance(state: GuidanceState) -> None:
    LOGGER.debug("guidance=%s message=%r color=%s", state.status.value, state.message, state.color)


async def run_capture(args: argparse.Namespace, config: CaptureConfig) -> Optional[CaptureOutcome]:
    detector = HaarFaceDetector()
    await detector.load_async()
    pipeline = CapturePipeline(
        OpenCVCameraProvider(facing_mode=args.facing),
        detector,
        config=config,
        on_guidance=_log_guidance,
    )
    async with pipeline:
        session = await pipeline.start(args.device)
        LOGGER.info("Camera live at %s; waiting for a well-framed face", session.profile)
        deadline = time.monotonic() + args.timeout
        attempts = 0
        while attempts < args.attempts:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LOGGER.warning("Timed out waiting for a ready frame (last guidance: %s)", pipeline.guidance.message)
                return None
            if not await pipeline.wait_until_ready(timeout=remaining):
                continue
            outcome = await pipeline.capture()
            if outcome is None:
                continue
            attempts += 1
            if outcome.ok:
                return outcome
            LOGGER.warning("Capture attempt %d failed: %s", attempts, outcome.error)
            await asyncio.sleep(config.sample_interval_ms / 1000.0)
    return None


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = _resolve_config(args)

    try:
        outcome = asyncio.run(run_capture(args, config))
    except CameraUnavailable as exc:
        LOGGER.error("%s", exc)
        return 1
    if outcome is None or outcome.image is None:
        LOGGER.error("No photo captured")
        return 2

    write_bytes(args.output, outcome.image.data)
    LOGGER.info(
        "Saved %dx%d %s (%.2f KB) to %s",
        outcome.image.width,
        outcome.image.height,
        outcome.image.mime_type,
        outcome.image.size_kb,
        args.output,
    )
    if args.metadata is not None:
        dump_json(
            args.metadata,
            {
                "output": str(args.output),
                "face_box": outcome.face_box,
                "crop": outcome.crop,
                "mime_type": outcome.image.mime_type,
            },
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
