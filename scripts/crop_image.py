#!/usr/bin/env python3
"""CLI for cropping a still photo around the detected face."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import cv2

from facecapture.config import CROP_MODE_ID, CROP_MODE_SELFIE, CaptureConfig, config_from_mapping, load_capture_config
from facecapture.detectors.haar import HaarFaceDetector
from facecapture.encoding import encode_crop
from facecapture.errors import CropBoundsInvalid, NoFaceDetected
from facecapture.geometry.crop import compute_crop
from facecapture.guidance.classifier import classify
from facecapture.io_utils import dump_json, setup_logging, write_bytes


LOGGER = logging.getLogger("scripts.crop_image")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crop a selfie or ID photo from an image file")
    parser.add_argument("image", type=Path, help="Input image (jpg/png/webp)")
    parser.add_argument("--output", type=Path, default=None, help="Output image path (defaults to <stem>-crop.<ext>)")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/capture.yaml"),
        help="Capture configuration YAML",
    )
    parser.add_argument("--mode", choices=[CROP_MODE_SELFIE, CROP_MODE_ID], default=None)
    parser.add_argument("--factor", type=float, default=None, help="Padding factor for selfie crops")
    parser.add_argument("--clamp-origin", action="store_true", default=None, help="Clamp ID crop origin to the image")
    parser.add_argument("--format", dest="image_format", default=None, help="jpeg, png or webp")
    parser.add_argument("--quality", dest="image_quality", type=int, default=None)
    parser.add_argument("--metadata", type=Path, default=None, help="Optional JSON file describing the crop")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> CaptureConfig:
    """CLI flags override values from the YAML config."""
    overrides: Dict[str, object] = {
        "crop_mode": args.mode,
        "padding_factor": args.factor,
        "clamp_id_origin": args.clamp_origin,
        "image_format": args.image_format,
    }
    if args.image_quality is not None:
        overrides["image_quality"] = args.image_quality
    base = load_capture_config(args.config)
    return config_from_mapping({k: v for k, v in overrides.items() if v is not None}, base=base)


def _default_output(image_path: Path, image_format: str) -> Path:
    suffix = ".jpg" if image_format == "jpeg" else f".{image_format}"
    return image_path.with_name(f"{image_path.stem}-crop{suffix}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = _resolve_config(args)

    image = cv2.imread(str(args.image), cv2.IMREAD_COLOR)
    if image is None:
        LOGGER.error("Unable to read image %s", args.image)
        return 1
    height, width = image.shape[:2]
    LOGGER.info("Image dimension: %dx%d", width, height)

    detector = HaarFaceDetector()
    detector.load()
    detection = detector.detect_sync(image)
    face = detection.primary
    if face is None:
        LOGGER.error("%s", NoFaceDetected())
        return 2
    guidance = classify(detection, width, height, thresholds=config.thresholds)
    LOGGER.info("Face detected: %d, guidance=%s", len(detection.faces), guidance.status.value)

    mode = config.crop()
    try:
        rect = compute_crop(width, height, face.box, mode)
    except CropBoundsInvalid as exc:
        LOGGER.error("Crop failed: %s rect=%s", exc, exc.rect)
        return 3
    encoded = encode_crop(image, rect, config.image_format, config.image_quality)
    output_path = args.output or _default_output(args.image, config.image_format)
    write_bytes(output_path, encoded.data)
    LOGGER.info(
        "Source %dx%d -> crop %dx%d (%.2f KB) written to %s",
        width,
        height,
        encoded.width,
        encoded.height,
        encoded.size_kb,
        output_path,
    )

    if args.metadata is not None:
        dump_json(
            args.metadata,
            {
                "source": str(args.image),
                "output": str(output_path),
                "mode": mode,
                "face_box": face.box,
                "crop": rect,
                "guidance": guidance,
                "mime_type": encoded.mime_type,
            },
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
