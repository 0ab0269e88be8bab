"""Haar-cascade face detection with eye and mouth cues."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from facecapture.errors import ModelLoadFailure
from facecapture.types import (
    FACING_CENTER,
    LEFT_EYE,
    MOUTH_VISIBLE,
    RIGHT_EYE,
    BoundingBox,
    DetectionResult,
    FaceObservation,
)

LOGGER = logging.getLogger("facecapture.detectors.haar")

FACE_CASCADE = "haarcascade_frontalface_default.xml"
EYE_CASCADE = "haarcascade_eye.xml"
SMILE_CASCADE = "haarcascade_smile.xml"


def _default_cascade_dir() -> Path:
    return Path(cv2.data.haarcascades)


class HaarFaceDetector:
    """Wrapper around OpenCV cascade classifiers.

    The face cascade supplies boxes. When ``with_cues`` is set, the eye cascade
    fills ``leftEye``/``rightEye`` keypoints, the pair's symmetry around the box
    centre yields the ``facing-center`` tag and the smile cascade on the lower
    third of the face yields ``mouth-visible``.
    """

    def __init__(
        self,
        cascade_dir: Optional[Path] = None,
        scale_factor: float = 1.3,
        min_neighbors: int = 5,
        min_size_frac: float = 0.05,
        with_cues: bool = True,
        center_tolerance: float = 0.15,
    ) -> None:
        self.cascade_dir = Path(cascade_dir) if cascade_dir is not None else _default_cascade_dir()
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size_frac = min_size_frac
        self.with_cues = with_cues
        self.center_tolerance = center_tolerance
        self._face: Optional["cv2.CascadeClassifier"] = None
        self._eye: Optional["cv2.CascadeClassifier"] = None
        self._smile: Optional["cv2.CascadeClassifier"] = None

    @property
    def is_loaded(self) -> bool:
        return self._face is not None

    def _load_cascade(self, name: str) -> "cv2.CascadeClassifier":
        path = self.cascade_dir / name
        classifier = cv2.CascadeClassifier(str(path))
        if classifier.empty():
            raise ModelLoadFailure(f"Unable to load cascade {path}")
        return classifier

    def load(self) -> None:
        self._face = self._load_cascade(FACE_CASCADE)
        if self.with_cues:
            self._eye = self._load_cascade(EYE_CASCADE)
            self._smile = self._load_cascade(SMILE_CASCADE)
        LOGGER.info(
            "Loaded Haar cascades from %s scale_factor=%.2f min_neighbors=%d cues=%s",
            self.cascade_dir,
            self.scale_factor,
            self.min_neighbors,
            self.with_cues,
        )

    async def load_async(self) -> None:
        await asyncio.to_thread(self.load)

    def detect_sync(self, image: np.ndarray) -> DetectionResult:
        if self._face is None:
            raise ModelLoadFailure("Haar cascades not loaded; call load() first")
        gray = _to_gray(image)
        src_min = min(gray.shape[:2])
        min_side = max(1, int(src_min * self.min_size_frac))
        rects = self._face.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            flags=0,
            minSize=(min_side, min_side),
            maxSize=(0, 0),
        )
        faces: List[FaceObservation] = []
        for x, y, w, h in _as_rects(rects):
            box = BoundingBox(float(x), float(y), float(w), float(h))
            if self.with_cues:
                keypoints, gestures = self._face_cues(gray, box)
            else:
                keypoints, gestures = {}, frozenset()
            faces.append(FaceObservation(box=box, keypoints=keypoints, gestures=gestures))
        LOGGER.debug("Haar detection found %d face(s)", len(faces))
        return DetectionResult(faces=tuple(faces))

    async def detect(self, image: np.ndarray) -> DetectionResult:
        return await asyncio.to_thread(self.detect_sync, image)

    def _face_cues(self, gray: np.ndarray, box: BoundingBox) -> Tuple[Dict[str, float], frozenset]:
        x, y, w, h = (int(round(v)) for v in (box.x, box.y, box.width, box.height))
        keypoints: Dict[str, float] = {}
        gestures = set()

        upper = gray[y : y + h // 2, x : x + w]
        eyes = _as_rects(self._eye.detectMultiScale(upper, scaleFactor=1.1, minNeighbors=5)) if upper.size else []
        if len(eyes) >= 2:
            # Two largest candidates, sorted left to right in image space.
            pair = sorted(sorted(eyes, key=lambda r: r[2] * r[3], reverse=True)[:2], key=lambda r: r[0])
            centers = [ex + ew / 2 for ex, _ey, ew, _eh in pair]
            # Unmirrored frame: the subject's right eye appears on the image left.
            keypoints[RIGHT_EYE] = 1.0
            keypoints[LEFT_EYE] = 1.0
            midpoint = sum(centers) / 2
            if abs(midpoint - w / 2) <= self.center_tolerance * w:
                gestures.add(FACING_CENTER)
        elif len(eyes) == 1:
            keypoints[RIGHT_EYE if eyes[0][0] + eyes[0][2] / 2 < w / 2 else LEFT_EYE] = 1.0

        lower = gray[y + (2 * h) // 3 : y + h, x : x + w]
        if lower.size:
            mouths = _as_rects(self._smile.detectMultiScale(lower, scaleFactor=1.7, minNeighbors=20))
            if len(mouths):
                gestures.add(MOUTH_VISIBLE)
        return keypoints, frozenset(gestures)


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def _as_rects(rects) -> List[Tuple[int, int, int, int]]:
    if rects is None or len(rects) == 0:
        return []
    return [tuple(int(v) for v in r) for r in np.asarray(rects).reshape(-1, 4)]
