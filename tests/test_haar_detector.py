import numpy as np
import pytest

pytest.importorskip("cv2")

from facecapture.detectors.haar import HaarFaceDetector
from facecapture.errors import ModelLoadFailure


def test_detect_before_load_raises():
    detector = HaarFaceDetector()
    assert not detector.is_loaded
    with pytest.raises(ModelLoadFailure):
        detector.detect_sync(np.zeros((120, 160, 3), dtype=np.uint8))


def test_missing_cascade_dir_fails_to_load(tmp_path):
    detector = HaarFaceDetector(cascade_dir=tmp_path)
    with pytest.raises(ModelLoadFailure):
        detector.load()
    assert not detector.is_loaded


@pytest.mark.asyncio
async def test_blank_frame_has_no_faces():
    detector = HaarFaceDetector()
    await detector.load_async()

    result = await detector.detect(np.zeros((240, 320, 3), dtype=np.uint8))

    assert detector.is_loaded
    assert result.faces == ()
    assert result.primary is None
