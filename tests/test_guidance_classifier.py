import numpy as np

from facecapture.guidance.classifier import GuidanceThresholds, classify, face_area_ratio
from facecapture.types import (
    FACING_CENTER,
    LEFT_EYE,
    LEFT_WRIST,
    MOUTH_VISIBLE,
    PENDING_STATE,
    RIGHT_EYE,
    BoundingBox,
    DetectionResult,
    FaceObservation,
    GuidanceState,
    GuidanceStatus,
)


def make_detection(
    box,
    facing: bool = True,
    mouth: bool = True,
    eye_score: float = 0.9,
    wrists: bool = False,
) -> DetectionResult:
    gestures = set()
    if facing:
        gestures.add(FACING_CENTER)
    if mouth:
        gestures.add(MOUTH_VISIBLE)
    keypoints = {LEFT_EYE: eye_score, RIGHT_EYE: eye_score}
    if wrists:
        keypoints[LEFT_WRIST] = 0.5
    face = FaceObservation(box=BoundingBox(*box), keypoints=keypoints, gestures=frozenset(gestures))
    return DetectionResult(faces=(face,))


def test_small_face_is_too_far():
    detection = make_detection((100, 100, 200, 200))

    state = classify(detection, 640, 480)

    assert face_area_ratio(detection.primary, 640, 480) < 0.2
    assert state.status is GuidanceStatus.TOO_FAR
    assert state.message == "Too far"
    assert state.color == "red"


def test_well_framed_face_is_ready():
    detection = make_detection((100, 100, 300, 300))

    state = classify(detection, 500, 500)

    assert state.status is GuidanceStatus.READY
    assert state.message == "Perfect!"
    assert state.is_ready


def test_large_face_is_too_close():
    state = classify(make_detection((0, 0, 480, 460)), 500, 500)
    assert state.status is GuidanceStatus.TOO_CLOSE


def test_upper_ratio_boundary_is_ready():
    state = classify(make_detection((0, 0, 400, 400)), 500, 400)
    assert state.status is GuidanceStatus.READY


def test_empty_detection_is_no_face():
    state = classify(DetectionResult(), 640, 480)
    assert state.status is GuidanceStatus.NO_FACE


def test_not_facing_forward_in_range():
    state = classify(make_detection((100, 100, 300, 300), facing=False), 500, 500)

    assert state.status is GuidanceStatus.NOT_FACING_FORWARD
    assert state.message == "Face forward"


def test_not_facing_forward_and_too_close_stays_not_facing():
    state = classify(make_detection((0, 0, 480, 460), facing=False), 500, 500)
    assert state.status is GuidanceStatus.NOT_FACING_FORWARD


def test_ratio_rules_override_earlier_rules():
    # Facing away but tiny: the too-far rule runs last and wins.
    far = classify(make_detection((0, 0, 50, 50), facing=False), 500, 500)
    # Mouth hidden but well framed: the ready rule overrides the occlusion rule.
    occluded_ready = classify(make_detection((100, 100, 300, 300), mouth=False), 500, 500)

    assert far.status is GuidanceStatus.TOO_FAR
    assert occluded_ready.status is GuidanceStatus.READY


def test_occluded_keeps_previous_message():
    previous = GuidanceState(GuidanceStatus.TOO_FAR, "Too far", "red")
    detection = make_detection((100, 100, 300, 300), eye_score=0.2, wrists=True)

    state = classify(detection, 500, 500, previous=previous)

    assert state.status is GuidanceStatus.OCCLUDED
    assert state.message == "Too far"
    assert state.color == "yellow"


def test_no_rule_fired_keeps_tentative_start():
    detection = make_detection((100, 100, 300, 300), wrists=True)

    without_previous = classify(detection, 500, 500)
    with_previous = classify(detection, 500, 500, previous=GuidanceState(GuidanceStatus.TOO_CLOSE, "Too close", "yellow"))

    assert without_previous == PENDING_STATE
    assert with_previous.status is GuidanceStatus.TOO_CLOSE


def test_classify_is_pure():
    detection = make_detection((120, 80, 260, 300), eye_score=0.5)
    assert classify(detection, 640, 480) == classify(detection, 640, 480)


def test_custom_thresholds():
    thresholds = GuidanceThresholds(too_far_ratio=0.05, too_close_ratio=0.9)
    state = classify(make_detection((100, 100, 200, 200)), 640, 480, thresholds=thresholds)
    assert state.status is GuidanceStatus.READY


def test_ratio_properties_over_sampled_boxes():
    rng = np.random.default_rng(1234)
    checked = 0
    for _ in range(1000):
        frame_w = int(rng.integers(160, 1920))
        frame_h = int(rng.integers(120, 1080))
        box_w = float(rng.uniform(1, frame_w))
        box_h = float(rng.uniform(1, frame_h))
        ratio = (box_w * box_h) / (frame_w * frame_h)
        if abs(ratio - 0.2) < 1e-9:
            continue
        state = classify(make_detection((0, 0, box_w, box_h)), frame_w, frame_h)
        if ratio < 0.2:
            assert state.status is GuidanceStatus.TOO_FAR
        elif ratio <= 0.8:
            assert state.status is GuidanceStatus.READY
        else:
            assert state.status is GuidanceStatus.TOO_CLOSE
        checked += 1
    assert checked > 900
