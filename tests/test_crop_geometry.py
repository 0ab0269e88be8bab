import numpy as np
import pytest

from facecapture.errors import CropBoundsInvalid
from facecapture.geometry.crop import (
    compute_crop,
    compute_crop_request,
    fixed_id_crop,
    proportional_padding_crop,
)
from facecapture.types import BoundingBox, CropRect, CropRequest, FixedIdFormat, ProportionalPadding


def test_proportional_padding_reference_box():
    box = BoundingBox(50, 50, 100, 100)

    rect = proportional_padding_crop(640, 480, box, factor=0.25)

    assert rect.x == pytest.approx(25.0)
    assert rect.y == pytest.approx(1.25)
    assert rect.width == pytest.approx(150.0)
    # y2 = 50 + 100 + 25 * 1.9
    assert rect.height == pytest.approx(197.5 - 1.25)


def test_proportional_padding_clamps_to_source():
    box = BoundingBox(100, 100, 300, 300)

    rect = proportional_padding_crop(500, 500, box, factor=0.25)

    assert rect == CropRect(25.0, 0, 450.0, 500)


def test_proportional_padding_stays_in_bounds_for_sampled_boxes():
    rng = np.random.default_rng(7)
    for _ in range(500):
        width = int(rng.integers(64, 2000))
        height = int(rng.integers(64, 2000))
        box_w = float(rng.uniform(1, width))
        box_h = float(rng.uniform(1, height))
        box = BoundingBox(
            float(rng.uniform(0, width - box_w)),
            float(rng.uniform(0, height - box_h)),
            box_w,
            box_h,
        )
        factor = float(rng.uniform(0.0, 1.0))

        rect = proportional_padding_crop(width, height, box, factor)

        assert 0 <= rect.x <= rect.x + rect.width <= width
        assert 0 <= rect.y <= rect.y + rect.height <= height


def test_proportional_padding_rejects_malformed_factor():
    box = BoundingBox(50, 50, 100, 100)

    with pytest.raises(CropBoundsInvalid):
        proportional_padding_crop(640, 480, box, factor=-1.0)


def test_proportional_padding_is_idempotent():
    box = BoundingBox(210.5, 80.25, 160, 190)
    first = compute_crop(1280, 720, box, ProportionalPadding(0.3))
    second = compute_crop(1280, 720, box, ProportionalPadding(0.3))
    assert first == second


def test_fixed_id_crop_ends_below_face():
    box = BoundingBox(540, 300, 200, 250)

    rect = fixed_id_crop(1280, 720, box, FixedIdFormat())

    assert rect == CropRect(433.5, 49, 413, 531)
    assert rect.y + rect.height == box.y + box.height + 30


def test_fixed_id_crop_clamps_target_height_to_source():
    box = BoundingBox(200, 250, 200, 200)

    rect = fixed_id_crop(640, 480, box, FixedIdFormat())

    assert rect == CropRect(93.5, 0, 413, 480)


def test_fixed_id_crop_clamps_horizontal_origin_and_width():
    left = fixed_id_crop(1280, 720, BoundingBox(0, 320, 100, 200), FixedIdFormat())
    right = fixed_id_crop(1280, 720, BoundingBox(1200, 300, 80, 250), FixedIdFormat())

    assert left.x == 0
    assert left.width == 413
    assert right.x == pytest.approx(1033.5)
    assert right.width == pytest.approx(246.5)


def test_fixed_id_crop_negative_vertical_origin_is_flagged_when_unclamped():
    # The vertical origin is not clamped by default, unlike the horizontal one:
    # a face high in the frame yields y = 100 + 300 - 480 + 30 = -50.
    box = BoundingBox(300, 100, 300, 300)

    with pytest.raises(CropBoundsInvalid) as excinfo:
        fixed_id_crop(640, 480, box, FixedIdFormat())

    assert excinfo.value.rect[1] == pytest.approx(-50)


def test_fixed_id_crop_clamp_origin_option():
    box = BoundingBox(300, 100, 300, 300)

    rect = fixed_id_crop(640, 480, box, FixedIdFormat(clamp_origin=True))

    assert rect == CropRect(243.5, 0, 396.5, 480)
    assert rect.fits_within(640, 480)


def test_compute_crop_request_dispatches_mode():
    request = CropRequest(1280, 720, BoundingBox(540, 300, 200, 250), FixedIdFormat())
    assert compute_crop_request(request) == CropRect(433.5, 49, 413, 531)

    with pytest.raises(TypeError):
        compute_crop(640, 480, BoundingBox(0, 0, 10, 10), "selfie")  # type: ignore[arg-type]
