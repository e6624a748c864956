import io

import pytest
from PIL import Image

from documents.composer import DocumentComposer, scaled_width
from registry.errors import ComposeError


def _size(data):
    return Image.open(io.BytesIO(data)).size


def test_combined_image_is_side_by_side(make_image):
    front = make_image("white", (40, 20))
    back = make_image("gray", (30, 30))

    combined = DocumentComposer().combine(front, back)

    # front scales to 60x30, back stays 30x30
    assert _size(combined) == (90, 30)
    assert Image.open(io.BytesIO(combined)).format == "JPEG"


def test_combine_is_deterministic(make_image):
    composer = DocumentComposer()
    front = make_image("white", (40, 20))
    back = make_image("gray", (40, 20))

    assert composer.combine(front, back) == composer.combine(front, back)
    assert composer.combine(front, back) != composer.combine(front, make_image("red", (40, 20)))


@pytest.mark.parametrize("size, target, width", [((3, 2), 3, 5), ((1, 100), 10, 1), ((10, 4), 4, 10)])
def test_scaled_width_rounds_half_up(size, target, width):
    assert scaled_width(size, target) == width


def test_undecodable_image_raises_compose_error(make_image):
    with pytest.raises(ComposeError) as exc:
        DocumentComposer().combine(b"not an image", make_image())

    assert exc.value.message == "Failed to load front image"
    assert exc.value.status_code == 422


def test_oversized_capture_raises_compose_error(make_image):
    out = io.BytesIO()
    Image.new("1", (14000, 14000)).save(out, format="PNG")

    with pytest.raises(ComposeError) as exc:
        DocumentComposer().combine(out.getvalue(), make_image())

    assert exc.value.field == "front"


def test_session_leaves_merged_slot_empty_for_oversized_capture(services, make_image):
    out = io.BytesIO()
    Image.new("1", (14000, 14000)).save(out, format="PNG")
    session = services.new_session()
    session.upload("aadharCardFront", make_image())

    draft = session.upload("aadharCardBack", out.getvalue())

    assert draft.merged_aadhar is None
    assert draft.compose_error == "Failed to load back image"
