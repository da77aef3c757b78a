from __future__ import annotations

import base64

import pytest

from ingestion.errors import ImageValidationError
from ingestion.images import ImagePayload, pick_clipboard_image, validate_image


def test_validate_image_accepts_reasonable_images(test_settings, png_image):
    assert validate_image(png_image, settings=test_settings) is png_image


def test_validate_image_rejects_non_images(test_settings):
    document = ImagePayload(data=b"%PDF" + b"\x00" * 4096, content_type="application/pdf")

    with pytest.raises(ImageValidationError, match="only images"):
        validate_image(document, settings=test_settings)


def test_validate_image_rejects_oversized_and_degenerate_payloads(test_settings):
    settings = test_settings.model_copy(update={"max_image_bytes": 1024, "min_image_bytes": 64})

    with pytest.raises(ImageValidationError, match="exceeds"):
        validate_image(ImagePayload(data=b"\x00" * 2048, content_type="image/png"), settings=settings)
    with pytest.raises(ImageValidationError, match="too small"):
        validate_image(ImagePayload(data=b"\x00" * 10, content_type="image/png"), settings=settings)


def test_from_base64_reads_data_urls(png_image):
    payload = ImagePayload.from_base64(png_image.as_data_url())

    assert payload.content_type == "image/png"
    assert payload.data == png_image.data
    assert payload.to_base64() == base64.b64encode(png_image.data).decode("ascii")


def test_from_base64_rejects_invalid_payloads():
    with pytest.raises(ImageValidationError):
        ImagePayload.from_base64("not base64!!", "image/png")


def test_from_path_guesses_content_type(tmp_path, png_image):
    path = tmp_path / "slip.jpg"
    path.write_bytes(png_image.data)

    payload = ImagePayload.from_path(path)

    assert payload.content_type == "image/jpeg"
    assert payload.filename == "slip.jpg"
    assert payload.size == png_image.size


def test_pick_clipboard_image_takes_first_image_item():
    items = [("text/plain", b"hello"), ("IMAGE/PNG", b"first"), ("image/jpeg", b"second")]

    picked = pick_clipboard_image(items)

    assert picked == ImagePayload(data=b"first", content_type="image/png")
    assert pick_clipboard_image([("text/html", b"<p>")]) is None
