import base64

import pytest

from plastic_watch.capture import ImageCaptureStore, ImageSlot, allowed_file, decode_data_uri, detect_mime
from plastic_watch.errors import InvalidImage

from .fakes import make_image


def test_detect_mime(png_bytes, jpeg_bytes):
    assert detect_mime(png_bytes) == "image/png"
    assert detect_mime(jpeg_bytes) == "image/jpeg"
    assert detect_mime(make_image("GIF")) == "image/gif"
    assert detect_mime(make_image("BMP")) == "image/bmp"
    assert detect_mime(make_image("TIFF")) == "image/tiff"


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_detect_mime_rejects_non_images(data):
    with pytest.raises(InvalidImage):
        detect_mime(data)


def test_with_image_returns_new_store(png_bytes):
    empty = ImageCaptureStore()
    store = empty.with_image(ImageSlot.PRODUCT, png_bytes, "bottle.png")

    assert not empty.has(ImageSlot.PRODUCT)
    assert store.has("product")
    image = store.get(ImageSlot.PRODUCT)
    assert image.content_type == "image/png"
    assert image.filename == "bottle.png"


def test_replacing_a_slot_keeps_one_image(png_bytes, jpeg_bytes):
    store = ImageCaptureStore().with_image("product", png_bytes).with_image("product", jpeg_bytes)

    assert [i.content_type for i in store.captured()] == ["image/jpeg"]


def test_preview_is_data_uri(png_bytes):
    store = ImageCaptureStore().with_image(ImageSlot.RECYCLING, png_bytes)

    preview = store.get_preview(ImageSlot.RECYCLING)
    assert preview.startswith("data:image/png;base64,")
    assert base64.b64decode(preview.split(",", 1)[1]) == png_bytes
    assert store.get_preview(ImageSlot.BACK) is None


def test_invalid_image_leaves_store_unchanged(png_bytes):
    store = ImageCaptureStore().with_image(ImageSlot.PRODUCT, png_bytes)

    with pytest.raises(InvalidImage):
        store.with_image(ImageSlot.BACK, b"garbage")
    assert [i.slot for i in store.captured()] == [ImageSlot.PRODUCT]


def test_without_image(png_bytes):
    store = ImageCaptureStore().with_image(ImageSlot.PRODUCT, png_bytes).with_image(ImageSlot.BACK, png_bytes)

    trimmed = store.without_image(ImageSlot.BACK)
    assert not trimmed.has(ImageSlot.BACK)
    assert trimmed.has(ImageSlot.PRODUCT)
    # removing an empty slot is a no-op
    assert trimmed.without_image(ImageSlot.BACK) == trimmed


def test_captured_follows_slot_order(png_bytes):
    store = (
        ImageCaptureStore()
        .with_image(ImageSlot.MANUFACTURER, png_bytes)
        .with_image(ImageSlot.PRODUCT, png_bytes)
    )

    assert [i.slot for i in store.captured()] == [ImageSlot.PRODUCT, ImageSlot.MANUFACTURER]


def test_data_uri_round_trip(png_bytes):
    uri = "data:image/png;base64," + base64.b64encode(png_bytes).decode()

    assert decode_data_uri(uri) == (png_bytes, "image/png")
    assert ImageCaptureStore().with_data_uri("product", uri).get("product").data == png_bytes


@pytest.mark.parametrize("uri", ["", "http://example.org/a.png", "data:image/png;base64,@@@"])
def test_decode_data_uri_rejects(uri):
    with pytest.raises(InvalidImage):
        decode_data_uri(uri)


def test_unknown_slot():
    with pytest.raises(ValueError):
        ImageCaptureStore().has("selfie")


def test_allowed_file():
    assert allowed_file("bottle.JPG")
    assert not allowed_file("bottle.exe")
    assert allowed_file("scan.bmp")
    assert allowed_file("scan.tiff")
    assert not allowed_file("IMG_0001.HEIC")
    assert not allowed_file("bottle")
    assert ImageSlot.PRODUCT.required and not ImageSlot.BACK.required
