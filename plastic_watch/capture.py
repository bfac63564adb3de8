"""In-memory photo slots for a contribution draft."""
import base64
import binascii
import enum
import io
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from PIL import Image, UnidentifiedImageError

from .errors import InvalidImage

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "bmp", "tif", "tiff"}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


class ImageSlot(str, enum.Enum):
    PRODUCT = "product"
    BACK = "back"
    RECYCLING = "recycling"
    MANUFACTURER = "manufacturer"

    @property
    def required(self) -> bool:
        return self is ImageSlot.PRODUCT


def allowed_file(filename: str) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def detect_mime(image_bytes: bytes) -> str:
    """Return the image mime type using Pillow, or raise InvalidImage."""
    if not image_bytes:
        raise InvalidImage("The image file is empty.")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            fmt = img.format.upper() if img.format else None
    except (UnidentifiedImageError, OSError):
        raise InvalidImage()
    mime = Image.MIME.get(fmt) if fmt else None
    if mime is None:
        raise InvalidImage(f"Unsupported image format: {fmt}.")
    return mime


def decode_data_uri(uri: str):
    """Split a ``data:<mime>;base64,...`` URI into (bytes, mime)."""
    match = _DATA_URI_RE.match(uri or "")
    if not match:
        raise InvalidImage("Expected a base64 data URI.")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImage("The image data is not valid base64.")
    return data, match.group("mime")


@dataclass(frozen=True)
class CapturedImage:
    slot: ImageSlot
    data: bytes
    content_type: str
    filename: Optional[str] = None

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("utf-8")
        return f"data:{self.content_type};base64,{encoded}"


class ImageCaptureStore:
    """Holds at most one image per slot.

    Updates return a new store so a draft holding one never changes under
    the wizard's feet.
    """

    def __init__(self, images: Optional[Dict[ImageSlot, CapturedImage]] = None):
        self._images = dict(images or {})

    def with_image(self, slot, data: bytes, filename: Optional[str] = None) -> "ImageCaptureStore":
        slot = ImageSlot(slot)
        content_type = detect_mime(data)
        images = dict(self._images)
        images[slot] = CapturedImage(slot, data, content_type, filename)
        return ImageCaptureStore(images)

    def with_data_uri(self, slot, uri: str) -> "ImageCaptureStore":
        data, _ = decode_data_uri(uri)
        return self.with_image(slot, data)

    def without_image(self, slot) -> "ImageCaptureStore":
        images = dict(self._images)
        images.pop(ImageSlot(slot), None)
        return ImageCaptureStore(images)

    def get(self, slot) -> Optional[CapturedImage]:
        return self._images.get(ImageSlot(slot))

    def get_preview(self, slot) -> Optional[str]:
        image = self.get(slot)
        return image.data_uri if image else None

    def has(self, slot) -> bool:
        return ImageSlot(slot) in self._images

    def captured(self) -> List[CapturedImage]:
        return [self._images[s] for s in ImageSlot if s in self._images]

    def __eq__(self, other):
        if not isinstance(other, ImageCaptureStore):
            return NotImplemented
        return self._images == other._images
