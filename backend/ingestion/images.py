from __future__ import annotations

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from app.core.config import Settings, get_settings

from .errors import ImageValidationError


@dataclass(slots=True, frozen=True)
class ImagePayload:
    """Raw slip image plus its declared content type."""

    data: bytes
    content_type: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.content_type};base64,{self.to_base64()}"

    @classmethod
    def from_base64(cls, encoded: str, content_type: str | None = None) -> "ImagePayload":
        """Decode plain base64 or a ``data:`` URL."""

        payload = encoded.strip()
        if payload.startswith("data:"):
            header, _, payload = payload.partition(",")
            declared = header[5:].split(";", 1)[0]
            content_type = content_type or declared
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageValidationError("Image payload is not valid base64") from exc
        return cls(data=data, content_type=(content_type or "").lower())

    @classmethod
    def from_path(cls, path: str | Path) -> "ImagePayload":
        file_path = Path(path)
        content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            data=file_path.read_bytes(),
            content_type=content_type or "application/octet-stream",
            filename=file_path.name,
        )


def validate_image(image: ImagePayload, *, settings: Settings | None = None) -> ImagePayload:
    """Reject non-images and out-of-range sizes before any job exists."""

    resolved = settings or get_settings()
    if not image.content_type.startswith("image/"):
        raise ImageValidationError(
            f"Unsupported file type '{image.content_type or 'unknown'}'; only images are accepted"
        )
    if image.size > resolved.max_image_bytes:
        raise ImageValidationError(
            f"Image exceeds the {resolved.image_size_limit_mb}MB limit ({image.size} bytes)"
        )
    if image.size < resolved.min_image_bytes:
        raise ImageValidationError(
            f"Image is too small to contain a slip ({image.size} bytes)"
        )
    return image


def pick_clipboard_image(items: Iterable[tuple[str, bytes]]) -> ImagePayload | None:
    """Return the first ``image/*`` entry of a paste event, if any."""

    for content_type, data in items:
        if content_type and content_type.lower().startswith("image/"):
            return ImagePayload(data=data, content_type=content_type.lower())
    return None


__all__ = ["ImagePayload", "pick_clipboard_image", "validate_image"]
