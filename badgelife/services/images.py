"""Decoding helpers for the base64 images clients submit."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

_DATA_URL = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,", re.IGNORECASE)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ImagePayloadError(ValueError):
    """Raised when a submitted image cannot be decoded."""


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        return _EXTENSIONS.get(self.mime_type.lower(), "jpg")

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.as_base64()}"


def decode_image_payload(image_b64: str) -> ImagePayload:
    """Accept either a bare base64 string or a ``data:image/...;base64,`` URL."""

    text = (image_b64 or "").strip()
    if not text:
        raise ImagePayloadError("image payload is empty")
    mime_type = "image/jpeg"
    match = _DATA_URL.match(text)
    if match:
        mime_type = match.group(1).lower()
        text = text[match.end():]
    text = "".join(text.split())
    try:
        data = base64.b64decode(text, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise ImagePayloadError("invalid base64 image payload") from exc
    if not data:
        raise ImagePayloadError("image payload is empty")
    return ImagePayload(data=data, mime_type=mime_type)


__all__ = ["ImagePayload", "ImagePayloadError", "decode_image_payload"]
