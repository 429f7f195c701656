from __future__ import annotations

import asyncio
import base64
import binascii
import io
import re
from typing import List, Optional, Protocol, Sequence, Union

from PIL import Image

from ..core.errors import EncodingError
from .schema import EncodedImage

_MIME_RE = re.compile(r"^data:(.*?);base64$", re.IGNORECASE)
_GENERIC_TYPES = {"", "application/octet-stream"}


class ImageUpload(Protocol):
    """Anything shaped like a FastAPI/Starlette UploadFile."""

    content_type: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...


ImageSource = Union[str, ImageUpload]


def parse_data_url(text: str) -> EncodedImage:
    """Split a `data:<mime>;base64,<payload>` URL into an EncodedImage.

    Rejects instead of returning partial data when either part is missing.
    """
    header, sep, payload = (text or "").strip().partition(",")
    m = _MIME_RE.match(header)
    mime_type = m.group(1).strip() if m else ""
    payload = payload.strip()
    if not sep or not mime_type or not payload:
        raise EncodingError("Could not parse file data URL.")
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncodingError("Data URL payload is not valid base64.") from exc
    return EncodedImage(base64=payload, mimeType=mime_type)


def sniff_mime_type(raw: bytes) -> Optional[str]:
    try:
        with Image.open(io.BytesIO(raw)) as img:
            fmt = img.format
    except (OSError, ValueError):
        return None
    return Image.MIME.get(fmt) if fmt else None


async def encode_image(source: ImageSource) -> EncodedImage:
    """Upload (or data URL) -> EncodedImage.

    The declared content type wins; Pillow is only asked when the browser sent
    nothing useful.
    """
    if isinstance(source, str):
        return parse_data_url(source)

    raw = await source.read()
    if not raw:
        raise EncodingError("Empty image upload.")

    mime_type = (source.content_type or "").split(";", 1)[0].strip()
    if mime_type.lower() in _GENERIC_TYPES:
        mime_type = sniff_mime_type(raw) or ""
    if not mime_type:
        raise EncodingError("Could not determine the image type of an upload.")

    return EncodedImage(base64=base64.b64encode(raw).decode("utf-8"), mimeType=mime_type)


async def encode_images(sources: Sequence[ImageSource]) -> List[EncodedImage]:
    # Independent reads; order of the result follows the input.
    return list(await asyncio.gather(*(encode_image(s) for s in sources)))
