from __future__ import annotations

import base64
import binascii
import io
import re
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ImageLoadError

ImageSource = Union[str, Path, bytes, Image.Image]

_DATA_URL_RE = re.compile(r"^data:(.*?)(;base64)?$")

_MIME_TO_FORMAT = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
    "image/bmp": "BMP",
}

# decoders whose output re-encodes as another format
_FORMAT_ALIASES = {"MPO": "JPEG"}


def describe_source(source: ImageSource) -> str:
    if isinstance(source, Image.Image):
        return f"<image {source.size[0]}x{source.size[1]}>"
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    s = str(source)
    if s.startswith("data:"):
        return s[:32] + "..."
    return s


def data_url_to_bytes(url: str) -> Tuple[str, bytes]:
    """
    Split a data URL into (mime, payload bytes).
    Raises ValueError when the URL has no payload or no MIME type.
    """
    head, sep, payload = url.partition(",")
    if not sep:
        raise ValueError("Invalid data URL")
    m = _DATA_URL_RE.match(head)
    if not m or not m.group(1):
        raise ValueError("Could not determine MIME type from data URL")
    mime = m.group(1)
    if m.group(2):
        try:
            return mime, base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    return mime, payload.encode("latin-1")


def load_image(source: ImageSource) -> Image.Image:
    """
    Decode a page image fully.

    Accepts a path, raw bytes, a data: URL or a PIL image. EXIF orientation is
    applied so natural dimensions match what the user sees.
    """
    desc = describe_source(source)
    try:
        if isinstance(source, Image.Image):
            img = source.copy()
        elif isinstance(source, bytes):
            img = Image.open(io.BytesIO(source))
        elif isinstance(source, str) and source.startswith("data:"):
            _mime, raw = data_url_to_bytes(source)
            img = Image.open(io.BytesIO(raw))
        else:
            img = Image.open(Path(source))
        fmt = img.format or (source.format if isinstance(source, Image.Image) else None)
        img.load()
        img = ImageOps.exif_transpose(img)
        # exif_transpose drops .format on rotated copies
        if img.format is None and fmt is not None:
            img.format = fmt
    except (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise ImageLoadError(desc, str(e)) from e
    if img.width <= 0 or img.height <= 0:
        raise ImageLoadError(desc, "image has no pixels")
    return img


def format_for_mime(mime: str) -> str:
    return _MIME_TO_FORMAT.get((mime or "").lower(), "PNG")


def normalize_mime(mime: Optional[str], default: str = "image/png") -> str:
    """MIME type encode_image() will actually write for `mime`."""
    m = (mime or "").lower()
    if m == "image/jpg":
        return "image/jpeg"
    return m if m in _MIME_TO_FORMAT else default


def mime_for_image(img: Image.Image, default: str = "image/png") -> str:
    """
    MIME to re-encode a decoded image with. Formats we cannot write
    (TIFF, ICO, ...) give `default`; MPO is a JPEG with extra frames.
    """
    fmt = (img.format or "").upper()
    if not fmt:
        return default
    fmt = _FORMAT_ALIASES.get(fmt, fmt)
    return normalize_mime(Image.MIME.get(fmt), default)


def encode_image(img: Image.Image, mime: str = "image/png", quality: Optional[float] = None) -> bytes:
    """Encode to bytes. quality is 0..1 like a canvas toDataURL and only affects lossy formats."""
    fmt = format_for_mime(mime)
    out = img
    if fmt == "JPEG" and out.mode not in ("RGB", "L"):
        out = out.convert("RGB")
    kwargs = {}
    if quality is not None and fmt in ("JPEG", "WEBP"):
        kwargs["quality"] = max(1, min(100, int(round(quality * 100))))
    buf = io.BytesIO()
    out.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def image_to_data_url(img: Image.Image, mime: str = "image/png", quality: Optional[float] = None) -> str:
    raw = encode_image(img, mime, quality)
    return f"data:{mime};base64," + base64.b64encode(raw).decode("ascii")


def pil_to_rgba_array(img: Image.Image) -> np.ndarray:
    """PIL image -> (H,W,4) uint8 RGBA ndarray (always a copy)."""
    return np.array(img.convert("RGBA"), dtype=np.uint8)


def rgba_array_to_pil(arr: np.ndarray) -> Image.Image:
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("arr must be HxWx4")
    return Image.fromarray(arr.astype(np.uint8, copy=False))
