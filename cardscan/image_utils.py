import base64
import binascii
import io
import re
from pathlib import Path
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .utils import get_logger

LOGGER = get_logger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>image/[\w.+-]+)?(?P<b64>;base64)?,(?P<payload>.*)$", re.DOTALL)

# Errors Pillow and base64 raise for payloads that are not decodable images.
DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, binascii.Error)

TRANSPARENT = (0, 0, 0, 0)


def decode_data_url(data_url: str) -> bytes:
    """Return the raw bytes carried by a base64 data URL."""

    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match or not match.group("b64"):
        raise ValueError("not a base64 data URL")
    return base64.b64decode(match.group("payload"), validate=False)


def bytes_to_data_url(payload: bytes, mime: str = "image/png") -> str:
    b64 = base64.b64encode(payload).decode("ascii")
    return f"data:{mime};base64,{b64}"


def _encode(img: Image.Image, fmt: str, **save_kwargs) -> str:
    buffer = io.BytesIO()
    if fmt == "JPEG" and img.mode != "RGB":
        img = img.convert("RGB")
    img.save(buffer, format=fmt, **save_kwargs)
    mime = "image/jpeg" if fmt == "JPEG" else "image/png"
    return bytes_to_data_url(buffer.getvalue(), mime)


def _open_data_url(data_url: str) -> Image.Image:
    img = Image.open(io.BytesIO(decode_data_url(data_url)))
    img.load()
    return img


def image_to_data_url(image_path: Path, max_dim: int = 1024) -> str:
    """Read a card photo from disk as a JPEG data URL no larger than ``max_dim``."""

    with Image.open(image_path) as photo:
        photo = photo.convert("RGB")
        photo.thumbnail((max_dim, max_dim), Image.LANCZOS)
        return _encode(photo, "JPEG", quality=85, optimize=True)


def write_data_url(data_url: str, path: Path) -> Path:
    """Decode ``data_url`` and save it to ``path`` in the format its suffix names."""

    with _open_data_url(data_url) as img:
        img.save(path)
    return path


def scaled_size(size: Tuple[int, int], max_width: int) -> Tuple[int, int]:
    """Return ``size`` downscaled to ``max_width`` keeping the aspect ratio."""

    width, height = size
    if width <= max_width:
        return width, height
    return max_width, max(1, round(height * max_width / width))


def resize_image(data_url: str, max_width: int, quality: int = 80) -> str:
    """Downscale an image wider than ``max_width`` and re-encode it as JPEG.

    The original data URL is returned unchanged if it cannot be decoded.
    """

    try:
        with _open_data_url(data_url) as img:
            target = scaled_size(img.size, max_width)
            resized = img.resize(target, Image.LANCZOS) if target != img.size else img.copy()
    except DECODE_ERRORS as exc:
        LOGGER.warning("Could not decode image for resizing: %s", exc)
        return data_url
    return _encode(resized, "JPEG", quality=quality)


def normalize_to_icon(data_url: str, size: int, background: Tuple[int, ...] = TRANSPARENT) -> str:
    """Fit an image inside a ``size`` x ``size`` PNG canvas, centered.

    Aspect ratio is preserved; the uncovered canvas is filled with
    ``background``. Undecodable input is returned unchanged.
    """

    try:
        with _open_data_url(data_url) as img:
            img = img.convert("RGBA")
            scale = min(size / img.width, size / img.height)
            scaled = (max(1, round(img.width * scale)), max(1, round(img.height * scale)))
            img = img.resize(scaled, Image.LANCZOS)
    except DECODE_ERRORS as exc:
        LOGGER.warning("Could not decode generated image: %s", exc)
        return data_url

    canvas = Image.new("RGBA", (size, size), background)
    offset = ((size - scaled[0]) // 2, (size - scaled[1]) // 2)
    canvas.paste(img, offset, img)
    return _encode(canvas, "PNG")


def _center_square_box(size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    """Return the bounding box of the largest centered square."""

    width, height = size
    side = min(width, height)
    left = (width - side) // 2
    top = (height - side) // 2
    return left, top, left + side, top + side


def center_crop(data_url: str, size: int) -> str:
    """Crude character portrait: the centered square of the photo at ``size`` px.

    No detection happens here; the card art is simply assumed to sit in the
    middle of the frame.
    """

    try:
        with _open_data_url(data_url) as img:
            img = img.convert("RGBA")
            region = img.crop(_center_square_box(img.size))
            region = region.resize((size, size), Image.LANCZOS)
    except DECODE_ERRORS as exc:
        LOGGER.warning("Could not decode photo for cropping: %s", exc)
        return data_url
    return _encode(region, "PNG")
