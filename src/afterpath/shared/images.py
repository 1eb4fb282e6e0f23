"""Image cropping for story covers, gallery photos, and branding assets.

Every photo that enters the site passes through :func:`transform_image`:
the source is scaled to cover a fixed-aspect frame, zoomed and shifted by
the crop parameters, flattened onto a neutral background and re-encoded
as a JPEG data URL.  The same inputs always give the same output.

Re-running an already processed image with neutral parameters (zoom 1.0,
offset 0,0) keeps the same visual region, but JPEG is lossy so the bytes
are not identical.

Offsets are expressed in crop-preview pixels: the interactive preview is
``preview_width`` pixels wide and the output is scaled up from it, so an
offset of 10 moves the picture by ``10 * target_width / preview_width``
output pixels.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging
import math
import mimetypes
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from afterpath.errors import MediaReadError

logger = logging.getLogger(__name__)

TARGET_WIDTH = 1200
PREVIEW_WIDTH = 400
JPEG_QUALITY = 85
BACKGROUND = "#FDFBF7"

COVER_ASPECT = 16 / 9
GALLERY_ASPECT = 4 / 3
LOGO_ASPECT = 1.0

MIN_ZOOM = 0.1
MAX_ZOOM = 3.0
MAX_OFFSET = 300

_DATA_URL_PREFIX = "data:"


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def encode_data_url(data: bytes, mime: str) -> str:
    """Wrap raw bytes as a base64 data URL."""
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(url: str) -> bytes:
    """Return the payload of a base64 data URL.

    Raises:
        ValueError: If *url* is not a base64 data URL.
    """
    if not url.startswith(_DATA_URL_PREFIX) or "," not in url:
        raise ValueError("not a data URL")
    header, payload = url[len(_DATA_URL_PREFIX):].split(",", 1)
    if not header.endswith(";base64"):
        raise ValueError("only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc


def read_media_file(path: Path, *, kind: str | None = None) -> str:
    """Read a file from disk into a data URL.

    Args:
        path: File to read.
        kind: Optional top-level MIME type the file must have
            (``"image"`` or ``"video"``).

    Raises:
        MediaReadError: If the file cannot be read or has the wrong type.
    """
    mime, _ = mimetypes.guess_type(path.name)
    if mime is None:
        raise MediaReadError(f"Unknown media type: {path}")
    if kind is not None and not mime.startswith(f"{kind}/"):
        raise MediaReadError(f"{path} is not an {kind} file ({mime})")
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise MediaReadError(f"Could not read {path}: {exc}") from exc
    return encode_data_url(data, mime)


async def read_media_file_async(path: Path, *, kind: str | None = None) -> str:
    return await asyncio.to_thread(read_media_file, path, kind=kind)


def _open_source(source: str) -> Image.Image:
    if source.startswith(_DATA_URL_PREFIX):
        img = Image.open(io.BytesIO(decode_data_url(source)))
    else:
        img = Image.open(Path(source))
    img.load()
    return img


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


def output_size(target_width: int, aspect_ratio: float) -> tuple[int, int]:
    """Canvas size for a target width; height is ``floor(width / ratio)``."""
    if target_width <= 0 or aspect_ratio <= 0:
        raise ValueError("target width and aspect ratio must be positive")
    height = math.floor(target_width / aspect_ratio)
    if height < 1:
        raise ValueError(f"aspect ratio {aspect_ratio} leaves no rows at width {target_width}")
    return target_width, height


def parse_aspect(text: str) -> float:
    """Parse ``"16:9"`` or ``"1.5"`` into a width/height ratio."""
    if ":" in text:
        w, h = (float(part) for part in text.split(":", 1))
        if h == 0:
            raise ValueError(f"aspect ratio height cannot be zero: {text}")
        ratio = w / h
    else:
        ratio = float(text)
    if ratio <= 0:
        raise ValueError(f"aspect ratio must be positive: {text}")
    return ratio


def render_crop(
    img: Image.Image,
    aspect_ratio: float,
    target_width: int = TARGET_WIDTH,
    offset_x: float = 0.0,
    offset_y: float = 0.0,
    scale: float = 1.0,
    *,
    background: str = BACKGROUND,
    preview_width: int = PREVIEW_WIDTH,
) -> Image.Image:
    """Place *img* on a fixed-size canvas according to the crop parameters.

    At scale 1.0 the image exactly covers the frame (the shorter side
    fits, the longer side overflows evenly); offset (0, 0) centers it.
    """
    width, height = output_size(target_width, aspect_ratio)
    src = ImageOps.exif_transpose(img).convert("RGBA")

    cover = max(width / src.width, height / src.height)
    factor = cover * scale
    draw_w = max(1, round(src.width * factor))
    draw_h = max(1, round(src.height * factor))

    px = width / preview_width
    left = round((width - draw_w) / 2 + offset_x * px)
    top = round((height - draw_h) / 2 + offset_y * px)

    canvas = Image.new("RGB", (width, height), background)
    resized = src.resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    canvas.paste(resized, (left, top), resized)
    return canvas


def transform_image(
    source: str,
    aspect_ratio: float,
    target_width: int = TARGET_WIDTH,
    offset_x: float = 0.0,
    offset_y: float = 0.0,
    scale: float = 1.0,
    *,
    background: str = BACKGROUND,
    quality: int = JPEG_QUALITY,
    preview_width: int = PREVIEW_WIDTH,
) -> str:
    """Crop *source* to a fixed-aspect JPEG data URL.

    Args:
        source: A data URL or a path to an image file.
        aspect_ratio: Output width / height (e.g. ``16 / 9``).
        target_width: Output width in pixels.
        offset_x: Horizontal shift in preview pixels.
        offset_y: Vertical shift in preview pixels.
        scale: Zoom factor, 1.0 = image covers the frame.

    Returns:
        The encoded JPEG as a data URL, or *source* unchanged when it
        cannot be decoded.
    """
    try:
        img = _open_source(source)
    except (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
        logger.warning("Could not decode image source, keeping original: %s", exc)
        return source

    canvas = render_crop(
        img,
        aspect_ratio,
        target_width,
        offset_x,
        offset_y,
        scale,
        background=background,
        preview_width=preview_width,
    )
    buf = io.BytesIO()
    canvas.save(buf, format="JPEG", quality=quality)
    return encode_data_url(buf.getvalue(), "image/jpeg")


# ---------------------------------------------------------------------------
# Crop session
# ---------------------------------------------------------------------------


class ImageTargetKind(StrEnum):
    """Where a finished crop is delivered."""

    COVER = "cover"
    GALLERY_NEW = "gallery_new"
    GALLERY_ITEM = "gallery_item"
    LOGO = "logo"


@dataclass(frozen=True)
class ImageTarget:
    """Completion target of a crop session."""

    kind: ImageTargetKind
    story_id: str | None = None
    item_id: str | None = None

    @classmethod
    def cover(cls, story_id: str) -> ImageTarget:
        return cls(ImageTargetKind.COVER, story_id=story_id)

    @classmethod
    def new_gallery_photo(cls, story_id: str) -> ImageTarget:
        return cls(ImageTargetKind.GALLERY_NEW, story_id=story_id)

    @classmethod
    def gallery_photo(cls, story_id: str, item_id: str) -> ImageTarget:
        return cls(ImageTargetKind.GALLERY_ITEM, story_id=story_id, item_id=item_id)

    @classmethod
    def logo(cls) -> ImageTarget:
        return cls(ImageTargetKind.LOGO)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class ImageEditSession:
    """Pending crop: source, frame, live zoom/offset, and where the result goes."""

    source: str
    aspect_ratio: float
    target: ImageTarget
    zoom: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    applying: bool = False

    def set_zoom(self, value: float) -> None:
        self.zoom = _clamp(value, MIN_ZOOM, MAX_ZOOM)

    def set_offset(self, x: float, y: float) -> None:
        self.offset_x = _clamp(x, -MAX_OFFSET, MAX_OFFSET)
        self.offset_y = _clamp(y, -MAX_OFFSET, MAX_OFFSET)

    async def render(
        self,
        target_width: int = TARGET_WIDTH,
        *,
        background: str = BACKGROUND,
        quality: int = JPEG_QUALITY,
        preview_width: int = PREVIEW_WIDTH,
    ) -> str:
        """Run the transform off the event loop with the current parameters."""
        return await asyncio.to_thread(
            transform_image,
            self.source,
            self.aspect_ratio,
            target_width,
            self.offset_x,
            self.offset_y,
            self.zoom,
            background=background,
            quality=quality,
            preview_width=preview_width,
        )
