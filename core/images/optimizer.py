"""Adaptive image payload optimizer.

Turns an arbitrary raster into an opaque JPEG payload that fits a byte
budget. The work is bounded: one encode per step of the quality schedule,
then at most one geometric shrink with a final encode whose result is
accepted even if it is still over budget.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import math
from dataclasses import dataclass

from PIL import Image, ImageOps

from core.config.models import OptimizerSettings
from core.utils.errors import ImageDecodeError

logger = logging.getLogger("decode.optimizer")

_WHITE = (255, 255, 255)
_OUTPUT_FORMAT = "JPEG"
_OUTPUT_MEDIA_TYPE = "image/jpeg"


@dataclass(frozen=True)
class OptimizedImage:
    """Encoded payload ready for the generation call."""

    payload: bytes
    width: int
    height: int
    quality: int
    attempts: int
    used_geometric_fallback: bool
    native_width: int
    native_height: int
    media_type: str = _OUTPUT_MEDIA_TYPE

    @property
    def size_bytes(self) -> int:
        return len(self.payload)

    def to_base64(self) -> str:
        return base64.b64encode(self.payload).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


def decode_data_url(text: str) -> bytes:
    """Decode a ``data:`` URL or bare base64 string into raw bytes."""

    raw = text.strip()
    if raw.startswith("data:"):
        _, _, raw = raw.partition(",")
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError("image payload is not valid base64") from exc


def target_dimensions(width: int, height: int, settings: OptimizerSettings) -> tuple[int, int]:
    """Apply the area cap, then the width and height clamps.

    Every factor is <= 1 so the result never exceeds the native size.
    """

    scaled_width, scaled_height = width, height

    area = width * height
    if area > settings.max_area_pixels:
        scale = math.sqrt(settings.max_area_pixels / area)
        scaled_width = math.floor(width * scale)
        scaled_height = math.floor(height * scale)

    if scaled_width > settings.max_width:
        scaled_height = math.floor(scaled_height * settings.max_width / scaled_width)
        scaled_width = settings.max_width

    if scaled_height > settings.max_height:
        scaled_width = math.floor(scaled_width * settings.max_height / scaled_height)
        scaled_height = settings.max_height

    return max(1, scaled_width), max(1, scaled_height)


def optimize_image(data: bytes, settings: OptimizerSettings | None = None) -> OptimizedImage:
    """Encode ``data`` into a size-bounded opaque JPEG payload."""

    limits = settings or OptimizerSettings()
    image = _decode(data)
    native_width, native_height = image.size

    width, height = target_dimensions(native_width, native_height, limits)
    canvas = _flatten_onto_white(image, (width, height))

    attempts = 0
    payload = b""
    for quality in limits.quality_schedule():
        payload = _encode(canvas, quality)
        attempts += 1
        if len(payload) <= limits.max_payload_bytes:
            logger.debug(
                "optimized image %sx%s -> %sx%s q=%s bytes=%s attempts=%s",
                native_width,
                native_height,
                width,
                height,
                quality,
                len(payload),
                attempts,
            )
            return OptimizedImage(
                payload=payload,
                width=width,
                height=height,
                quality=quality,
                attempts=attempts,
                used_geometric_fallback=False,
                native_width=native_width,
                native_height=native_height,
            )

    factor = min(1.0, math.sqrt(limits.max_payload_bytes / len(payload)))
    shrunk_width = max(1, math.floor(width * factor))
    shrunk_height = max(1, math.floor(height * factor))
    if (shrunk_width, shrunk_height) != canvas.size:
        canvas = canvas.resize((shrunk_width, shrunk_height), Image.Resampling.LANCZOS)
    payload = _encode(canvas, limits.fallback_quality)
    attempts += 1

    if len(payload) > limits.max_payload_bytes:
        logger.warning(
            "image payload still over budget after geometric correction: bytes=%s budget=%s",
            len(payload),
            limits.max_payload_bytes,
        )

    return OptimizedImage(
        payload=payload,
        width=shrunk_width,
        height=shrunk_height,
        quality=limits.fallback_quality,
        attempts=attempts,
        used_geometric_fallback=True,
        native_width=native_width,
        native_height=native_height,
    )


def _decode(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return ImageOps.exif_transpose(image) or image
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(
            f"image could not be decoded: {exc}", source_bytes=len(data)
        ) from exc


def _flatten_onto_white(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    has_alpha = image.mode in {"RGBA", "LA", "PA"} or (
        image.mode == "P" and "transparency" in image.info
    )
    source = image.convert("RGBA" if has_alpha else "RGB")
    if source.size != size:
        source = source.resize(size, Image.Resampling.LANCZOS)
    if not has_alpha:
        return source

    background = Image.new("RGB", size, _WHITE)
    background.paste(source, mask=source.getchannel("A"))
    return background


def _encode(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=_OUTPUT_FORMAT, quality=quality)
    return buffer.getvalue()
