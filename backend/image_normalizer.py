"""
Decoding and downscaling of photos before they enter the pipeline.

Reference photos are shrunk to a bounded size and re-encoded as JPEG so the
roster stays small in storage and in the recognition request. Scene images
are only validated and passed through unchanged.
"""
import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

import config
from errors import ImageDecodeError


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    mime_type: str
    width: int
    height: int


def _decode(data: bytes) -> Image.Image:
    if not data:
        raise ImageDecodeError("Empty image")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Invalid image format: {e}") from e
    return img


def _mime_type(img: Image.Image) -> str:
    # Multi-picture JPEGs from phone cameras are plain JPEG on the wire
    if img.format == "MPO":
        return "image/jpeg"
    return Image.MIME.get(img.format or "", "application/octet-stream")


def fit_within(width: int, height: int, max_edge: int):
    """Dimensions scaled so the longer edge is at most max_edge. Never enlarges."""
    longest = max(width, height)
    if longest <= max_edge:
        return width, height
    scale = max_edge / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def normalize_reference_image(
    data: bytes,
    max_edge: int = None,
    quality: int = None
) -> NormalizedImage:
    """
    Downscale a reference photo and re-encode it as JPEG.

    Args:
        data: Encoded image of any resolution
        max_edge: Longest allowed edge in pixels
        quality: JPEG quality (1-95)

    Returns:
        NormalizedImage with JPEG bytes whose longer edge is <= max_edge

    Raises:
        ImageDecodeError: bytes are not a decodable image
    """
    if max_edge is None:
        max_edge = config.REFERENCE_MAX_EDGE
    if quality is None:
        quality = config.REFERENCE_JPEG_QUALITY

    img = _decode(data)
    if img.mode != "RGB":
        img = img.convert("RGB")

    size = fit_within(img.width, img.height, max_edge)
    if size != img.size:
        img = img.resize(size, Image.LANCZOS)

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    return NormalizedImage(
        data=buffer.getvalue(),
        mime_type="image/jpeg",
        width=img.width,
        height=img.height
    )


def prepare_scene_image(data: bytes) -> NormalizedImage:
    """Check that a captured scene decodes and report its media type. Bytes pass through."""
    img = _decode(data)
    return NormalizedImage(
        data=data,
        mime_type=_mime_type(img),
        width=img.width,
        height=img.height
    )
