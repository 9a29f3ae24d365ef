"""
Pixel dimension extraction.

Pillow is the primary decoder (header only, the image is never fully
decoded). When the decoder is switched off or cannot identify the bytes,
the manual parsers below read the dimension fields straight out of the
PNG, JPEG, GIF and WebP headers.
"""

import io
import logging
import struct
from typing import Optional

from PIL import Image, UnidentifiedImageError

from schemas.normalized import Dimensions

logger = logging.getLogger(__name__)

# JPEG start-of-frame markers carrying the frame size
_SOF_MARKERS = set(range(0xC0, 0xC4)) | set(range(0xC5, 0xC8)) | set(range(0xC9, 0xCC)) | set(range(0xCD, 0xD0))
# Markers without a length field
_STANDALONE_MARKERS = set(range(0xD0, 0xDA)) | {0x01}


def _valid(width: int, height: int) -> Optional[Dimensions]:
    return Dimensions.from_pair(width, height)


# ============================================================================
# Manual header parsing
# ============================================================================

def parse_png_dimensions(data: bytes) -> Optional[Dimensions]:
    if len(data) < 24:
        return None
    if data[:8] != b"\x89PNG\r\n\x1a\n" or data[12:16] != b"IHDR":
        return None
    width, height = struct.unpack(">II", data[16:24])
    return _valid(width, height)


def parse_jpeg_dimensions(data: bytes) -> Optional[Dimensions]:
    if len(data) < 4 or data[0] != 0xFF or data[1] != 0xD8:
        return None

    offset = 2
    while offset + 4 <= len(data):
        if data[offset] != 0xFF:
            return None
        marker = data[offset + 1]

        # Fill bytes
        if marker == 0xFF:
            offset += 1
            continue
        if marker in _STANDALONE_MARKERS:
            offset += 2
            continue

        if marker in _SOF_MARKERS:
            if offset + 9 > len(data):
                return None
            height, width = struct.unpack(">HH", data[offset + 5:offset + 9])
            return _valid(width, height)

        (segment_length,) = struct.unpack(">H", data[offset + 2:offset + 4])
        if segment_length < 2:
            return None
        offset += 2 + segment_length

    return None


def parse_gif_dimensions(data: bytes) -> Optional[Dimensions]:
    if len(data) < 10 or data[:6] not in (b"GIF87a", b"GIF89a"):
        return None
    width, height = struct.unpack("<HH", data[6:10])
    return _valid(width, height)


def parse_webp_dimensions(data: bytes) -> Optional[Dimensions]:
    if len(data) < 30 or data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        return None

    chunk = data[12:16]
    if chunk == b"VP8 ":
        width = struct.unpack("<H", data[26:28])[0] & 0x3FFF
        height = struct.unpack("<H", data[28:30])[0] & 0x3FFF
        return _valid(width, height)

    if chunk == b"VP8L":
        bits = struct.unpack("<I", data[21:25])[0]
        width = (bits & 0x3FFF) + 1
        height = ((bits >> 14) & 0x3FFF) + 1
        return _valid(width, height)

    if chunk == b"VP8X":
        width = int.from_bytes(data[24:27], "little") + 1
        height = int.from_bytes(data[27:30], "little") + 1
        return _valid(width, height)

    return None


_MANUAL_PARSERS = {
    "image/png": parse_png_dimensions,
    "image/jpeg": parse_jpeg_dimensions,
    "image/jpg": parse_jpeg_dimensions,
    "image/gif": parse_gif_dimensions,
    "image/webp": parse_webp_dimensions,
}


def parse_dimensions_manually(data: bytes, mime_type: str) -> Optional[Dimensions]:
    """Read width/height from the image header without decoding it."""
    parser = _MANUAL_PARSERS.get((mime_type or "").lower())
    if parser is None:
        return None
    try:
        return parser(data)
    except struct.error as e:
        logger.debug(f"Truncated {mime_type} header: {e}")
        return None


# ============================================================================
# Decoder
# ============================================================================

def decode_dimensions(data: bytes) -> Optional[Dimensions]:
    """Image size as reported by Pillow; None when Pillow cannot identify the bytes."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.debug(f"Pillow could not read image header: {e}")
        return None
    return _valid(width, height)


def extract_dimensions(data: bytes, mime_type: str, use_decoder: bool = True) -> Optional[Dimensions]:
    """
    Pixel dimensions for image bytes.

    Args:
        data: Image payload
        mime_type: Sniffed MIME type
        use_decoder: When False the manual header parsers are used directly

    Returns:
        Dimensions, or None when absent or invalid
    """
    if not data or not mime_type or not mime_type.startswith("image/"):
        return None

    if use_decoder:
        dimensions = decode_dimensions(data)
        if dimensions:
            return dimensions
        logger.debug(f"Falling back to manual header parsing for {mime_type}")

    return parse_dimensions_manually(data, mime_type)


def parse_dimension_value(value) -> Optional[Dimensions]:
    """
    Dimensions declared in token metadata.

    Accepts ``{"width": w, "height": h}``, ``{"value": "WxH"}``,
    a ``"WxH"`` string or a ``[w, h]`` pair.
    """
    if value is None:
        return None
    if isinstance(value, Dimensions):
        return value
    if isinstance(value, dict):
        if "width" in value and "height" in value:
            return Dimensions.from_pair(value.get("width"), value.get("height"))
        if "value" in value:
            return parse_dimension_value(value.get("value"))
        return None
    if isinstance(value, str):
        parts = value.lower().replace(" ", "").split("x")
        if len(parts) == 2:
            return Dimensions.from_pair(parts[0], parts[1])
        return None
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return Dimensions.from_pair(value[0], value[1])
    return None