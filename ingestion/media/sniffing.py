"""
MIME detection from content bytes.

Marketplaces regularly mislabel media (PNG served as application/octet-stream,
MP4 announced as image/gif), so the declared Content-Type is only used when
the magic bytes are inconclusive.
"""

from typing import Optional


def sniff_mime(data: bytes, declared: Optional[str] = None) -> Optional[str]:
    """
    Detect a MIME type from leading bytes.

    Args:
        data: Payload (only the first few hundred bytes are inspected)
        declared: Content-Type header or source-declared type, used as a fallback

    Returns:
        Detected MIME type, the declared type, or None
    """
    head = data[:512] if data else b""

    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head[:2] == b"BM":
        return "image/bmp"
    if head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand in (b"avif", b"avis"):
            return "image/avif"
        if brand == b"qt  ":
            return "video/quicktime"
        return "video/mp4"
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm" if b"webm" in head[:64] else "video/x-matroska"
    if head.startswith(b"OggS"):
        return "video/ogg"
    if head.startswith(b"%PDF-"):
        return "application/pdf"
    if head.startswith(b"glTF"):
        return "model/gltf-binary"

    text = head.lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    if text.startswith(b"<svg") or (text.startswith(b"<?xml") and b"<svg" in text):
        return "image/svg+xml"
    if text.startswith(b"<!doctype html") or text.startswith(b"<html"):
        return "text/html"

    if declared:
        declared = declared.split(";", 1)[0].strip().lower()
        return declared or None
    return None


def is_supported_media(mime_type: Optional[str]) -> bool:
    """Only images and videos are re-hosted."""
    return bool(mime_type) and (mime_type.startswith("image/") or mime_type.startswith("video/"))
