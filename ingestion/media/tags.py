"""
File naming and content tags for re-hosted media.
"""

import hashlib
import re
from typing import List, Optional

MAX_TAGS = 6

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/avif": ".avif",
    "image/bmp": ".bmp",
    "image/svg+xml": ".svg",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "video/x-matroska": ".mkv",
    "video/ogg": ".ogv",
    "application/pdf": ".pdf",
    "text/html": ".html",
}


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def extension_from_mime_type(mime_type: Optional[str]) -> str:
    return MIME_EXTENSIONS.get((mime_type or "").lower(), "")


def media_hash(base_name: str, mime_type: str) -> str:
    return _sha256(f"{base_name}::{mime_type}")


def generate_tags(
    base_name: str,
    mime_type: str,
    contract_address: Optional[str] = None,
    token_id: Optional[str] = None,
) -> List[str]:
    """
    Content tags used for dedup and classification on the hosting provider.

    The first tag is always ``mediaHash:<sha256(base_name::mime_type)>``.
    Never more than MAX_TAGS entries.
    """
    tags = [f"mediaHash:{media_hash(base_name, mime_type)}"]

    if contract_address:
        tags.append(f"contractAddr:{contract_address}")
    if token_id:
        tags.append(f"tokenID:{token_id}")
    if contract_address and token_id:
        tags.append(f"tezos:{contract_address}_{token_id}")

    return tags[:MAX_TAGS]


def tags_to_string(tags: List[str]) -> str:
    return ",".join(tags[:MAX_TAGS])


def sanitize_name(name: str) -> str:
    name = re.sub(r"[#?&]", "", name or "")
    name = re.sub(r"[^a-zA-Z0-9\-_]", "_", name)
    name = re.sub(r"_+", "_", name)
    return name.strip("_")


def generate_file_name(base_name: str, mime_type: Optional[str] = None) -> str:
    """``<sanitized base name>_<first 8 hex of sha256(base name)><ext>``"""
    sanitized = sanitize_name(base_name) or "media"
    return f"{sanitized}_{_sha256(base_name)[:8]}{extension_from_mime_type(mime_type)}"
