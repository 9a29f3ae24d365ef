"""
Media URI rewriting.

Decentralized storage URIs (ipfs://, ar://, onchfs://, bare /ipfs/ paths)
are rewritten to HTTP gateway URLs. http(s) and data: URIs pass through.
"""

from typing import Optional
from core.config import settings


def _with_slash(gateway: str) -> str:
    return gateway if gateway.endswith("/") else gateway + "/"


def is_data_uri(uri: Optional[str]) -> bool:
    return bool(uri) and uri.strip().lower().startswith("data:")


def is_http_url(uri: Optional[str]) -> bool:
    if not uri:
        return False
    lowered = uri.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def mime_from_data_uri(uri: str) -> Optional[str]:
    """``data:image/png;base64,...`` -> ``image/png``"""
    header = uri.strip()[5:].split(",", 1)[0]
    mime = header.split(";", 1)[0].strip().lower()
    return mime or None


def rewrite_uri(uri: Optional[str], ipfs_gateway: Optional[str] = None) -> Optional[str]:
    """
    Rewrite a media or metadata URI to something fetchable over HTTP.

    Args:
        uri: Source URI as found in the payload
        ipfs_gateway: Per-call gateway override (defaults to settings.IPFS_GATEWAY)

    Returns:
        The rewritten URI, the untouched URI for http(s)/data:, or None for blanks
    """
    if uri is None:
        return None
    uri = uri.strip()
    if not uri:
        return None

    if is_data_uri(uri) or is_http_url(uri):
        return uri

    gateway = _with_slash(ipfs_gateway or settings.IPFS_GATEWAY)
    lowered = uri.lower()

    if lowered.startswith("ipfs://"):
        path = uri[len("ipfs://"):]
        # ipfs://ipfs/<cid> shows up in older metadata
        if path.lower().startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return gateway + path.lstrip("/")

    if lowered.startswith("ar://"):
        return _with_slash(settings.ARWEAVE_GATEWAY) + uri[len("ar://"):].lstrip("/")

    if lowered.startswith("onchfs://"):
        return _with_slash(settings.ONCHFS_GATEWAY) + uri[len("onchfs://"):].lstrip("/")

    if "/ipfs/" in uri:
        return gateway + uri.split("/ipfs/", 1)[1].lstrip("/")

    return uri


def base_name_from_uri(uri: str) -> str:
    """Last meaningful path segment of a URI, used to name re-hosted files."""
    if is_data_uri(uri):
        return "inline"
    path = uri.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    segment = path.rsplit("/", 1)[-1]
    if "." in segment:
        segment = segment.rsplit(".", 1)[0]
    return segment or "media"
