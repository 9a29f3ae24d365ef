"""
Media resolution and re-hosting.

For every media reference of a normalized artwork:
- data: URIs pass through untouched
- IPFS/Arweave/onchfs URIs are rewritten to a gateway
- bytes are downloaded with bounded retries, a per-attempt timeout and a byte cap
- the MIME type is sniffed from the bytes
- image dimensions are read (Pillow, manual header parsing as fallback)
- the bytes are uploaded to the hosting provider, unless a copy with the
  same mediaHash tag is already hosted
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx

from core.config import settings
from core.exceptions import (
    MediaError,
    MediaFetchError,
    MediaTooLarge,
    UnsupportedMediaType,
)
from core.retry import RetryPolicy, retry_async
from ingestion.media.dimensions import extract_dimensions
from ingestion.media.hosting import HostingProvider
from ingestion.media.sniffing import is_supported_media, sniff_mime
from ingestion.media.tags import generate_file_name, generate_tags
from ingestion.media.uris import (
    base_name_from_uri,
    is_data_uri,
    is_http_url,
    mime_from_data_uri,
    rewrite_uri,
)
from schemas.normalized import Dimensions, NormalizedArtwork

logger = logging.getLogger(__name__)


@dataclass
class MediaContext:
    """Where a media reference came from."""
    field: str = "image"
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    gateway: Optional[str] = None


@dataclass
class ResolvedMedia:
    url: str
    mime_type: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    tags: List[str] = field(default_factory=list)
    source_url: Optional[str] = None
    reused: bool = False


class MediaResolver:
    """
    Resolves and re-hosts media references.

    Attributes:
        client: Shared HTTP client
        hosting: Hosting provider; when None the gateway URL is kept as the final URL
        policy: Retry policy for downloads (timeout applies per attempt)
        max_bytes: Download cap
        use_decoder: Use Pillow for dimensions before the manual parsers
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        hosting: Optional[HostingProvider] = None,
        policy: Optional[RetryPolicy] = None,
        max_bytes: Optional[int] = None,
        ipfs_gateway: Optional[str] = None,
        use_decoder: Optional[bool] = None,
    ):
        self.client = client
        self.hosting = hosting
        self.policy = policy or RetryPolicy.from_settings(timeout=settings.MEDIA_TIMEOUT)
        self.max_bytes = max_bytes or settings.MAX_MEDIA_BYTES
        self.ipfs_gateway = ipfs_gateway or settings.IPFS_GATEWAY
        self.use_decoder = settings.USE_IMAGE_DECODER if use_decoder is None else use_decoder

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def _download_once(self, url: str) -> Tuple[bytes, Optional[str]]:
        try:
            async with self.client.stream("GET", url, follow_redirects=True) as response:
                if response.status_code >= 400:
                    raise MediaFetchError(
                        f"HTTP {response.status_code} fetching media",
                        context={"url": url, "status_code": response.status_code},
                    )

                declared_length = response.headers.get("Content-Length")
                if declared_length and declared_length.isdigit() and int(declared_length) > self.max_bytes:
                    raise MediaTooLarge(
                        f"Media is {declared_length} bytes, cap is {self.max_bytes}",
                        context={"url": url, "max_bytes": self.max_bytes},
                    )

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise MediaTooLarge(
                            f"Media exceeded {self.max_bytes} bytes while streaming",
                            context={"url": url, "max_bytes": self.max_bytes},
                        )
                    chunks.append(chunk)

                return b"".join(chunks), response.headers.get("Content-Type")

        except httpx.HTTPError as e:
            raise MediaFetchError(
                f"Network error fetching media: {type(e).__name__}",
                context={"url": url},
                original_exception=e,
            )

    async def fetch_bytes(self, url: str) -> Tuple[bytes, Optional[str]]:
        """
        Download ``url`` with bounded retries.

        Raises:
            MediaFetchError: Timeout or non-2xx after all attempts
            MediaTooLarge: Payload over the byte cap (not retried)
        """
        try:
            return await retry_async(
                lambda: self._download_once(url),
                self.policy,
                label=f"media {url}",
            )
        except asyncio.TimeoutError as e:
            raise MediaFetchError(
                f"Media download timed out after {self.policy.max_attempts} attempts",
                context={"url": url, "timeout": self.policy.timeout, "attempts": self.policy.max_attempts},
                original_exception=e,
            )
        except MediaFetchError as e:
            e.context["attempts"] = self.policy.max_attempts
            raise

    # ------------------------------------------------------------------
    # Single reference
    # ------------------------------------------------------------------

    async def resolve_media(self, uri: str, context: Optional[MediaContext] = None) -> ResolvedMedia:
        """
        Resolve one media reference to a stable URL.

        Raises:
            MediaFetchError: Download or upload failed after retries
            UnsupportedMediaType: Bytes are not an image or a video
            MediaTooLarge: Payload over the byte cap
        """
        context = context or MediaContext()

        if is_data_uri(uri):
            return ResolvedMedia(url=uri, mime_type=mime_from_data_uri(uri), source_url=uri)

        url = rewrite_uri(uri, context.gateway or self.ipfs_gateway)
        if not is_http_url(url):
            raise UnsupportedMediaType(
                f"Cannot fetch media from URI scheme of {uri}",
                context={"uri": uri, "field": context.field},
            )

        data, declared = await self.fetch_bytes(url)
        mime_type = sniff_mime(data, declared)
        if not is_supported_media(mime_type):
            raise UnsupportedMediaType(
                f"Unsupported media type {mime_type} for {context.field}",
                context={"url": url, "mime_type": mime_type, "field": context.field},
            )

        dimensions = None
        if mime_type.startswith("image/"):
            dimensions = extract_dimensions(data, mime_type, use_decoder=self.use_decoder)

        if self.hosting is None:
            return ResolvedMedia(url=url, mime_type=mime_type, dimensions=dimensions, source_url=uri)

        base_name = base_name_from_uri(url)
        tags = generate_tags(base_name, mime_type, context.contract_address, context.token_id)

        existing = await self.hosting.find_by_tag(tags[0])
        if existing:
            logger.info(f"Reusing hosted copy of {url} ({tags[0]})")
            return ResolvedMedia(
                url=existing, mime_type=mime_type, dimensions=dimensions,
                tags=tags, source_url=uri, reused=True,
            )

        filename = generate_file_name(base_name, mime_type)
        uploaded = await self.hosting.upload(data, filename, mime_type, tags=tags)

        return ResolvedMedia(
            url=uploaded["url"], mime_type=mime_type, dimensions=dimensions,
            tags=tags, source_url=uri,
        )

    # ------------------------------------------------------------------
    # Whole artwork
    # ------------------------------------------------------------------

    async def _resolve_optional(self, uri: Optional[str], context: MediaContext) -> Optional[ResolvedMedia]:
        """Resolve a non-blocking media field; failures leave it unset."""
        if not uri:
            return None
        try:
            return await self.resolve_media(uri, context)
        except MediaError as e:
            logger.warning(f"Leaving {context.field} unset for {uri}: {e.message}")
            return None

    async def resolve_artwork_media(self, artwork: NormalizedArtwork, gateway: Optional[str] = None) -> NormalizedArtwork:
        """
        Resolve every media reference of ``artwork``.

        The static image is required to resolve when it is fetchable:
        MediaFetchError propagates so the item can be retried later. An
        unsupported image type only unsets the image. Animation and
        thumbnail failures never block the artwork. Generator URLs point at
        interactive HTML and are only rewritten, never downloaded.
        """
        def context_for(name: str) -> MediaContext:
            return MediaContext(
                field=name,
                contract_address=artwork.contract_address,
                token_id=artwork.token_id,
                gateway=gateway,
            )

        updates = {}

        image = None
        if artwork.image_url:
            try:
                image = await self.resolve_media(artwork.image_url, context_for("image"))
            except (UnsupportedMediaType, MediaTooLarge) as e:
                logger.warning(f"Leaving image unset for {artwork.image_url}: {e.message}")
            updates["image_url"] = image.url if image else None

        animation = await self._resolve_optional(artwork.animation_url, context_for("animation"))
        if artwork.animation_url:
            updates["animation_url"] = animation.url if animation else None

        thumbnail = await self._resolve_optional(artwork.thumbnail_url, context_for("thumbnail"))
        if artwork.thumbnail_url:
            updates["thumbnail_url"] = thumbnail.url if thumbnail else None

        if artwork.generator_url:
            updates["generator_url"] = rewrite_uri(artwork.generator_url, gateway or self.ipfs_gateway)

        if not artwork.is_generative:
            primary = animation or image
            if primary and primary.mime_type:
                updates["mime"] = primary.mime_type

        if image and image.dimensions:
            updates["dimensions"] = image.dimensions

        return artwork.model_copy(update=updates)
