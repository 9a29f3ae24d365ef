"""
Explicit pipeline context.

Everything the import pipeline touches (session factory, HTTP client,
hosting provider, source adapters) lives on one object that is built at the
entry point and passed down, so tests can swap any part for a fake.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from core.retry import RetryPolicy
from ingestion.base import SourceAdapter
from ingestion.extractors.metadata_extractor import MetadataUrlExtractor, OffchainMetadataFetcher
from ingestion.extractors.objkt_extractor import ObjktExtractor
from ingestion.extractors.opensea_extractor import OpenSeaExtractor
from ingestion.extractors.tzkt_extractor import TzktExtractor
from ingestion.media.hosting import HostingProvider, HttpHostingProvider
from ingestion.media.resolver import MediaResolver
from ingestion.transformers.normalizer import MetadataNormalizer
from models.base import DataSource

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """
    Attributes:
        session_maker: Factory for per-item database sessions
        http_client: Shared client for every upstream call
        adapters: Source adapters keyed by data source
        normalizer: Metadata normalizer
        media: Media resolver (owns the hosting provider)
        metadata_fetcher: Off-chain metadata fetcher
        concurrency: Max items in flight per batch
    """

    session_maker: async_sessionmaker
    http_client: httpx.AsyncClient
    adapters: Dict[DataSource, SourceAdapter]
    normalizer: MetadataNormalizer
    media: MediaResolver
    metadata_fetcher: OffchainMetadataFetcher
    concurrency: int = 8
    owns_client: bool = field(default=False, repr=False)

    @property
    def hosting(self) -> Optional[HostingProvider]:
        return self.media.hosting

    def adapter_for(self, source) -> SourceAdapter:
        """
        Raises:
            KeyError: No adapter registered for ``source``
        """
        return self.adapters[DataSource(source)]

    @classmethod
    def build(
        cls,
        session_maker: async_sessionmaker,
        http_client: httpx.AsyncClient,
        hosting: Optional[HostingProvider] = None,
        policy: Optional[RetryPolicy] = None,
        media_policy: Optional[RetryPolicy] = None,
        concurrency: Optional[int] = None,
        ipfs_gateway: Optional[str] = None,
        use_decoder: Optional[bool] = None,
        opensea_api_key: Optional[str] = None,
    ) -> "PipelineContext":
        """Wire the default adapters, normalizer, resolver and fetcher around a client."""
        gateway = ipfs_gateway or settings.IPFS_GATEWAY
        adapters = {
            DataSource.OPENSEA: OpenSeaExtractor(http_client, api_key=opensea_api_key, policy=policy),
            DataSource.OBJKT: ObjktExtractor(http_client, policy=policy),
            DataSource.TZKT: TzktExtractor(http_client, policy=policy),
            DataSource.METADATA_URL: MetadataUrlExtractor(http_client, policy=policy),
        }
        return cls(
            session_maker=session_maker,
            http_client=http_client,
            adapters=adapters,
            normalizer=MetadataNormalizer(ipfs_gateway=gateway),
            media=MediaResolver(
                http_client,
                hosting=hosting,
                policy=media_policy,
                ipfs_gateway=gateway,
                use_decoder=use_decoder,
            ),
            metadata_fetcher=OffchainMetadataFetcher(http_client, policy=policy, ipfs_gateway=gateway),
            concurrency=concurrency or settings.IMPORT_CONCURRENCY,
        )

    @classmethod
    def from_settings(cls, session_maker: Optional[async_sessionmaker] = None) -> "PipelineContext":
        """Production context: own HTTP client, hosting provider from settings."""
        if session_maker is None:
            from core.database import async_session_maker
            session_maker = async_session_maker

        client = httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT,
            headers={"User-Agent": "nft-ingestion/1.0"},
        )

        hosting = None
        if settings.HOSTING_UPLOAD_URL:
            hosting = HttpHostingProvider(
                client,
                upload_url=settings.HOSTING_UPLOAD_URL,
                api_token=settings.HOSTING_API_TOKEN,
                public_gateway=settings.HOSTING_PUBLIC_GATEWAY,
                search_url=settings.HOSTING_SEARCH_URL,
                policy=RetryPolicy.from_settings(timeout=settings.MEDIA_TIMEOUT),
            )
        else:
            logger.info("No hosting endpoint configured, media keeps gateway URLs")

        context = cls.build(session_maker, client, hosting=hosting)
        context.owns_client = True
        return context

    async def aclose(self):
        if self.owns_client:
            await self.http_client.aclose()
