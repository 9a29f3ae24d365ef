"""
Raw metadata URL source and the off-chain metadata fetcher.

MetadataUrlExtractor does no I/O: the caller already supplied the identity
hints and the document URL, so it only wraps them into a RawNFT. The
document itself is fetched by OffchainMetadataFetcher, which every source
shares.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Optional
from urllib.parse import unquote_to_bytes

import httpx
from pydantic import ValidationError

from core.config import settings
from core.exceptions import IngestionException, MalformedSource, SourceUnavailable
from core.retry import RETRY_ON, RetryPolicy, retry_async
from ingestion.base import SourceAdapter
from ingestion.media.uris import is_data_uri, is_http_url, rewrite_uri
from ingestion.transformers.chains import detect_blockchain
from models.base import DataSource
from schemas.sources import MetadataUrlPayload, OffchainMetadata, RawNFT, RawRef

logger = logging.getLogger(__name__)


class MetadataUrlExtractor(SourceAdapter):
    source_name = DataSource.METADATA_URL

    async def fetch_raw_nft(self, ref: RawRef) -> RawNFT:
        if not ref.metadata_url and not (ref.contract_address and ref.token_id) and not ref.title:
            raise MalformedSource(
                "Metadata URL import needs a metadata URL, a contract address + token id, or a title",
                context={"source": self.source_name.value, "ref": ref.describe()},
            )

        blockchain = ref.blockchain or detect_blockchain(ref.contract_address)
        payload = MetadataUrlPayload(
            contract_address=ref.contract_address,
            token_id=ref.token_id,
            title=ref.title,
            blockchain=blockchain,
        )
        return RawNFT(
            source_name=self.source_name,
            contract_address=ref.contract_address,
            token_id=ref.token_id,
            blockchain=blockchain,
            metadata_url=ref.metadata_url,
            payload=payload,
        )


def decode_data_uri_json(uri: str) -> Any:
    """
    Parse the JSON body of a ``data:application/json[;base64],...`` URI.

    Raises:
        ValueError: Body is not decodable JSON
    """
    header, _, body = uri.partition(",")
    try:
        if header.lower().endswith(";base64"):
            raw = base64.b64decode(body, validate=False)
        else:
            raw = unquote_to_bytes(body)
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Undecodable data URI: {e}") from e


class OffchainMetadataFetcher:
    """
    Fetches the JSON document a token's metadata URL points to.

    Every failure is soft: unreachable hosts, non-2xx responses, non-JSON
    bodies and documents of the wrong shape are logged and reported as
    missing metadata (None).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        ipfs_gateway: Optional[str] = None,
    ):
        self.client = client
        self.policy = policy or RetryPolicy.from_settings()
        self.ipfs_gateway = ipfs_gateway or settings.IPFS_GATEWAY

    async def _get_json(self, url: str) -> Any:
        async def attempt():
            response = await self.client.get(url, follow_redirects=True)
            if response.status_code >= 500:
                raise SourceUnavailable(
                    f"Metadata host returned {response.status_code}",
                    context={"url": url, "status_code": response.status_code},
                )
            response.raise_for_status()
            return response

        response = await retry_async(
            attempt,
            self.policy,
            label=f"metadata {url}",
            retry_on=(httpx.TransportError,) + RETRY_ON,
        )
        return response.json()

    async def fetch(self, metadata_url: Optional[str], gateway: Optional[str] = None) -> Optional[OffchainMetadata]:
        if not metadata_url:
            return None

        try:
            if is_data_uri(metadata_url):
                document = decode_data_uri_json(metadata_url)
            else:
                url = rewrite_uri(metadata_url, gateway or self.ipfs_gateway)
                if not is_http_url(url):
                    logger.warning(f"Skipping metadata with unsupported URI scheme: {metadata_url}")
                    return None
                document = await self._get_json(url)
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError, IngestionException) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"Off-chain metadata unavailable for {metadata_url}: {type(e).__name__}: {e}")
            return None

        if not isinstance(document, dict):
            logger.warning(f"Off-chain metadata at {metadata_url} is not a JSON object")
            return None

        try:
            return OffchainMetadata.model_validate(document)
        except ValidationError as e:
            logger.warning(f"Off-chain metadata at {metadata_url} has an unexpected shape: {e.error_count()} errors")
            return None
