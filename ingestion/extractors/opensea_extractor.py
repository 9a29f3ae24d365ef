"""
OpenSea REST (v2) source adapter.

- Token lookup: /chain/{chain}/contract/{contract}/nfts/{identifier}
- Wallet listing: /chain/{chain}/account/{wallet}/nfts, following the ``next`` cursor
- Enrichment: /collections/{slug}, /accounts/{address} and the token's transfer
  events (/events/chain/{chain}/contract/{contract}/nfts/{identifier}) for the mint date
"""

import logging
from typing import List, Optional

import httpx

from core.config import settings
from core.exceptions import MalformedSource, NotFound, SourceError
from core.retry import RetryPolicy
from ingestion.base import SourceAdapter
from models.base import DataSource, IndexType
from schemas.sources import OpenSeaAccount, OpenSeaCollection, OpenSeaPayload, RawNFT, RawRef

logger = logging.getLogger(__name__)

OPENSEA_PAGE_LIMIT = 200
EVENTS_PAGE_LIMIT = 50
EVENTS_MAX_PAGES = 10

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class OpenSeaExtractor(SourceAdapter):
    """
    Attributes:
        api_key: Sent as X-API-KEY
        base_url: API root
        enrich: Fetch creator profile, collection details and mint date for each token
    """

    source_name = DataSource.OPENSEA

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        enrich: bool = True,
        policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(client, policy=policy)
        self.api_key = api_key or settings.OPENSEA_API_KEY
        self.base_url = (base_url or settings.OPENSEA_API_URL).rstrip("/")
        self.enrich = enrich

    @property
    def headers(self):
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key
        return headers

    async def fetch_raw_nft(self, ref: RawRef) -> RawNFT:
        self._require_identity(ref, self.source_name)
        chain = (ref.blockchain or "ethereum").lower()
        url = f"{self.base_url}/chain/{chain}/contract/{ref.contract_address}/nfts/{ref.token_id}"

        logger.info(f"Fetching OpenSea NFT {ref.describe()} on {chain}")
        data = self._json(await self._request("GET", url, headers=self.headers), url)

        nft = data.get("nft") if isinstance(data, dict) else None
        if not nft:
            raise NotFound(
                f"OpenSea returned no NFT for {ref.describe()}",
                context=self._context(url),
            )

        payload = self._parse(OpenSeaPayload, {**nft, "chain": chain}, url)

        if self.enrich:
            await self._enrich(payload)

        return RawNFT(
            source_name=self.source_name,
            contract_address=payload.contract.lower(),
            token_id=payload.identifier,
            blockchain=chain,
            metadata_url=payload.metadata_url or ref.metadata_url,
            payload=payload,
        )

    async def _enrich(self, payload: OpenSeaPayload):
        """Creator profile, collection details and mint date; failures only cost the extra fields."""
        if payload.creator:
            try:
                payload.creator_profile = await self.fetch_account(payload.creator)
            except SourceError as e:
                logger.warning(f"Creator profile lookup failed for {payload.creator}: {e.message}")

        if payload.collection:
            try:
                payload.collection_details = await self.fetch_collection(payload.collection)
            except SourceError as e:
                logger.warning(f"Collection lookup failed for {payload.collection}: {e.message}")

        try:
            payload.mint_timestamp = await self.fetch_mint_timestamp(
                payload.chain or "ethereum", payload.contract, payload.identifier
            )
        except (SourceError, MalformedSource) as e:
            logger.warning(f"Mint date lookup failed for {payload.contract}:{payload.identifier}: {e.message}")

    async def fetch_collection(self, slug: str) -> OpenSeaCollection:
        url = f"{self.base_url}/collections/{slug}"
        data = self._json(await self._request("GET", url, headers=self.headers), url)
        return self._parse(OpenSeaCollection, data, url)

    async def fetch_account(self, address: str) -> OpenSeaAccount:
        url = f"{self.base_url}/accounts/{address}"
        data = self._json(await self._request("GET", url, headers=self.headers), url)
        if not isinstance(data, dict):
            data = {}

        socials = {}
        for account in data.get("social_media_accounts") or []:
            if isinstance(account, dict) and account.get("platform") and account.get("username"):
                socials[account["platform"].lower()] = account["username"]

        return self._parse(OpenSeaAccount, {
            **data,
            "twitter": socials.get("twitter") or socials.get("x"),
            "instagram": socials.get("instagram"),
        }, url)

    async def fetch_mint_timestamp(self, chain: str, contract: str, identifier: str) -> Optional[int]:
        """
        Unix seconds of the token's mint.

        Pages the transfer events and takes the earliest transfer out of the
        zero address, falling back to the earliest transfer of any kind.
        None when the token has no transfer events.
        """
        url = f"{self.base_url}/events/chain/{chain}/contract/{contract}/nfts/{identifier}"
        transfers = []
        cursor = None

        for _ in range(EVENTS_MAX_PAGES):
            params = {"event_type": "transfer", "limit": EVENTS_PAGE_LIMIT}
            if cursor:
                params["next"] = cursor

            data = self._json(await self._request("GET", url, headers=self.headers, params=params), url)
            if not isinstance(data, dict):
                break

            for event in data.get("asset_events") or []:
                if not isinstance(event, dict) or event.get("event_type", "transfer") != "transfer":
                    continue
                try:
                    timestamp = int(event.get("event_timestamp"))
                except (TypeError, ValueError):
                    continue
                transfers.append((timestamp, event.get("from_address")))

            cursor = data.get("next")
            if not cursor:
                break

        if not transfers:
            return None

        mints = [ts for ts, sender in transfers if not sender or sender.lower() == ZERO_ADDRESS]
        return min(mints) if mints else min(ts for ts, _ in transfers)

    async def list_wallet_nfts(self, wallet, kind=IndexType.OWNED, max_items=None, chain: str = "ethereum") -> List[RawRef]:
        # The account endpoint lists holdings only; it cannot tell created tokens apart
        if IndexType(kind) != IndexType.OWNED:
            raise NotImplementedError("opensea can only list the NFTs a wallet owns")

        url = f"{self.base_url}/chain/{chain}/account/{wallet}/nfts"
        limit = min(settings.PAGE_SIZE, OPENSEA_PAGE_LIMIT)
        refs: List[RawRef] = []
        cursor = None
        page = 1

        while True:
            params = {"limit": limit}
            if cursor:
                params["next"] = cursor

            logger.info(f"Fetching OpenSea page {page} for {wallet}")
            data = self._json(await self._request("GET", url, headers=self.headers, params=params), url)

            for nft in data.get("nfts") or []:
                if not nft.get("contract") or nft.get("identifier") is None:
                    continue
                refs.append(RawRef(
                    contract_address=nft["contract"].lower(),
                    token_id=str(nft["identifier"]),
                    blockchain=chain,
                    metadata_url=nft.get("metadata_url"),
                    title=nft.get("name"),
                    index_type=kind,
                ))
                if max_items and len(refs) >= max_items:
                    return refs

            cursor = data.get("next")
            if not cursor:
                break
            page += 1

        logger.info(f"Listed {len(refs)} OpenSea NFTs for {wallet} ({page} pages)")
        return refs
