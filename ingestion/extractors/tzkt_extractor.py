"""
tzkt REST source adapter (Tezos).

Wallet listings page with an ``id.gt`` cursor over tzkt's internal ids.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import NotFound
from core.retry import RetryPolicy
from ingestion.base import SourceAdapter
from ingestion.transformers.chains import WRAPPED_TEZ_CONTRACT
from models.base import Blockchain, DataSource, IndexType
from schemas.sources import RawNFT, RawRef, TzktPayload

logger = logging.getLogger(__name__)


class TzktExtractor(SourceAdapter):
    source_name = DataSource.TZKT

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(client, policy=policy)
        self.base_url = (base_url or settings.TZKT_API_URL).rstrip("/")

    async def fetch_raw_nft(self, ref: RawRef) -> RawNFT:
        self._require_identity(ref, self.source_name)
        url = f"{self.base_url}/tokens"
        params = {"contract": ref.contract_address, "tokenId": ref.token_id, "limit": 1}

        logger.info(f"Fetching tzkt token {ref.describe()}")
        data = self._json(await self._request("GET", url, params=params), url)

        if not isinstance(data, list) or not data:
            raise NotFound(
                f"tzkt has no token {ref.describe()}",
                context=self._context(url, contract=ref.contract_address, token_id=ref.token_id),
            )

        payload = self._parse(TzktPayload, data[0], url)
        return RawNFT(
            source_name=self.source_name,
            contract_address=payload.contract.address or ref.contract_address,
            token_id=payload.token_id,
            blockchain=Blockchain.TEZOS.value,
            metadata_url=ref.metadata_url,
            payload=payload,
        )

    async def list_wallet_nfts(self, wallet, kind=IndexType.OWNED, max_items=None) -> List[RawRef]:
        if kind == IndexType.CREATED:
            url = f"{self.base_url}/tokens"
            base_params: Dict[str, Any] = {"firstMinter": wallet}
        else:
            url = f"{self.base_url}/tokens/balances"
            base_params = {"account": wallet, "balance.gt": 0}

        limit = settings.PAGE_SIZE
        refs: List[RawRef] = []
        cursor = None

        while True:
            params = {**base_params, "sort.asc": "id", "limit": limit}
            if cursor is not None:
                params["id.gt"] = cursor

            rows = self._json(await self._request("GET", url, params=params), url)
            if not isinstance(rows, list) or not rows:
                break

            for row in rows:
                token = row if kind == IndexType.CREATED else row.get("token") or {}
                contract = (token.get("contract") or {}).get("address")
                if not contract or contract == WRAPPED_TEZ_CONTRACT or token.get("tokenId") is None:
                    continue
                refs.append(RawRef(
                    contract_address=contract,
                    token_id=str(token["tokenId"]),
                    blockchain=Blockchain.TEZOS.value,
                    title=(token.get("metadata") or {}).get("name"),
                    index_type=kind,
                ))
                if max_items and len(refs) >= max_items:
                    return refs

            cursor = rows[-1].get("id")
            if len(rows) < limit or cursor is None:
                break

        logger.info(f"Listed {len(refs)} tzkt tokens for {wallet}")
        return refs
