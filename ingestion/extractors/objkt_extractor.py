"""
objkt GraphQL source adapter (Tezos).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.exceptions import NotFound, SourceUnavailable
from core.retry import RetryPolicy
from ingestion.base import SourceAdapter
from ingestion.transformers.chains import WRAPPED_TEZ_CONTRACT
from models.base import Blockchain, DataSource, IndexType
from schemas.sources import ObjktPayload, RawNFT, RawRef

logger = logging.getLogger(__name__)

OBJKT_PAGE_LIMIT = 500

TOKEN_FIELDS = """
    token_id
    fa_contract
    name
    description
    artifact_uri
    display_uri
    thumbnail_uri
    mime
    symbol
    supply
    metadata
    timestamp
    attributes { attribute { name value } }
    fa { contract name description website logo }
    creators {
        creator_address
        holder { address alias logo description website twitter instagram }
    }
"""

TOKEN_QUERY = """
query Token($contract: String!, $tokenId: String!) {
    token(where: {fa_contract: {_eq: $contract}, token_id: {_eq: $tokenId}}) {
        %s
    }
}
""" % TOKEN_FIELDS

CREATED_QUERY = """
query Created($address: String!, $limit: Int!, $offset: Int!, $excluded: String!) {
    token(
        where: {creators: {creator_address: {_eq: $address}}, fa_contract: {_neq: $excluded}}
        order_by: {timestamp: desc}
        limit: $limit
        offset: $offset
    ) {
        token_id
        fa_contract
        name
        metadata
    }
}
"""

OWNED_QUERY = """
query Owned($address: String!, $limit: Int!, $offset: Int!, $excluded: String!) {
    token_holder(
        where: {holder_address: {_eq: $address}, quantity: {_gt: "0"}, token: {fa_contract: {_neq: $excluded}}}
        order_by: {last_incremented_at: desc}
        limit: $limit
        offset: $offset
    ) {
        token { token_id fa_contract name metadata }
    }
}
"""


class ObjktExtractor(SourceAdapter):
    """Tokens, creators and contract details from the objkt GraphQL API."""

    source_name = DataSource.OBJKT

    def __init__(
        self,
        client: httpx.AsyncClient,
        graphql_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        super().__init__(client, policy=policy)
        self.graphql_url = graphql_url or settings.OBJKT_GRAPHQL_URL

    async def _query(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", self.graphql_url, json={"query": query, "variables": variables})
        body = self._json(response, self.graphql_url)

        if not isinstance(body, dict):
            raise SourceUnavailable(
                "objkt returned a non-object GraphQL response",
                context=self._context(self.graphql_url),
            )
        if body.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in body["errors"] if isinstance(err, dict))
            raise SourceUnavailable(
                f"objkt GraphQL error: {messages or body['errors']}",
                context=self._context(self.graphql_url, variables=variables),
            )
        return body.get("data") or {}

    async def fetch_raw_nft(self, ref: RawRef) -> RawNFT:
        self._require_identity(ref, self.source_name)
        logger.info(f"Fetching objkt token {ref.describe()}")

        data = await self._query(TOKEN_QUERY, {"contract": ref.contract_address, "tokenId": ref.token_id})
        tokens = data.get("token") or []
        if not tokens:
            raise NotFound(
                f"objkt has no token {ref.describe()}",
                context=self._context(self.graphql_url, contract=ref.contract_address, token_id=ref.token_id),
            )

        payload = self._parse(ObjktPayload, tokens[0], self.graphql_url)
        return RawNFT(
            source_name=self.source_name,
            contract_address=payload.contract_address or ref.contract_address,
            token_id=payload.token_id,
            blockchain=Blockchain.TEZOS.value,
            metadata_url=payload.metadata or ref.metadata_url,
            payload=payload,
        )

    async def list_wallet_nfts(self, wallet, kind=IndexType.OWNED, max_items=None) -> List[RawRef]:
        query = CREATED_QUERY if kind == IndexType.CREATED else OWNED_QUERY
        refs: List[RawRef] = []
        offset = 0

        while True:
            variables = {
                "address": wallet,
                "limit": OBJKT_PAGE_LIMIT,
                "offset": offset,
                "excluded": WRAPPED_TEZ_CONTRACT,
            }
            logger.info(f"Fetching objkt {kind.value} tokens for {wallet} (offset {offset})")
            data = await self._query(query, variables)

            if kind == IndexType.CREATED:
                page = data.get("token") or []
            else:
                page = [row.get("token") for row in data.get("token_holder") or [] if row.get("token")]

            for token in page:
                contract = token.get("fa_contract")
                if not contract or contract == WRAPPED_TEZ_CONTRACT or token.get("token_id") is None:
                    continue
                refs.append(RawRef(
                    contract_address=contract,
                    token_id=str(token["token_id"]),
                    blockchain=Blockchain.TEZOS.value,
                    metadata_url=token.get("metadata"),
                    title=token.get("name"),
                    index_type=kind,
                ))
                if max_items and len(refs) >= max_items:
                    return refs

            # A full page means there may be more
            if len(page) < OBJKT_PAGE_LIMIT:
                break
            offset += OBJKT_PAGE_LIMIT

        logger.info(f"Listed {len(refs)} objkt tokens for {wallet}")
        return refs
