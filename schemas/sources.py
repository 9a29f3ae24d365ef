"""
Pydantic schemas for upstream source payloads.

Each adapter parses its JSON into one of the payload models below right
away, so nothing past the adapter layer sees untyped dictionaries. The
payloads form a tagged union on ``source``.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Union, Literal
from models.base import DataSource, IndexType


class SourcePayload(BaseModel):
    class Config:
        extra = "ignore"
        populate_by_name = True


# ============================================================================
# OpenSea
# ============================================================================

class OpenSeaTrait(SourcePayload):
    trait_type: Optional[str] = None
    value: Any = None
    display_type: Optional[str] = None


class OpenSeaAccount(SourcePayload):
    address: Optional[str] = None
    username: Optional[str] = None
    profile_image_url: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None


class OpenSeaCollection(SourcePayload):
    collection: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    project_url: Optional[str] = None
    owner: Optional[str] = None
    total_supply: Optional[int] = None


class OpenSeaPayload(SourcePayload):
    source: Literal["opensea"] = "opensea"
    identifier: str
    contract: str
    chain: Optional[str] = "ethereum"
    token_standard: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_image_url: Optional[str] = None
    animation_url: Optional[str] = None
    display_animation_url: Optional[str] = None
    metadata_url: Optional[str] = None
    creator: Optional[str] = None
    collection: Optional[str] = None
    traits: List[OpenSeaTrait] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Filled by enrichment calls, absent from the token endpoint itself
    creator_profile: Optional[OpenSeaAccount] = None
    collection_details: Optional[OpenSeaCollection] = None
    # Unix seconds of the mint transfer, from the events endpoint
    mint_timestamp: Optional[int] = None

    @validator("identifier", pre=True)
    def identifier_to_str(cls, v):
        return str(v) if v is not None else v

    @validator("traits", pre=True)
    def clean_traits(cls, v):
        if not v:
            return []
        return [t for t in v if isinstance(t, dict)]


# ============================================================================
# objkt (Tezos GraphQL)
# ============================================================================

class ObjktHolder(SourcePayload):
    address: Optional[str] = None
    alias: Optional[str] = None
    logo: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    instagram: Optional[str] = None


class ObjktCreator(SourcePayload):
    creator_address: Optional[str] = None
    holder: Optional[ObjktHolder] = None


class ObjktContract(SourcePayload):
    contract: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None


class ObjktAttribute(SourcePayload):
    name: Optional[str] = None
    value: Any = None


class ObjktPayload(SourcePayload):
    source: Literal["objkt"] = "objkt"
    token_id: str
    fa_contract: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    artifact_uri: Optional[str] = None
    display_uri: Optional[str] = None
    thumbnail_uri: Optional[str] = None
    mime: Optional[str] = None
    symbol: Optional[str] = None
    supply: Optional[Any] = None
    metadata: Optional[str] = None
    timestamp: Optional[str] = None
    dimensions: Optional[Any] = None
    attributes: List[ObjktAttribute] = Field(default_factory=list)
    fa: Optional[ObjktContract] = None
    creators: List[ObjktCreator] = Field(default_factory=list)

    @validator("token_id", pre=True)
    def token_id_to_str(cls, v):
        return str(v) if v is not None else v

    @validator("attributes", pre=True)
    def flatten_attributes(cls, v):
        # objkt nests each trait as {attribute: {name, value}}
        if not v:
            return []
        flat = []
        for item in v:
            if isinstance(item, dict) and isinstance(item.get("attribute"), dict):
                flat.append(item["attribute"])
            elif isinstance(item, dict):
                flat.append(item)
        return flat

    @property
    def contract_address(self) -> Optional[str]:
        return self.fa_contract or (self.fa.contract if self.fa else None)


# ============================================================================
# tzkt (Tezos REST)
# ============================================================================

class TzktContract(SourcePayload):
    address: Optional[str] = None
    alias: Optional[str] = None


class TzktFormat(SourcePayload):
    uri: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")
    dimensions: Optional[Any] = None


class TzktTokenMetadata(SourcePayload):
    name: Optional[str] = None
    description: Optional[str] = None
    artifact_uri: Optional[str] = Field(None, alias="artifactUri")
    display_uri: Optional[str] = Field(None, alias="displayUri")
    thumbnail_uri: Optional[str] = Field(None, alias="thumbnailUri")
    symbol: Optional[str] = None
    creators: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    formats: List[TzktFormat] = Field(default_factory=list)
    attributes: List[Dict[str, Any]] = Field(default_factory=list)

    @validator("creators", "tags", pre=True)
    def string_list(cls, v):
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v if item]

    @validator("formats", "attributes", pre=True)
    def dict_list(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]


class TzktPayload(SourcePayload):
    source: Literal["tzkt"] = "tzkt"
    token_id: str = Field(..., alias="tokenId")
    contract: TzktContract
    standard: Optional[str] = None
    first_time: Optional[str] = Field(None, alias="firstTime")
    total_supply: Optional[Any] = Field(None, alias="totalSupply")
    metadata: Optional[TzktTokenMetadata] = None

    @validator("token_id", pre=True)
    def token_id_to_str(cls, v):
        return str(v) if v is not None else v


# ============================================================================
# Raw metadata URL
# ============================================================================

class MetadataUrlPayload(SourcePayload):
    source: Literal["metadata_url"] = "metadata_url"
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    title: Optional[str] = None
    blockchain: Optional[str] = None

    @validator("token_id", pre=True)
    def token_id_to_str(cls, v):
        return str(v) if v is not None else v


NFTPayload = Union[OpenSeaPayload, ObjktPayload, TzktPayload, MetadataUrlPayload]


# ============================================================================
# Import references and the common raw shape
# ============================================================================

class RawRef(BaseModel):
    """Caller-supplied reference to one NFT to import."""
    contract_address: Optional[str] = Field(None, max_length=128)
    token_id: Optional[str] = Field(None, max_length=128)
    blockchain: Optional[str] = None
    metadata_url: Optional[str] = Field(None, max_length=2048)
    title: Optional[str] = None
    index_type: Optional[IndexType] = None

    @validator("token_id", pre=True)
    def token_id_to_str(cls, v):
        return str(v) if v is not None else v

    @validator("contract_address", "metadata_url", "title", pre=True)
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def describe(self) -> str:
        return f"{self.contract_address or '?'}:{self.token_id or '?'}"


class RawNFT(BaseModel):
    """Source-tagged payload, alive only for the duration of one import."""
    source_name: DataSource
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    blockchain: Optional[str] = None
    metadata_url: Optional[str] = None
    payload: NFTPayload = Field(..., discriminator="source")

    @property
    def source_id(self) -> str:
        return f"{self.blockchain or 'unknown'}:{self.contract_address or 'unknown'}:{self.token_id or 'unknown'}"

    def snapshot(self) -> Dict[str, Any]:
        return self.payload.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Off-chain metadata document
# ============================================================================

class OffchainMetadata(SourcePayload):
    """
    JSON document referenced by a token's metadata URL.

    Covers the ERC-721/1155 metadata standard and Tezos TZIP-21 names.
    """
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    image_url: Optional[str] = None
    animation_url: Optional[str] = None
    generator_url: Optional[str] = None
    external_url: Optional[str] = None
    artifact_uri: Optional[str] = Field(None, alias="artifactUri")
    display_uri: Optional[str] = Field(None, alias="displayUri")
    thumbnail_uri: Optional[str] = Field(None, alias="thumbnailUri")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    attributes: Optional[Any] = None
    traits: Optional[Any] = None
    features: Optional[Dict[str, Any]] = None
    formats: List[TzktFormat] = Field(default_factory=list)
    dimensions: Optional[Any] = None
    created_by: Optional[str] = None
    artist: Optional[str] = None
    creators: List[str] = Field(default_factory=list)
    minted_at: Optional[Any] = None
    date: Optional[Any] = None

    @validator("name", "description", "image", "image_url", "animation_url", "created_by", "artist", pre=True)
    def only_strings(cls, v):
        # Some collections put objects or numbers where strings belong
        return v if isinstance(v, str) else None

    @validator("creators", pre=True)
    def string_creators(cls, v):
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(item) for item in v if isinstance(item, (str, int))]
        return []

    @validator("formats", pre=True)
    def dict_formats(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @validator("features", pre=True)
    def dict_features(cls, v):
        return v if isinstance(v, dict) else None
