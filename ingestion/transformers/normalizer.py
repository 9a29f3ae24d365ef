"""
Transform source payloads and off-chain metadata into NormalizedArtwork.

Precedence:
1. Structured fields from the source API win over off-chain metadata,
   unless they are empty, in which case the off-chain value is used.
2. A generator URL makes the artwork generative; it is never treated as a
   static image.
3. Title may come out empty; "Untitled" is applied at persistence time.
4. ipfs://, ar://, onchfs:// and /ipfs/ URIs are rewritten to gateways.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from schemas.normalized import (
    Attribute,
    CollectionHint,
    CreatorHint,
    NormalizedArtwork,
)
from schemas.sources import (
    MetadataUrlPayload,
    ObjktPayload,
    OffchainMetadata,
    OpenSeaPayload,
    RawNFT,
    TzktPayload,
)
from models.base import Blockchain, DataSource
from core.exceptions import MalformedSource
from ingestion.media.dimensions import parse_dimension_value
from ingestion.media.uris import rewrite_uri
from ingestion.transformers.chains import (
    art_blocks_project,
    detect_blockchain,
    has_generative_keyword,
    is_generative_contract,
    is_shared_contract,
    looks_like_generator,
    normalize_address,
)
import logging

logger = logging.getLogger(__name__)

OPENSEA_CHAINS = {
    "ethereum": Blockchain.ETHEREUM.value,
    "matic": Blockchain.POLYGON.value,
    "polygon": Blockchain.POLYGON.value,
    "base": Blockchain.BASE.value,
}

URL_FIELDS = ("image_url", "animation_url", "generator_url", "thumbnail_url", "metadata_url")


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class MetadataNormalizer:
    """
    Normalize NFTs from every source into the canonical artwork shape.

    Handles:
    - Source-specific field mapping
    - Structured-over-off-chain precedence
    - Generator detection
    - URI rewriting
    - Identity validation
    """

    def __init__(self, ipfs_gateway: Optional[str] = None):
        self.ipfs_gateway = ipfs_gateway

    def normalize(self, raw: RawNFT, offchain: Optional[OffchainMetadata] = None) -> NormalizedArtwork:
        """
        Normalize a raw NFT, filling gaps from its off-chain metadata.

        Raises:
            MalformedSource: contract address + token id and title are all missing
        """
        payload = raw.payload
        if isinstance(payload, OpenSeaPayload):
            structured = self._from_opensea(payload)
        elif isinstance(payload, ObjktPayload):
            structured = self._from_objkt(payload)
        elif isinstance(payload, TzktPayload):
            structured = self._from_tzkt(payload)
        elif isinstance(payload, MetadataUrlPayload):
            structured = self._from_metadata_url(payload)
        else:
            raise ValueError(f"Unknown payload type: {type(payload).__name__}")

        # RawNFT identity fills anything the payload left out
        for key in ("contract_address", "token_id", "blockchain", "metadata_url"):
            if _is_empty(structured.get(key)):
                structured[key] = getattr(raw, key)

        fallback = self._from_offchain(offchain) if offchain else {}
        fields = dict(structured)
        for key, value in fallback.items():
            if _is_empty(fields.get(key)):
                fields[key] = value

        if not fields.get("blockchain"):
            fields["blockchain"] = detect_blockchain(fields.get("contract_address"), Blockchain.UNKNOWN.value)

        self._validate_identity(raw, fields)
        self._apply_generator_precedence(fields)

        for key in URL_FIELDS:
            fields[key] = rewrite_uri(fields.get(key), self.ipfs_gateway)

        # Thumbnail identical to the image carries no information
        if fields.get("thumbnail_url") and fields.get("thumbnail_url") == fields.get("image_url"):
            fields["thumbnail_url"] = None

        for creator in fields.get("creators") or []:
            if creator.address and not creator.blockchain:
                creator.blockchain = detect_blockchain(creator.address, fields["blockchain"])

        fields["source_name"] = raw.source_name
        return NormalizedArtwork(**{k: v for k, v in fields.items() if v is not None})

    # ------------------------------------------------------------------
    # Validation and precedence
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_identity(raw: RawNFT, fields: Dict[str, Any]):
        has_token_identity = bool(fields.get("contract_address")) and bool(fields.get("token_id"))
        has_title = bool((fields.get("title") or "").strip())
        if not has_token_identity and not has_title:
            raise MalformedSource(
                "Payload has neither contract address + token id nor a title",
                context={
                    "source": raw.source_name.value,
                    "contract_address": fields.get("contract_address"),
                    "token_id": fields.get("token_id"),
                },
            )

    @staticmethod
    def _apply_generator_precedence(fields: Dict[str, Any]):
        generator = fields.get("generator_url")
        if not generator:
            animation = fields.get("animation_url")
            if animation and looks_like_generator(animation):
                fields["generator_url"] = animation
                fields["animation_url"] = None
                generator = animation
        if not generator:
            return

        if fields.get("animation_url") == generator:
            fields["animation_url"] = None
        mime = fields.get("mime")
        if not mime or mime.startswith("image/"):
            fields["mime"] = "text/html"

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _from_opensea(self, p: OpenSeaPayload) -> Dict[str, Any]:
        blockchain = OPENSEA_CHAINS.get((p.chain or "ethereum").lower(), (p.chain or "").lower() or None)
        contract = normalize_address(p.contract, blockchain)

        creators = []
        if p.creator:
            profile = p.creator_profile
            creators.append(CreatorHint(
                address=normalize_address(p.creator, blockchain),
                blockchain=blockchain,
                name=profile.username if profile else None,
                avatar_url=profile.profile_image_url if profile else None,
                bio=profile.bio if profile else None,
                website=profile.website if profile else None,
                twitter_handle=profile.twitter if profile else None,
                instagram_handle=profile.instagram if profile else None,
            ))

        collection = None
        if p.collection:
            details = p.collection_details
            title = (details.name if details else None) or p.collection
            collection = CollectionHint(
                external_id=p.collection,
                data_source=DataSource.OPENSEA,
                blockchain=blockchain,
                title=title,
                slug=p.collection,
                description=details.description if details else None,
                website=details.project_url if details else None,
                image_url=details.image_url if details else None,
                contract_address=contract,
                is_shared_contract=is_shared_contract(contract, blockchain),
                is_generative=has_generative_keyword(title) or is_generative_contract(contract),
                project_id=art_blocks_project(contract, p.identifier),
                supply=details.total_supply if details else None,
            )

        return {
            "blockchain": blockchain,
            "contract_address": contract,
            "token_id": p.identifier,
            "token_standard": (p.token_standard or "erc721").upper(),
            "title": p.name,
            "description": p.description,
            "image_url": p.image_url or p.display_image_url,
            "animation_url": p.animation_url or p.display_animation_url,
            "metadata_url": p.metadata_url,
            "attributes": self._parse_attributes([t.model_dump() for t in p.traits]),
            # updated_at is the last metadata refresh, never a mint time
            "mint_date": self._parse_datetime(p.mint_timestamp or p.created_at),
            "creators": creators,
            "collection": collection,
        }

    def _from_objkt(self, p: ObjktPayload) -> Dict[str, Any]:
        blockchain = Blockchain.TEZOS.value
        contract = p.contract_address
        mime = (p.mime or "").lower() or None

        tezos = self._tezos_media(p.artifact_uri, p.display_uri, p.thumbnail_uri, mime)

        creators = []
        for c in p.creators:
            holder = c.holder
            address = c.creator_address or (holder.address if holder else None)
            if not address:
                continue
            creators.append(CreatorHint(
                address=address,
                blockchain=blockchain,
                name=holder.alias if holder else None,
                avatar_url=holder.logo if holder else None,
                bio=holder.description if holder else None,
                website=holder.website if holder else None,
                twitter_handle=holder.twitter if holder else None,
                instagram_handle=holder.instagram if holder else None,
            ))

        collection = None
        if contract and not is_shared_contract(contract, blockchain):
            fa = p.fa
            title = (fa.name if fa else None) or contract
            collection = CollectionHint(
                external_id=contract,
                data_source=DataSource.OBJKT,
                blockchain=blockchain,
                title=title,
                description=fa.description if fa else None,
                website=fa.website if fa else None,
                image_url=fa.logo if fa else None,
                contract_address=contract,
                is_generative=(
                    is_generative_contract(contract)
                    or has_generative_keyword(title)
                    or bool(tezos["generator_url"])
                ),
            )

        return {
            "blockchain": blockchain,
            "contract_address": contract,
            "token_id": p.token_id,
            "token_standard": "FA2",
            "title": p.name,
            "description": p.description,
            "mime": mime,
            "metadata_url": p.metadata,
            "dimensions": parse_dimension_value(p.dimensions),
            "attributes": self._parse_attributes([a.model_dump() for a in p.attributes]),
            "supply": self._parse_int(p.supply, default=1),
            "mint_date": self._parse_datetime(p.timestamp),
            "creators": creators,
            "collection": collection,
            **tezos,
        }

    def _from_tzkt(self, p: TzktPayload) -> Dict[str, Any]:
        blockchain = Blockchain.TEZOS.value
        contract = p.contract.address
        meta = p.metadata

        fields = {
            "blockchain": blockchain,
            "contract_address": contract,
            "token_id": p.token_id,
            "token_standard": "FA2" if (p.standard or "fa2").lower() == "fa2" else p.standard.upper(),
            "supply": self._parse_int(p.total_supply, default=1),
            "mint_date": self._parse_datetime(p.first_time),
        }

        if contract and not is_shared_contract(contract, blockchain):
            title = p.contract.alias or contract
            fields["collection"] = CollectionHint(
                external_id=contract,
                data_source=DataSource.TZKT,
                blockchain=blockchain,
                title=title,
                contract_address=contract,
                is_generative=is_generative_contract(contract) or has_generative_keyword(title),
            )

        if meta is None:
            return fields

        artifact_format = self._matching_format(meta.formats, meta.artifact_uri)
        display_format = self._matching_format(meta.formats, meta.display_uri)
        mime = (artifact_format.mime_type if artifact_format else None) or None

        fields.update(self._tezos_media(meta.artifact_uri, meta.display_uri, meta.thumbnail_uri, mime))
        fields.update({
            "title": meta.name,
            "description": meta.description,
            "mime": mime,
            "dimensions": (
                parse_dimension_value(display_format.dimensions if display_format else None)
                or parse_dimension_value(artifact_format.dimensions if artifact_format else None)
            ),
            "attributes": self._parse_attributes(meta.attributes),
            "features": {"tags": meta.tags} if meta.tags else None,
            "creators": [CreatorHint(address=a, blockchain=blockchain) for a in meta.creators],
        })
        return fields

    def _from_metadata_url(self, p: MetadataUrlPayload) -> Dict[str, Any]:
        blockchain = p.blockchain or detect_blockchain(p.contract_address)
        return {
            "blockchain": blockchain,
            "contract_address": normalize_address(p.contract_address, blockchain),
            "token_id": p.token_id,
            "title": p.title,
        }

    def _from_offchain(self, m: OffchainMetadata) -> Dict[str, Any]:
        artifact = m.artifact_uri
        artifact_format = self._matching_format(m.formats, artifact)
        mime = m.mime_type or (artifact_format.mime_type if artifact_format else None)

        generator = m.generator_url
        animation = m.animation_url
        if not generator and artifact and looks_like_generator(artifact, mime):
            generator = artifact
        elif not animation and artifact and mime and mime.startswith("video/"):
            animation = artifact

        creators = [CreatorHint(address=a) for a in m.creators]
        display_name = m.created_by or m.artist
        if display_name:
            if creators and not creators[0].name:
                creators[0].name = display_name
            elif not creators:
                creators.append(CreatorHint(name=display_name))

        return {
            "title": m.name,
            "description": m.description,
            "image_url": m.image or m.image_url or m.display_uri or (artifact if not generator and not animation else None),
            "animation_url": animation,
            "generator_url": generator,
            "thumbnail_url": m.thumbnail_uri,
            "mime": mime,
            "dimensions": (
                parse_dimension_value(m.dimensions)
                or parse_dimension_value(artifact_format.dimensions if artifact_format else None)
            ),
            "attributes": self._parse_attributes(m.attributes if m.attributes is not None else m.traits),
            "features": m.features,
            "mint_date": self._parse_datetime(m.minted_at or m.date),
            "creators": [c for c in creators if c.has_identity()],
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _tezos_media(artifact: Optional[str], display: Optional[str], thumbnail: Optional[str], mime: Optional[str]) -> Dict[str, Any]:
        """Tezos tokens carry artifact/display/thumbnail URIs instead of image/animation."""
        generator = artifact if artifact and looks_like_generator(artifact, mime) else None
        animation = artifact if artifact and not generator and mime and mime.startswith(("video/", "audio/")) else None
        image = display or (artifact if not generator and not animation else None)
        return {
            "image_url": image,
            "animation_url": animation,
            "generator_url": generator,
            "thumbnail_url": thumbnail if thumbnail and thumbnail != image else None,
        }

    @staticmethod
    def _matching_format(formats, uri: Optional[str]):
        if not formats:
            return None
        if uri:
            for fmt in formats:
                if fmt.uri == uri:
                    return fmt
        return None

    @staticmethod
    def _parse_attributes(value: Any) -> List[Attribute]:
        """Accept [{trait_type|name|key, value}] lists or a plain mapping."""
        if not value:
            return []

        items = []
        if isinstance(value, dict):
            items = [(k, v) for k, v in value.items()]
        elif isinstance(value, list):
            for entry in value:
                if not isinstance(entry, dict):
                    continue
                key = entry.get("trait_type") or entry.get("name") or entry.get("key") or entry.get("type")
                items.append((key, entry.get("value")))

        attributes = []
        for key, val in items:
            if key is None or str(key).strip() == "" or val is None:
                continue
            attributes.append(Attribute(trait_type=str(key).strip(), value=str(val)))
        return attributes

    @staticmethod
    def _parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
        """Safely parse int value"""
        if value is None or value == "":
            return default
        try:
            return int(float(value))
        except (ValueError, TypeError):
            return default

    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        """ISO-8601 strings or unix seconds, returned as naive UTC."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
            try:
                parsed = datetime.fromtimestamp(int(value), tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
        else:
            try:
                parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
            except ValueError:
                logger.debug(f"Unparsable mint date: {value}")
                return None

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
