"""
Persist normalized artworks with idempotent upsert and sparse merge.
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PersistenceError
from ingestion.transformers.chains import detect_blockchain, normalize_address
from models.artist import Artist
from models.artwork import Artwork
from models.collection import Collection
from schemas.normalized import NormalizedArtwork

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"

# Columns written from NormalizedArtwork; identity columns are never rewritten
MERGE_FIELDS = (
    "title",
    "description",
    "blockchain",
    "image_url",
    "animation_url",
    "generator_url",
    "thumbnail_url",
    "metadata_url",
    "mime",
    "width",
    "height",
    "attributes",
    "features",
    "supply",
    "mint_date",
)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def compute_uid(artwork: NormalizedArtwork) -> str:
    """
    Secondary unique key.

    Tokens hash (source, contract, token id); artworks known only by their
    metadata document hash (source, metadata URL, title).
    """
    if artwork.contract_address and artwork.token_id:
        key = f"{artwork.source_name}:{artwork.contract_address}:{artwork.token_id}"
    else:
        key = f"{artwork.source_name}:{artwork.metadata_url or ''}:{artwork.title}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def artwork_values(artwork: NormalizedArtwork) -> Dict[str, Any]:
    """Column values carried by a normalized artwork (empty title stays empty here)."""
    dims = artwork.dimensions
    return {
        "title": artwork.title,
        "description": artwork.description,
        "blockchain": artwork.blockchain,
        "image_url": artwork.image_url,
        "animation_url": artwork.animation_url,
        "generator_url": artwork.generator_url,
        "thumbnail_url": artwork.thumbnail_url,
        "metadata_url": artwork.metadata_url,
        "mime": artwork.mime,
        "width": dims.width if dims else None,
        "height": dims.height if dims else None,
        "attributes": [a.model_dump() for a in artwork.attributes],
        "features": artwork.features,
        "supply": artwork.supply,
        "mint_date": artwork.mint_date,
    }


def sparse_merge(row: Artwork, values: Dict[str, Any]) -> List[str]:
    """
    Write only genuinely new, non-empty values onto ``row``.

    Fields the fresh data left empty keep their stored value, so manual
    edits survive a blank upstream field. Returns the changed field names.
    """
    updated = []
    for name in MERGE_FIELDS:
        value = values.get(name)
        if is_empty(value):
            continue
        if getattr(row, name) == value:
            continue
        setattr(row, name, value)
        updated.append(name)
    return updated


class ArtworkLoader:
    """
    Artwork upsert keyed by (token_standard, contract_address, token_id).

    Runs inside the caller's transaction; the caller commits once the
    artwork, its links and the import record are all written.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_key(
        self,
        token_standard: Optional[str],
        contract_address: str,
        token_id: str,
    ) -> Optional[Artwork]:
        """Lookup by token identity. A NULL token standard matches NULL only."""
        contract_address = normalize_address(contract_address, detect_blockchain(contract_address))
        query = select(Artwork).where(
            Artwork.contract_address == contract_address,
            Artwork.token_id == token_id,
        )
        if token_standard is None:
            query = query.where(Artwork.token_standard.is_(None))
        else:
            query = query.where(Artwork.token_standard == token_standard)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def find_by_uid(self, uid: str) -> Optional[Artwork]:
        result = await self.session.execute(select(Artwork).where(Artwork.uid == uid))
        return result.scalars().first()

    async def get(self, artwork_id: int) -> Optional[Artwork]:
        result = await self.session.execute(select(Artwork).where(Artwork.id == artwork_id))
        return result.scalars().first()

    async def _find_existing(self, artwork: NormalizedArtwork, uid: str) -> Optional[Artwork]:
        if artwork.contract_address and artwork.token_id:
            existing = await self.find_by_key(artwork.token_standard, artwork.contract_address, artwork.token_id)
            if existing:
                return existing
        return await self.find_by_uid(uid)

    async def upsert(
        self,
        artwork: NormalizedArtwork,
        artists: Optional[List[Artist]] = None,
        collection: Optional[Collection] = None,
    ) -> Tuple[Artwork, bool, List[str]]:
        """
        Insert or sparse-update one artwork and link its identities.

        Returns:
            (row, created, updated_fields)

        Raises:
            PersistenceError: Insert collided and the row could not be re-fetched
        """
        uid = compute_uid(artwork)
        values = artwork_values(artwork)

        row = await self._find_existing(artwork, uid)
        created = False
        updated: List[str] = []

        if row is None:
            row, created = await self._insert(artwork, uid, values)
            if not created:
                updated = sparse_merge(row, values)
        else:
            updated = sparse_merge(row, values)

        self.link(row, artists or [], collection)
        await self.session.flush()

        logger.info(
            f"{'Created' if created else 'Updated'} artwork {row.id} "
            f"({row.contract_address}:{row.token_id})"
            + (f" fields={updated}" if updated else "")
        )
        return row, created, updated

    async def _insert(self, artwork: NormalizedArtwork, uid: str, values: Dict[str, Any]) -> Tuple[Artwork, bool]:
        row = Artwork(
            uid=uid,
            contract_address=artwork.contract_address,
            token_id=artwork.token_id,
            token_standard=artwork.token_standard,
            artists=[],
            collection=None,
            **{k: v for k, v in values.items() if not is_empty(v)},
        )
        if is_empty(row.title):
            row.title = DEFAULT_TITLE

        try:
            async with self.session.begin_nested():
                self.session.add(row)
                await self.session.flush()
            return row, True
        except IntegrityError as e:
            # Concurrent first import of the same token won the insert
            logger.info(f"Artwork insert collided for uid {uid[:12]}, re-fetching")
            existing = await self._find_existing(artwork, uid)
            if existing is None:
                raise PersistenceError(
                    "Artwork insert conflicted and the existing row could not be re-fetched",
                    context={
                        "uid": uid,
                        "contract_address": artwork.contract_address,
                        "token_id": artwork.token_id,
                    },
                    original_exception=e,
                )
            return existing, False

    async def merge_into(
        self,
        row: Artwork,
        artwork: NormalizedArtwork,
        artists: Optional[List[Artist]] = None,
        collection: Optional[Collection] = None,
    ) -> List[str]:
        """Sparse-merge fresh fields into a known artwork (refetch path)."""
        updated = sparse_merge(row, artwork_values(artwork))
        self.link(row, artists or [], collection)
        await self.session.flush()
        return updated

    @staticmethod
    def link(row: Artwork, artists: List[Artist], collection: Optional[Collection]):
        """Attach artists and collection; collection artists follow artwork participation."""
        for artist in artists:
            if artist not in row.artists:
                row.artists.append(artist)

        if collection is None:
            return
        row.collection = collection
        for artist in artists:
            if artist not in collection.artists:
                collection.artists.append(artist)
        if collection.creator_id is None and artists:
            collection.creator_id = artists[0].id
