"""
Identity resolution for artists and collections (lookup-or-create).

Repeated imports of the same on-chain creator or contract converge on one
row. Concurrent imports racing on the same new identity are arbitrated by
the database's unique constraints: the insert runs inside a savepoint and,
on IntegrityError, the lookup is repeated exactly once. A new collection
whose slug was taken by a different collection retries once with the next
free suffix.
"""

import logging
import re
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import IdentityConflict
from ingestion.transformers.chains import detect_blockchain, normalize_address, short_address
from models.artist import Artist, ArtistAddress
from models.collection import Collection
from schemas.normalized import CollectionHint, CreatorHint

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("ens_name", "avatar_url", "bio", "website", "twitter_handle", "instagram_handle")

_TRAILING_NUMBER = re.compile(r"[\s#]*\d+$")
_WHITESPACE = re.compile(r"\s+")
_INVALID_SLUG_CHARS = re.compile(r"[^a-z0-9-]")
_REPEATED_DASHES = re.compile(r"-{2,}")


def slugify(title: Optional[str]) -> str:
    """
    Deterministic collection slug.

    "Chromie Squiggle #12" -> "chromie-squiggle"
    """
    text = _TRAILING_NUMBER.sub("", (title or "").strip())
    text = _WHITESPACE.sub("-", text.strip()).lower()
    text = _INVALID_SLUG_CHARS.sub("", text)
    text = _REPEATED_DASHES.sub("-", text).strip("-")
    return text or "collection"


def _fill_blanks(target, source, fields) -> List[str]:
    """Copy non-empty values onto empty attributes. Returns the fields written."""
    written = []
    for name in fields:
        value = getattr(source, name, None)
        if value in (None, "") or getattr(target, name) not in (None, ""):
            continue
        setattr(target, name, value)
        written.append(name)
    return written


class IdentityResolver:
    """
    Lookup-or-create of Artist and Collection rows inside the caller's transaction.

    Artist precedence:
    1. (address, blockchain)
    2. Unique name, unless that artist already holds a different address on the same chain
    3. New artist named after the display name or the short address

    Collection precedence:
    1. (external_id, data_source, blockchain)
    2. Slug, when the slug's owner is not mapped to another upstream id
    3. New collection with a derived slug, suffixed -2, -3... on collision
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Artists
    # ------------------------------------------------------------------

    async def find_artist_by_address(self, address: str, blockchain: str) -> Optional[Artist]:
        result = await self.session.execute(
            select(Artist)
            .join(ArtistAddress, ArtistAddress.artist_id == Artist.id)
            .where(ArtistAddress.address == address, ArtistAddress.blockchain == blockchain)
        )
        return result.scalars().first()

    async def find_artist_by_name(self, name: str) -> Optional[Artist]:
        result = await self.session.execute(select(Artist).where(Artist.name == name))
        return result.scalars().first()

    async def _match_artist(self, address: Optional[str], blockchain: str, name: Optional[str]) -> Optional[Artist]:
        if address:
            artist = await self.find_artist_by_address(address, blockchain)
            if artist:
                return artist

        if name:
            artist = await self.find_artist_by_name(name)
            if artist and (not address or not artist.addresses_on(blockchain)):
                return artist
            if artist:
                logger.info(
                    f"Artist '{name}' already holds other {blockchain} addresses, "
                    f"not merging {address}"
                )
        return None

    async def resolve_artist(self, hint: CreatorHint, default_blockchain: Optional[str] = None) -> Optional[Artist]:
        """
        Resolve a creator hint to an Artist, creating it when unknown.

        Returns None when the hint carries neither an address nor a name.

        Raises:
            IdentityConflict: Insert collided and the single re-fetch found nothing
        """
        if not hint.has_identity():
            return None

        blockchain = hint.blockchain or detect_blockchain(hint.address, default_blockchain) or "unknown"
        address = normalize_address(hint.address, blockchain)
        name = hint.name

        artist = await self._match_artist(address, blockchain, name)
        if artist is None:
            artist = await self._create_artist(hint, address, blockchain)
        elif address and address not in artist.addresses_on(blockchain):
            await self._attach_address(artist, address, blockchain)

        filled = _fill_blanks(artist, hint, PROFILE_FIELDS)
        if filled:
            logger.debug(f"Filled {filled} on artist {artist.id}")
        return artist

    async def _artist_name_for(self, hint: CreatorHint, address: Optional[str]) -> str:
        if not hint.name:
            return short_address(address)
        existing = await self.find_artist_by_name(hint.name)
        if existing is None:
            return hint.name
        # Same display name, different wallet
        return f"{hint.name} ({short_address(address)})" if address else hint.name

    async def _create_artist(self, hint: CreatorHint, address: Optional[str], blockchain: str) -> Artist:
        name = await self._artist_name_for(hint, address)
        try:
            async with self.session.begin_nested():
                artist = Artist(
                    name=name,
                    addresses=[ArtistAddress(address=address, blockchain=blockchain)] if address else [],
                )
                self.session.add(artist)
                await self.session.flush()
            logger.info(f"Created artist '{name}'" + (f" for {address}" if address else ""))
            return artist
        except IntegrityError as e:
            logger.info(f"Artist insert for '{name}' collided, re-fetching")
            existing = await self._match_artist(address, blockchain, hint.name)
            if existing is None:
                raise IdentityConflict(
                    f"Artist '{name}' conflicted on insert and could not be re-fetched",
                    context={"name": name, "address": address, "blockchain": blockchain},
                    original_exception=e,
                )
            if address and address not in existing.addresses_on(blockchain):
                await self._attach_address(existing, address, blockchain)
            return existing

    async def _attach_address(self, artist: Artist, address: str, blockchain: str):
        try:
            async with self.session.begin_nested():
                link = ArtistAddress(artist_id=artist.id, address=address, blockchain=blockchain)
                self.session.add(link)
                await self.session.flush()
            artist.addresses.append(link)
            logger.info(f"Attached {address} ({blockchain}) to artist {artist.id}")
        except IntegrityError:
            logger.warning(f"{address} ({blockchain}) was claimed by another artist concurrently")

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def find_collection_by_external_id(
        self, external_id: str, data_source: Optional[str], blockchain: Optional[str]
    ) -> Optional[Collection]:
        query = select(Collection).where(Collection.external_id == external_id)
        query = query.where(
            Collection.data_source == data_source if data_source else Collection.data_source.is_(None)
        )
        query = query.where(
            Collection.blockchain == blockchain if blockchain else Collection.blockchain.is_(None)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def find_collection_by_slug(self, slug: str) -> Optional[Collection]:
        result = await self.session.execute(select(Collection).where(Collection.slug == slug))
        return result.scalars().first()

    @staticmethod
    def _external_id(hint: CollectionHint) -> Optional[str]:
        if hint.external_id:
            return hint.external_id
        # A shared contract holds many unrelated collections
        if hint.contract_address and not hint.is_shared_contract:
            return hint.contract_address
        return None

    async def _match_collection(self, hint: CollectionHint, external_id: Optional[str]) -> Optional[Collection]:
        if external_id:
            collection = await self.find_collection_by_external_id(external_id, hint.data_source, hint.blockchain)
            if collection:
                return collection

        slug = hint.slug or slugify(hint.title)
        collection = await self.find_collection_by_slug(slug)
        if collection and (not collection.external_id or not external_id or collection.external_id == external_id):
            return collection
        return None

    async def unique_slug(self, base: str) -> str:
        result = await self.session.execute(
            select(Collection.slug).where(
                (Collection.slug == base) | (Collection.slug.like(f"{base}-%"))
            )
        )
        taken = set(result.scalars().all())
        if base not in taken:
            return base
        suffix = 2
        while f"{base}-{suffix}" in taken:
            suffix += 1
        return f"{base}-{suffix}"

    async def resolve_collection(self, hint: CollectionHint, creator: Optional[Artist] = None) -> Optional[Collection]:
        """
        Resolve a collection hint, creating the collection when unknown.

        Raises:
            IdentityConflict: Insert collided and the single re-fetch found nothing
        """
        if not (hint.external_id or hint.slug or hint.title or hint.contract_address):
            return None

        external_id = self._external_id(hint)
        collection = await self._match_collection(hint, external_id)
        if collection is None:
            collection = await self._create_collection(hint, external_id, creator)
        else:
            _fill_blanks(collection, hint, ("description", "website", "image_url", "project_id", "supply"))
            if hint.is_generative and not collection.is_generative:
                collection.is_generative = True
            if collection.creator_id is None and creator is not None:
                collection.creator_id = creator.id
        return collection

    async def _create_collection(
        self, hint: CollectionHint, external_id: Optional[str], creator: Optional[Artist]
    ) -> Collection:
        title = hint.title or hint.slug or external_id or "Untitled collection"
        base = hint.slug or slugify(title)
        slug = await self.unique_slug(base)
        try:
            return await self._insert_collection(hint, external_id, creator, title, slug)
        except IntegrityError as e:
            logger.info(f"Collection insert for '{slug}' collided, re-fetching")
            existing = await self._match_collection(hint, external_id)
            if existing is not None:
                return existing
            first_error = e

        # Another collection took the slug concurrently; the next free suffix is ours
        retry_slug = await self.unique_slug(base)
        try:
            return await self._insert_collection(hint, external_id, creator, title, retry_slug)
        except IntegrityError as e:
            existing = await self._match_collection(hint, external_id)
            if existing is not None:
                return existing
            raise IdentityConflict(
                f"Collection '{retry_slug}' conflicted on insert and could not be re-fetched",
                context={"slug": retry_slug, "external_id": external_id, "data_source": hint.data_source},
                original_exception=e,
            ) from first_error

    async def _insert_collection(
        self,
        hint: CollectionHint,
        external_id: Optional[str],
        creator: Optional[Artist],
        title: str,
        slug: str,
    ) -> Collection:
        async with self.session.begin_nested():
            collection = Collection(
                slug=slug,
                title=title,
                description=hint.description,
                website=hint.website,
                image_url=hint.image_url,
                external_id=external_id,
                data_source=hint.data_source,
                blockchain=hint.blockchain,
                contract_address=hint.contract_address,
                is_shared_contract=hint.is_shared_contract,
                is_generative=hint.is_generative,
                project_id=hint.project_id,
                supply=hint.supply,
                creator_id=creator.id if creator is not None else None,
                artists=[],
            )
            self.session.add(collection)
            await self.session.flush()
        logger.info(f"Created collection '{slug}'")
        return collection
