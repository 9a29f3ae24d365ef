# ============================================================================
# File: ingestion/runner.py
# Description: Import orchestrator with per-item isolation and sparse refetch
# ============================================================================
"""
Import Orchestrator - drives NFTs through fetch, normalize, media, identity, persist.

This module provides:
- Concurrent fan-out over a batch, one database session per item
- Per-item isolation: one item's failure never aborts its siblings
- Atomic persistence of an artwork together with its identity links
- Ledger updates (ImportRecord) for every outcome
- Refetch with sparse merge, wallet imports and operator retries
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import PipelineContext
from core.exceptions import (
    IngestionException,
    NotFound,
    PersistenceError,
    StorageUnavailable,
)
from ingestion.base import SourceAdapter
from ingestion.loaders.artwork_loader import ArtworkLoader
from ingestion.loaders.identity import IdentityResolver
from ingestion.tracker import ImportOutcome, ImportTracker, ref_from_record
from models.artist import Artist
from models.artwork import Artwork
from models.base import Blockchain, DataSource, IndexType
from models.collection import Collection
from schemas.normalized import NormalizedArtwork
from schemas.sources import RawNFT, RawRef

logger = logging.getLogger(__name__)

# Errors meaning the database itself is gone, not that one row conflicted
STORAGE_ERRORS = (OperationalError, InterfaceError, ConnectionError)

NO_CHANGES = "No changes detected"


class ImportStep(str, enum.Enum):
    """Per-item pipeline state"""
    PENDING = "pending"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    RESOLVING_MEDIA = "resolving-media"
    RESOLVING_IDENTITY = "resolving-identity"
    PERSISTING = "persisting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ItemProgress:
    ref: RawRef
    step: ImportStep = ImportStep.PENDING
    raw: Optional[RawNFT] = None
    normalized: Optional[NormalizedArtwork] = None

    def advance(self, step: ImportStep):
        logger.debug(f"{self.ref.describe()}: {self.step.value} -> {step.value}")
        self.step = step

    def snapshots(self) -> Dict[str, Any]:
        return {
            "raw_response": self.raw.snapshot() if self.raw else None,
            "normalized_data": self.normalized.model_dump(mode="json") if self.normalized else None,
            "blockchain": self.normalized.blockchain if self.normalized else None,
        }


@dataclass
class ImportFailure:
    ref: RawRef
    error: str
    error_type: str
    step: str


@dataclass
class BatchResult:
    succeeded: List[Artwork] = field(default_factory=list)
    failed: List[ImportFailure] = field(default_factory=list)

    @property
    def error_details(self) -> List[Dict[str, Any]]:
        return [
            {
                "phase": f.step,
                "ref": f.ref.describe(),
                "error_type": f.error_type,
                "error_message": f.error,
            }
            for f in self.failed
        ]

    def extend(self, other: "BatchResult"):
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)


@dataclass
class RefetchResult:
    artwork: Artwork
    updated_fields: List[str]
    message: str


def default_source_for(blockchain: Optional[str]) -> DataSource:
    return DataSource.OBJKT if blockchain == Blockchain.TEZOS.value else DataSource.OPENSEA


class ImportOrchestrator:
    """
    Import Orchestrator

    Responsibilities:
    - Run every item through pending -> fetching -> normalizing ->
      resolving-media -> resolving-identity -> persisting -> success/failed
    - Keep items isolated; only StorageUnavailable aborts a batch
    - Write Artwork, Artist, Collection and link rows in one transaction per item
    - Record every outcome in the import ledger
    """

    def __init__(self, context: PipelineContext):
        self.context = context

    # ------------------------------------------------------------------
    # Batch import
    # ------------------------------------------------------------------

    async def import_batch(
        self,
        source,
        refs: Sequence[RawRef],
        count_attempt: bool = True,
    ) -> BatchResult:
        """
        Import a batch of references from one source.

        Items run concurrently (bounded by the context's concurrency); the
        batch completes when every item reached success or failed.

        Raises:
            ValueError: Unknown source
            StorageUnavailable: The database became unreachable
        """
        source = DataSource(source)
        adapter = self.context.adapter_for(source)
        semaphore = asyncio.Semaphore(max(1, self.context.concurrency))

        logger.info(f"Starting {source.value} import of {len(refs)} items")

        async def run(ref: RawRef):
            async with semaphore:
                return await self._import_item(adapter, ref, count_attempt)

        outcomes = await asyncio.gather(*(run(ref) for ref in refs), return_exceptions=True)

        result = BatchResult()
        storage_error: Optional[BaseException] = None
        for ref, outcome in zip(refs, outcomes):
            if isinstance(outcome, StorageUnavailable):
                storage_error = storage_error or outcome
            elif isinstance(outcome, BaseException):
                raise outcome
            elif isinstance(outcome, ImportFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)

        if storage_error is not None:
            logger.error(f"Import batch aborted: {storage_error}")
            raise storage_error

        logger.info(
            f"Import batch completed: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed"
        )
        return result

    async def _import_item(self, adapter: SourceAdapter, ref: RawRef, count_attempt: bool):
        progress = ItemProgress(ref)
        source = adapter.source_name

        try:
            await self._record_start(ref, source)
            await self._fetch_and_prepare(adapter, progress)
            row, _, _ = await self._persist(progress, source, count_attempt)
            progress.advance(ImportStep.SUCCESS)
            return row

        except StorageUnavailable:
            raise

        except IngestionException as e:
            error = e
            logger.error(
                f"Import of {ref.describe()} failed at {progress.step.value}: {e.message}",
                extra={"error_context": e.to_dict()},
            )

        except Exception as e:
            error = e
            logger.exception(f"Unexpected error importing {ref.describe()} at {progress.step.value}")

        failed_step = progress.step
        progress.advance(ImportStep.FAILED)
        await self._record_failure(progress, source, failed_step, error, count_attempt)

        return ImportFailure(
            ref=ref,
            error=getattr(error, "message", None) or str(error),
            error_type=type(error).__name__,
            step=failed_step.value,
        )

    async def _fetch_and_prepare(self, adapter: SourceAdapter, progress: ItemProgress):
        """Steps that need no database: fetch, normalize, resolve media."""
        progress.advance(ImportStep.FETCHING)
        progress.raw = await adapter.fetch_raw_nft(progress.ref)
        offchain = await self.context.metadata_fetcher.fetch(progress.raw.metadata_url)

        progress.advance(ImportStep.NORMALIZING)
        progress.normalized = self.context.normalizer.normalize(progress.raw, offchain)

        progress.advance(ImportStep.RESOLVING_MEDIA)
        progress.normalized = await self.context.media.resolve_artwork_media(progress.normalized)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _resolve_identities(
        self, session: AsyncSession, artwork: NormalizedArtwork
    ) -> Tuple[List[Artist], Optional[Collection]]:
        resolver = IdentityResolver(session)

        artists: List[Artist] = []
        for hint in artwork.creators:
            artist = await resolver.resolve_artist(hint, default_blockchain=artwork.blockchain)
            if artist is not None and artist not in artists:
                artists.append(artist)

        collection = None
        if artwork.collection is not None:
            collection = await resolver.resolve_collection(
                artwork.collection, creator=artists[0] if artists else None
            )
        return artists, collection

    async def _persist(
        self,
        progress: ItemProgress,
        source: DataSource,
        count_attempt: bool,
        artwork_id: Optional[int] = None,
    ) -> Tuple[Artwork, bool, List[str]]:
        """
        Resolve identities and write the artwork, its links and the ledger
        entry in one transaction. With ``artwork_id`` the fresh fields are
        sparse-merged into that existing artwork instead of upserted by key.

        Raises:
            StorageUnavailable: Database unreachable
            PersistenceError: The write failed and was rolled back
            IdentityConflict: Identity insert conflicted past the single re-fetch
        """
        normalized = progress.normalized
        try:
            async with self.context.session_maker() as session:
                async with session.begin():
                    progress.advance(ImportStep.RESOLVING_IDENTITY)
                    artists, collection = await self._resolve_identities(session, normalized)

                    progress.advance(ImportStep.PERSISTING)
                    loader = ArtworkLoader(session)
                    if artwork_id is None:
                        row, created, updated = await loader.upsert(normalized, artists, collection)
                    else:
                        row = await loader.get(artwork_id)
                        if row is None:
                            raise NotFound(f"Artwork {artwork_id} no longer exists", context={"artwork_id": artwork_id})
                        updated = await loader.merge_into(row, normalized, artists, collection)
                        created = False

                    await ImportTracker(session).record_attempt(
                        progress.ref,
                        ImportOutcome.success(row.id, **progress.snapshots()),
                        data_source=source,
                        count_attempt=count_attempt,
                    )
            return row, created, updated

        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while persisting artwork",
                context={"ref": progress.ref.describe(), "step": progress.step.value},
                original_exception=e,
            )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Artwork write rolled back: {type(e).__name__}",
                context={"ref": progress.ref.describe(), "step": progress.step.value},
                original_exception=e,
            )

    async def _record_start(self, ref: RawRef, source: DataSource):
        """Create the pending ledger entry on the first attempt."""
        try:
            async with self.context.session_maker() as session:
                async with session.begin():
                    await ImportTracker(session).ensure(ref, source)
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while recording import start",
                context={"ref": ref.describe()},
                original_exception=e,
            )

    async def _record_failure(
        self,
        progress: ItemProgress,
        source: DataSource,
        step: ImportStep,
        error: Exception,
        count_attempt: bool,
    ):
        try:
            async with self.context.session_maker() as session:
                async with session.begin():
                    await ImportTracker(session).record_attempt(
                        progress.ref,
                        ImportOutcome.failure(step.value, error, **progress.snapshots()),
                        data_source=source,
                        count_attempt=count_attempt,
                    )
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while recording import failure",
                context={"ref": progress.ref.describe(), "failed_step": step.value},
                original_exception=e,
            )

    # ------------------------------------------------------------------
    # Refetch
    # ------------------------------------------------------------------

    async def refetch_artwork(self, artwork_id: int) -> RefetchResult:
        """
        Re-fetch an artwork from its source and sparse-merge the result.

        Only fields with a new, non-empty value overwrite stored values.

        Raises:
            NotFound: Unknown artwork, or the token is gone upstream
            IngestionException: Any pipeline failure (also recorded in the ledger)
        """
        try:
            async with self.context.session_maker() as session:
                artwork = await ArtworkLoader(session).get(artwork_id)
                record = await ImportTracker(session).find_for_artwork(artwork_id) if artwork else None
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while loading artwork",
                context={"artwork_id": artwork_id},
                original_exception=e,
            )

        if artwork is None:
            raise NotFound(f"Artwork {artwork_id} not found", context={"artwork_id": artwork_id})

        source, ref = self._refetch_target(artwork, record)
        adapter = self.context.adapter_for(source)
        progress = ItemProgress(ref)
        logger.info(f"Refetching artwork {artwork_id} from {source.value} ({ref.describe()})")

        try:
            await self._fetch_and_prepare(adapter, progress)
            row, _, updated = await self._persist(progress, source, count_attempt=True, artwork_id=artwork_id)
        except StorageUnavailable:
            raise
        except IngestionException as e:
            logger.error(f"Refetch of artwork {artwork_id} failed at {progress.step.value}: {e.message}")
            await self._record_failure(progress, source, progress.step, e, count_attempt=True)
            raise

        message = NO_CHANGES if not updated else f"Updated {len(updated)} fields"
        logger.info(f"Refetched artwork {artwork_id}: {message}")
        return RefetchResult(artwork=row, updated_fields=updated, message=message)

    @staticmethod
    def _refetch_target(artwork: Artwork, record) -> Tuple[DataSource, RawRef]:
        if record is not None and record.data_source:
            source = DataSource(record.data_source)
        elif not (artwork.contract_address and artwork.token_id):
            source = DataSource.METADATA_URL
        else:
            source = default_source_for(artwork.blockchain)

        has_token = bool(artwork.contract_address and artwork.token_id)
        ref = RawRef(
            contract_address=artwork.contract_address,
            token_id=artwork.token_id,
            blockchain=artwork.blockchain,
            metadata_url=artwork.metadata_url,
            # Title is only identity for artworks without a token
            title=None if has_token else artwork.title,
        )
        return source, ref

    # ------------------------------------------------------------------
    # Wallets and retries
    # ------------------------------------------------------------------

    async def import_wallet(
        self,
        source,
        wallet: str,
        kind: IndexType = IndexType.OWNED,
        max_items: Optional[int] = None,
    ) -> BatchResult:
        """List a wallet's NFTs, record them as pending, then import them."""
        source = DataSource(source)
        adapter = self.context.adapter_for(source)
        refs = await adapter.list_wallet_nfts(wallet, kind=kind, max_items=max_items)
        logger.info(f"Found {len(refs)} {kind.value} NFTs for {wallet} on {source.value}")

        try:
            async with self.context.session_maker() as session:
                async with session.begin():
                    tracker = ImportTracker(session)
                    for ref in refs:
                        await tracker.ensure(ref, source)
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while recording wallet listing",
                context={"wallet": wallet, "source": source.value},
                original_exception=e,
            )

        return await self.import_batch(source, refs)

    async def retry_records(self, ids: Sequence[int]) -> BatchResult:
        """Operator retry: failed records go back to pending and are re-imported."""
        try:
            async with self.context.session_maker() as session:
                async with session.begin():
                    records = await ImportTracker(session).mark_pending(ids)
                    targets = [
                        (DataSource(r.data_source) if r.data_source else default_source_for(r.blockchain), ref_from_record(r))
                        for r in records
                    ]
        except STORAGE_ERRORS as e:
            raise StorageUnavailable(
                "Database unavailable while marking records pending",
                context={"ids": list(ids)},
                original_exception=e,
            )

        by_source: Dict[DataSource, List[RawRef]] = {}
        for source, ref in targets:
            by_source.setdefault(source, []).append(ref)

        result = BatchResult()
        for source, refs in by_source.items():
            result.extend(await self.import_batch(source, refs, count_attempt=False))
        return result

    async def retry_failed(
        self,
        max_attempts: Optional[int] = None,
        limit: int = 100,
        data_source: Optional[DataSource] = None,
    ) -> BatchResult:
        """Retry sweep over failed records below the attempt cap."""
        async with self.context.session_maker() as session:
            records = await ImportTracker(session).list_retryable(
                data_source=data_source,
                max_attempts=max_attempts,
                limit=limit,
            )
            ids = [r.id for r in records]

        if not ids:
            logger.info("Retry sweep: nothing to retry")
            return BatchResult()

        logger.info(f"Retry sweep: retrying {len(ids)} failed imports")
        return await self.retry_records(ids)
