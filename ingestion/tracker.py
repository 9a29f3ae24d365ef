"""
Import ledger: one ImportRecord per (contract_address, token_id).

Status transitions:
    pending -> success | failed
    failed  -> pending   (operator retry, counts as an attempt)
    success is terminal; automatic outcomes never downgrade it
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.transformers.chains import detect_blockchain, generate_nft_uid, normalize_address
from models.base import DataSource, ImportStatus, IndexType
from models.import_record import ImportRecord
from schemas.sources import RawRef

logger = logging.getLogger(__name__)

OFFCHAIN_PREFIX = "offchain:"


@dataclass
class ImportOutcome:
    """Result of one pipeline run for one reference."""
    status: ImportStatus
    step: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None
    normalized_data: Optional[Dict[str, Any]] = None
    artwork_id: Optional[int] = None
    blockchain: Optional[str] = None

    @classmethod
    def success(cls, artwork_id: int, **snapshots) -> "ImportOutcome":
        return cls(status=ImportStatus.SUCCESS, artwork_id=artwork_id, **snapshots)

    @classmethod
    def failure(cls, step: str, error: Exception, **snapshots) -> "ImportOutcome":
        return cls(
            status=ImportStatus.FAILED,
            step=step,
            error_type=type(error).__name__,
            error_message=getattr(error, "message", None) or str(error),
            **snapshots,
        )


def tracker_key(ref: RawRef) -> Optional[Tuple[str, str]]:
    """
    Ledger key for a reference.

    Tokens use (contract, token id) with EVM contracts lowercased, matching
    the artwork key. References known only by a metadata
    URL or a title get a synthetic key; a reference with none of these
    cannot be tracked.
    """
    if ref.contract_address and ref.token_id:
        blockchain = ref.blockchain or detect_blockchain(ref.contract_address)
        return normalize_address(ref.contract_address, blockchain), ref.token_id
    seed = ref.metadata_url or ref.title
    if not seed:
        return None
    return "", OFFCHAIN_PREFIX + hashlib.sha256(seed.encode("utf-8")).hexdigest()


class ImportTracker:
    """Reads and writes ImportRecords inside the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        return pg_insert if dialect == "postgresql" else sqlite_insert

    async def find(self, contract_address: str, token_id: str) -> Optional[ImportRecord]:
        contract_address = normalize_address(contract_address, detect_blockchain(contract_address)) or ""
        result = await self.session.execute(
            select(ImportRecord).where(
                ImportRecord.contract_address == contract_address,
                ImportRecord.token_id == token_id,
            )
        )
        return result.scalars().first()

    async def get_many(self, ids: Sequence[int]) -> List[ImportRecord]:
        if not ids:
            return []
        result = await self.session.execute(
            select(ImportRecord).where(ImportRecord.id.in_(list(ids))).order_by(ImportRecord.id)
        )
        return list(result.scalars().all())

    async def find_for_artwork(self, artwork_id: int) -> Optional[ImportRecord]:
        result = await self.session.execute(
            select(ImportRecord).where(ImportRecord.artwork_id == artwork_id)
        )
        return result.scalars().first()

    async def ensure(
        self,
        ref: RawRef,
        data_source: Optional[DataSource] = None,
    ) -> Optional[ImportRecord]:
        """
        Get or create the pending record for ``ref``.

        Uses INSERT ... ON CONFLICT DO NOTHING on (contract_address, token_id)
        so concurrent first attempts share one row.
        """
        key = tracker_key(ref)
        if key is None:
            return None
        contract_address, token_id = key

        insert = self._insert()
        stmt = insert(ImportRecord).values(
            contract_address=contract_address,
            token_id=token_id,
            nft_uid=generate_nft_uid(contract_address, token_id),
            blockchain=ref.blockchain,
            data_source=DataSource(data_source).value if data_source else None,
            index_type=ref.index_type,
            metadata_url=ref.metadata_url,
        ).on_conflict_do_nothing(index_elements=["contract_address", "token_id"])
        await self.session.execute(stmt)

        record = await self.find(contract_address, token_id)
        if record is not None:
            self._merge_ref(record, ref, data_source)
        return record

    @staticmethod
    def _merge_ref(record: ImportRecord, ref: RawRef, data_source: Optional[DataSource]):
        if ref.index_type == IndexType.CREATED and record.index_type != IndexType.CREATED:
            # A creator listing outranks an owner listing
            record.index_type = IndexType.CREATED
        elif record.index_type is None and ref.index_type is not None:
            record.index_type = ref.index_type
        if data_source and not record.data_source:
            record.data_source = DataSource(data_source).value
        if ref.metadata_url and not record.metadata_url:
            record.metadata_url = ref.metadata_url
        if ref.blockchain and not record.blockchain:
            record.blockchain = ref.blockchain

    async def record_attempt(
        self,
        ref: RawRef,
        outcome: ImportOutcome,
        data_source: Optional[DataSource] = None,
        count_attempt: bool = True,
    ) -> Optional[ImportRecord]:
        """
        Store the outcome of one attempt.

        Args:
            count_attempt: False when the attempt was already counted by mark_pending

        Returns:
            The updated record, or None for references that cannot be keyed
        """
        record = await self.ensure(ref, data_source)
        if record is None:
            logger.warning(f"Untracked import outcome for {ref.describe()}: {outcome.status.value}")
            return None

        if record.import_status == ImportStatus.SUCCESS and outcome.status != ImportStatus.SUCCESS:
            logger.info(
                f"Ignoring {outcome.status.value} outcome for {record.nft_uid}: "
                f"record already succeeded ({outcome.error_type})"
            )
            return record

        if count_attempt:
            record.attempt_count = (record.attempt_count or 0) + 1
        record.last_attempt = datetime.utcnow()
        record.import_status = outcome.status

        if outcome.status == ImportStatus.SUCCESS:
            record.failed_step = None
            record.error_type = None
            record.error_message = None
        else:
            record.failed_step = outcome.step
            record.error_type = outcome.error_type
            record.error_message = outcome.error_message

        if outcome.raw_response is not None:
            record.raw_response = outcome.raw_response
        if outcome.normalized_data is not None:
            record.normalized_data = outcome.normalized_data
        if outcome.artwork_id is not None:
            record.artwork_id = outcome.artwork_id
        if outcome.blockchain and not record.blockchain:
            record.blockchain = outcome.blockchain

        await self.session.flush()
        return record

    async def list_retryable(
        self,
        data_source: Optional[DataSource] = None,
        blockchain: Optional[str] = None,
        max_attempts: Optional[int] = None,
        include_pending: bool = False,
        limit: int = 100,
    ) -> List[ImportRecord]:
        """Failed (and optionally pending) records, oldest attempt first. Never successes."""
        statuses = [ImportStatus.FAILED]
        if include_pending:
            statuses.append(ImportStatus.PENDING)

        query = select(ImportRecord).where(ImportRecord.import_status.in_(statuses))
        if data_source:
            query = query.where(ImportRecord.data_source == DataSource(data_source).value)
        if blockchain:
            query = query.where(ImportRecord.blockchain == blockchain)
        if max_attempts is not None:
            query = query.where(ImportRecord.attempt_count < max_attempts)

        query = query.order_by(ImportRecord.last_attempt.asc(), ImportRecord.id.asc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_pending(self, ids: Sequence[int]) -> List[ImportRecord]:
        """Operator retry: move failed records back to pending and count the attempt."""
        moved = []
        for record in await self.get_many(ids):
            if record.import_status != ImportStatus.FAILED:
                logger.info(f"Not retrying {record.nft_uid}: status is {record.import_status.value}")
                continue
            record.import_status = ImportStatus.PENDING
            record.attempt_count = (record.attempt_count or 0) + 1
            record.last_attempt = datetime.utcnow()
            moved.append(record)

        await self.session.flush()
        logger.info(f"Marked {len(moved)} of {len(ids)} records pending")
        return moved


def ref_from_record(record: ImportRecord) -> RawRef:
    """Rebuild the reference a record was created from."""
    offchain = record.token_id.startswith(OFFCHAIN_PREFIX) and not record.contract_address
    return RawRef(
        contract_address=None if offchain else record.contract_address,
        token_id=None if offchain else record.token_id,
        blockchain=record.blockchain,
        metadata_url=record.metadata_url,
        title=(record.raw_response or {}).get("title"),
        index_type=record.index_type,
    )
