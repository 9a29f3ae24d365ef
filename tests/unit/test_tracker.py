"""
Tests for the import ledger
"""

import hashlib

import pytest

from core.exceptions import MediaFetchError
from ingestion.tracker import ImportOutcome, ImportTracker, OFFCHAIN_PREFIX, ref_from_record, tracker_key
from models.base import DataSource, ImportStatus, IndexType
from schemas.sources import RawRef


class TestTrackerKey:

    def test_token_reference(self):
        assert tracker_key(RawRef(contract_address="0xABC", token_id=42)) == ("0xabc", "42")

    def test_evm_contract_case_is_folded(self):
        mixed = RawRef(contract_address="0x1234567890ABCDEF1234567890ABCDEF12345678", token_id="7")
        lower = RawRef(contract_address="0x1234567890abcdef1234567890abcdef12345678", token_id="7")

        assert tracker_key(mixed) == tracker_key(lower)

    def test_tezos_contract_case_is_kept(self):
        ref = RawRef(contract_address="KT1RJ6PbjHpwc3M5rw5s2Nbmefwbuwbdxton", token_id="1")
        assert tracker_key(ref) == ("KT1RJ6PbjHpwc3M5rw5s2Nbmefwbuwbdxton", "1")

    def test_offchain_reference(self):
        url = "ipfs://Qm123/meta.json"
        expected = OFFCHAIN_PREFIX + hashlib.sha256(url.encode()).hexdigest()

        assert tracker_key(RawRef(metadata_url=url)) == ("", expected)
        assert tracker_key(RawRef(metadata_url=url, title="Ignored")) == ("", expected)
        assert tracker_key(RawRef(title="Only a title"))[1].startswith(OFFCHAIN_PREFIX)

    def test_untrackable(self):
        assert tracker_key(RawRef()) is None
        assert tracker_key(RawRef(contract_address="0xABC")) is None


def test_outcome_constructors():
    success = ImportOutcome.success(7, blockchain="tezos")
    failure = ImportOutcome.failure("resolving-media", MediaFetchError("gateway timeout"))

    assert success.status == ImportStatus.SUCCESS
    assert success.artwork_id == 7
    assert failure.status == ImportStatus.FAILED
    assert failure.error_type == "MediaFetchError"
    assert failure.error_message == "gateway timeout"
    assert failure.step == "resolving-media"


class TestImportTracker:

    @pytest.mark.asyncio
    async def test_ensure_is_get_or_create(self, db_session):
        tracker = ImportTracker(db_session)
        ref = RawRef(contract_address="KT1abc", token_id="1", index_type=IndexType.OWNED)

        first = await tracker.ensure(ref, DataSource.OBJKT)
        second = await tracker.ensure(RawRef(contract_address="KT1abc", token_id="1", blockchain="tezos"), DataSource.TZKT)

        assert first.id == second.id
        assert second.import_status == ImportStatus.PENDING
        assert second.attempt_count == 0
        assert second.data_source == "objkt"
        assert second.blockchain == "tezos"
        assert second.nft_uid == "kt1abc:1"

    @pytest.mark.asyncio
    async def test_created_outranks_owned(self, db_session):
        tracker = ImportTracker(db_session)

        await tracker.ensure(RawRef(contract_address="KT1abc", token_id="1", index_type=IndexType.OWNED))
        record = await tracker.ensure(RawRef(contract_address="KT1abc", token_id="1", index_type=IndexType.CREATED))
        record = await tracker.ensure(RawRef(contract_address="KT1abc", token_id="1", index_type=IndexType.OWNED))

        assert record.index_type == IndexType.CREATED

    @pytest.mark.asyncio
    async def test_record_attempts(self, db_session):
        tracker = ImportTracker(db_session)
        ref = RawRef(contract_address="KT1abc", token_id="1")

        failed = await tracker.record_attempt(ref, ImportOutcome.failure("fetching", MediaFetchError("down")))
        assert failed.import_status == ImportStatus.FAILED
        assert failed.attempt_count == 1

        done = await tracker.record_attempt(ref, ImportOutcome.success(3), count_attempt=False)
        assert done.import_status == ImportStatus.SUCCESS
        assert done.attempt_count == 1
        assert done.failed_step is None

        kept = await tracker.record_attempt(ref, ImportOutcome.failure("fetching", MediaFetchError("down again")))
        assert kept.import_status == ImportStatus.SUCCESS
        assert kept.artwork_id == 3

    @pytest.mark.asyncio
    async def test_untrackable_outcome(self, db_session):
        outcome = ImportOutcome.failure("fetching", MediaFetchError("x"))
        assert await ImportTracker(db_session).record_attempt(RawRef(), outcome) is None

    @pytest.mark.asyncio
    async def test_include_pending(self, db_session):
        tracker = ImportTracker(db_session)
        await tracker.ensure(RawRef(contract_address="KT1abc", token_id="1"))

        assert await tracker.list_retryable() == []
        assert len(await tracker.list_retryable(include_pending=True)) == 1

    @pytest.mark.asyncio
    async def test_ref_from_offchain_record(self, db_session):
        ref = RawRef(metadata_url="ipfs://Qm123/meta.json", blockchain="ethereum")
        record = await ImportTracker(db_session).record_attempt(
            ref,
            ImportOutcome.failure("resolving-media", MediaFetchError("x"), raw_response={"title": "Loose"}),
            data_source=DataSource.METADATA_URL,
        )

        rebuilt = ref_from_record(record)

        assert rebuilt.contract_address is None
        assert rebuilt.token_id is None
        assert rebuilt.metadata_url == "ipfs://Qm123/meta.json"
        assert rebuilt.title == "Loose"
        assert tracker_key(rebuilt) == tracker_key(ref)
