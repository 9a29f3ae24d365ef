"""
Integration tests for batch imports: fetch -> normalize -> media -> identity -> persist
"""

import asyncio

import httpx
import pytest
from sqlalchemy import func, select

from core.context import PipelineContext
from core.database import build_engine, build_session_maker
from core.exceptions import StorageUnavailable
from ingestion.loaders.artwork_loader import ArtworkLoader
from ingestion.runner import ImportOrchestrator
from ingestion.tracker import ImportTracker
from models import Artist, Artwork, Collection, ImportRecord
from models.base import ImportStatus, IndexType
from schemas.sources import RawRef
from tests.helpers import GATEWAY, OBJKT, TZKT, objkt_token, tzkt_token

META = GATEWAY + "Qm123/meta.json"
IMAGE = GATEWAY + "Qm456/img.png"

SCENARIO_REF = RawRef(
    contract_address="0xABC",
    token_id="42",
    title="",
    metadata_url="ipfs://Qm123/meta.json",
)


@pytest.fixture
def scenario(upstream, png_bytes):
    upstream.get(META, httpx.Response(200, json={"name": "Untitled Piece", "image": "ipfs://Qm456/img.png"}))
    upstream.get(IMAGE, httpx.Response(200, content=png_bytes))
    return upstream


@pytest.fixture
def tezos_media(upstream, png_bytes):
    for cid in ("QmArtifact", "QmDisplay", "QmThumb"):
        upstream.get(GATEWAY + cid, httpx.Response(200, content=png_bytes))
    return upstream


async def count(session_maker, model) -> int:
    async with session_maker() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_metadata_url_import(orchestrator, scenario, session_maker):
    result = await orchestrator.import_batch("metadata_url", [SCENARIO_REF])

    assert result.failed == []
    artwork = result.succeeded[0]
    assert artwork.title == "Untitled Piece"
    assert artwork.image_url == IMAGE
    assert artwork.mime == "image/png"
    assert (artwork.width, artwork.height) == (4, 3)
    assert artwork.token_standard is None

    async with session_maker() as session:
        stored = await ArtworkLoader(session).find_by_key(None, "0xABC", "42")
        record = await ImportTracker(session).find("0xABC", "42")

    assert stored.id == artwork.id
    assert record.import_status == ImportStatus.SUCCESS
    assert record.artwork_id == artwork.id
    assert record.attempt_count == 1
    assert record.data_source == "metadata_url"
    assert record.raw_response["contract_address"] == "0xABC"
    assert record.normalized_data["title"] == "Untitled Piece"


@pytest.mark.asyncio
async def test_double_import_in_one_batch_creates_one_row(orchestrator, scenario, session_maker):
    result = await orchestrator.import_batch("metadata_url", [SCENARIO_REF, SCENARIO_REF])

    assert len(result.succeeded) == 2
    assert result.succeeded[0].id == result.succeeded[1].id
    assert await count(session_maker, Artwork) == 1
    assert await count(session_maker, ImportRecord) == 1


@pytest.mark.asyncio
async def test_concurrent_batches_create_one_row(context, scenario, session_maker):
    first, second = await asyncio.gather(
        ImportOrchestrator(context).import_batch("metadata_url", [SCENARIO_REF]),
        ImportOrchestrator(context).import_batch("metadata_url", [SCENARIO_REF]),
    )

    assert first.succeeded[0].id == second.succeeded[0].id
    assert await count(session_maker, Artwork) == 1


@pytest.mark.asyncio
async def test_reimport_is_idempotent(orchestrator, scenario, session_maker):
    first = await orchestrator.import_batch("metadata_url", [SCENARIO_REF])
    second = await orchestrator.import_batch("metadata_url", [SCENARIO_REF])

    assert first.succeeded[0].id == second.succeeded[0].id
    assert second.succeeded[0].title == "Untitled Piece"
    assert await count(session_maker, Artwork) == 1

    async with session_maker() as session:
        record = await ImportTracker(session).find("0xABC", "42")
    assert record.attempt_count == 2
    assert record.import_status == ImportStatus.SUCCESS


@pytest.mark.asyncio
async def test_one_bad_item_does_not_sink_the_batch(orchestrator, session_maker):
    refs = [RawRef(contract_address="0xABC", token_id=str(i), title=f"Piece {i}") for i in range(1, 6)]
    refs[2] = RawRef()

    result = await orchestrator.import_batch("metadata_url", refs)

    assert len(result.succeeded) == 4
    assert len(result.failed) == 1
    failure = result.failed[0]
    assert failure.error_type == "MalformedSource"
    assert failure.step == "fetching"
    assert result.error_details[0]["phase"] == "fetching"
    assert sorted(a.title for a in result.succeeded) == ["Piece 1", "Piece 2", "Piece 4", "Piece 5"]
    assert await count(session_maker, Artwork) == 4


@pytest.mark.asyncio
async def test_media_failure_is_recorded(orchestrator, upstream, session_maker):
    upstream.get(META, httpx.Response(200, json={"name": "Broken", "image": "ipfs://Qm456/img.png"}))
    upstream.get(IMAGE, httpx.Response(504))

    result = await orchestrator.import_batch("metadata_url", [SCENARIO_REF])

    assert result.succeeded == []
    assert result.failed[0].step == "resolving-media"
    assert result.failed[0].error_type == "MediaFetchError"
    assert await count(session_maker, Artwork) == 0

    async with session_maker() as session:
        record = await ImportTracker(session).find("0xABC", "42")
    assert record.import_status == ImportStatus.FAILED
    assert record.failed_step == "resolving-media"
    assert record.error_type == "MediaFetchError"
    assert record.normalized_data["title"] == "Broken"


@pytest.mark.asyncio
async def test_same_creator_across_sources(orchestrator, upstream, tezos_media, session_maker):
    upstream.post(OBJKT, httpx.Response(200, json={"data": {"token": [objkt_token()]}}))
    upstream.get(f"{TZKT}/tokens", httpx.Response(200, json=[tzkt_token(token_id="6")]))
    contract = "KT1TestContractAAAAAAAAAAAAAAAAAAAAA"

    from_objkt = await orchestrator.import_batch("objkt", [RawRef(contract_address=contract, token_id="5")])
    from_tzkt = await orchestrator.import_batch("tzkt", [RawRef(contract_address=contract, token_id="6")])

    objkt_artwork = from_objkt.succeeded[0]
    tzkt_artwork = from_tzkt.succeeded[0]
    assert objkt_artwork.id != tzkt_artwork.id
    assert [a.id for a in objkt_artwork.artists] == [a.id for a in tzkt_artwork.artists]
    assert objkt_artwork.artists[0].name == "calmartist"
    assert objkt_artwork.collection_id == tzkt_artwork.collection_id

    assert await count(session_maker, Artist) == 1
    assert await count(session_maker, Collection) == 1

    async with session_maker() as session:
        collection = (await session.execute(select(Collection))).scalar_one()
    assert collection.slug == "calm-series"
    assert [a.name for a in collection.artists] == ["calmartist"]
    assert collection.creator_id == objkt_artwork.artists[0].id


@pytest.mark.asyncio
async def test_hosted_media(hosted_context, hosting, scenario):
    result = await ImportOrchestrator(hosted_context).import_batch("metadata_url", [SCENARIO_REF])

    artwork = result.succeeded[0]
    assert artwork.image_url.startswith("memory://media/img_")
    assert hosting.upload_count == 1


@pytest.mark.asyncio
async def test_wallet_import(orchestrator, upstream, tezos_media, session_maker):
    # Listing and token lookup share the endpoint
    upstream.get(f"{TZKT}/tokens", httpx.Response(200, json=[tzkt_token()]))

    result = await orchestrator.import_wallet(
        "tzkt", "tz1CreatorAAAAAAAAAAAAAAAAAAAAAAAAAA", kind=IndexType.CREATED,
    )

    assert len(result.succeeded) == 1
    listing = upstream.requests[0]
    assert listing.url.params["firstMinter"] == "tz1CreatorAAAAAAAAAAAAAAAAAAAAAAAAAA"

    async with session_maker() as session:
        record = await ImportTracker(session).find("KT1TestContractAAAAAAAAAAAAAAAAAAAAA", "5")
    assert record.index_type == IndexType.CREATED
    assert record.import_status == ImportStatus.SUCCESS


@pytest.mark.asyncio
async def test_unknown_source(orchestrator):
    with pytest.raises(ValueError):
        await orchestrator.import_batch("foundation", [SCENARIO_REF])


@pytest.mark.asyncio
async def test_database_outage_aborts_batch(tmp_path, http_client, fast_policy, scenario):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}")
    context = PipelineContext.build(
        build_session_maker(engine), http_client, policy=fast_policy, media_policy=fast_policy, ipfs_gateway=GATEWAY,
    )

    with pytest.raises(StorageUnavailable):
        await ImportOrchestrator(context).import_batch("metadata_url", [SCENARIO_REF])

    await engine.dispose()
