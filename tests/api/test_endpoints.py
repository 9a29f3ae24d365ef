"""
API endpoint tests
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api.main import create_app, status_code_for
from core.config import settings
from core.context import PipelineContext
from core.database import build_engine, build_session_maker
from core.exceptions import (
    MalformedSource,
    MediaFetchError,
    NotFound,
    RateLimitError,
    SourceUnavailable,
    StorageUnavailable,
)
from tests.helpers import GATEWAY, OPENSEA, opensea_nft

META = GATEWAY + "Qm123/meta.json"
IMAGE = GATEWAY + "Qm456/img.png"
CONTRACT = "0x1234567890abcdef1234567890abcdef12345678"
NFT_URL = f"{OPENSEA}/chain/ethereum/contract/{CONTRACT}/nfts/7"

SCENARIO = {
    "nfts": [
        {"contract_address": "0xABC", "token_id": "42", "title": "", "metadata_url": "ipfs://Qm123/meta.json"}
    ]
}


def build_app(context: PipelineContext):
    app = create_app()
    app.state.context = context
    app.state.scheduler = None
    return app


@pytest_asyncio.fixture
async def client(context):
    """Async client against the app; startup is skipped so the test context is used"""
    transport = httpx.ASGITransport(app=build_app(context))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def scenario(upstream, png_bytes):
    upstream.get(META, httpx.Response(200, json={"name": "Untitled Piece", "image": "ipfs://Qm456/img.png"}))
    upstream.get(IMAGE, httpx.Response(200, content=png_bytes))
    return upstream


def test_root_endpoint(monkeypatch):
    monkeypatch.setattr(settings, "RETRY_SWEEP_ENABLED", False)
    app = create_app()
    app.state.context = MagicMock(aclose=AsyncMock())

    with TestClient(app) as test_client:
        response = test_client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "NFT Ingestion API"
    assert data["endpoints"]["refetch"] == "/artworks/{id}/refetch"


@pytest.mark.parametrize("error,expected", [
    (NotFound("gone"), 404),
    (MalformedSource("bad"), 422),
    (SourceUnavailable("down"), 502),
    (RateLimitError("slow"), 502),
    (StorageUnavailable("db"), 503),
    (MediaFetchError("media"), 500),
])
def test_error_status_codes(error, expected):
    assert status_code_for(error) == expected


@pytest.mark.asyncio
async def test_health_endpoint(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["failed_imports"] == 0
    assert data["retry_sweep_enabled"] is False


@pytest.mark.asyncio
async def test_request_id_header(client):
    response = await client.get("/health", headers={"X-Request-ID": "req_fromcaller"})

    assert response.headers["X-Request-ID"] == "req_fromcaller"
    assert "X-API-Latency-ms" in response.headers

    generated = await client.get("/health")
    assert generated.headers["X-Request-ID"].startswith("req_")


@pytest.mark.asyncio
async def test_import_and_lookup(client, scenario):
    response = await client.post("/import/metadata_url", json=SCENARIO)

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded_count"] == 1
    assert data["failed_count"] == 0
    artwork = data["succeeded"][0]
    assert artwork["title"] == "Untitled Piece"
    assert artwork["image_url"] == IMAGE
    assert artwork["contract_address"] == "0xabc"

    lookup = await client.get(f"/artworks/{artwork['id']}")
    assert lookup.status_code == 200
    assert lookup.json()["uid"] == artwork["uid"]


@pytest.mark.asyncio
async def test_import_reports_items_individually(client, scenario):
    payload = {"nfts": SCENARIO["nfts"] + [{}]}

    response = await client.post("/import/metadata_url", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["succeeded_count"] == 1
    assert data["failed_count"] == 1
    assert data["failed"][0]["error_type"] == "MalformedSource"
    assert data["failed"][0]["step"] == "fetching"


@pytest.mark.asyncio
async def test_import_validation(client):
    assert (await client.post("/import/metadata_url", json={})).status_code == 422
    assert (await client.post("/import/foundation", json=SCENARIO)).status_code == 404


@pytest.mark.asyncio
async def test_wallet_import_unsupported_source(client):
    response = await client.post("/import/metadata_url/wallet", json={"wallet": "0xwallet"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_opensea_created_listing_rejected(client, upstream):
    response = await client.post("/import/opensea/wallet", json={"wallet": "0xwallet", "kind": "created"})

    assert response.status_code == 400
    assert "owns" in response.json()["detail"]
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_refetch(client, scenario):
    created = (await client.post("/import/metadata_url", json=SCENARIO)).json()["succeeded"][0]

    response = await client.post(f"/artworks/{created['id']}/refetch")

    assert response.status_code == 200
    data = response.json()
    assert data["artwork_id"] == created["id"]
    assert data["updated_fields"] == []
    assert data["message"] == "No changes detected"


@pytest.mark.asyncio
async def test_refetch_errors(client, upstream, png_bytes):
    missing = await client.post("/artworks/999/refetch")
    assert missing.status_code == 404
    assert missing.json()["error_type"] == "NotFound"
    assert (await client.get("/artworks/999")).status_code == 404

    upstream.get(NFT_URL, httpx.Response(200, json={"nft": opensea_nft()}))
    upstream.get(GATEWAY + "QmOsImage/piece.png", httpx.Response(200, content=png_bytes))
    imported = await client.post("/import/opensea", json={"nfts": [{"contract_address": CONTRACT, "token_id": "7"}]})
    artwork_id = imported.json()["succeeded"][0]["id"]

    upstream.get(NFT_URL, httpx.Response(503))
    response = await client.post(f"/artworks/{artwork_id}/refetch")

    assert response.status_code == 502
    body = response.json()
    assert body["error_type"] == "SourceUnavailable"
    assert body["retryable"] is True


@pytest.mark.asyncio
async def test_retry_flow(client, upstream, png_bytes):
    upstream.get(META, httpx.Response(200, json={"name": "Flaky", "image": "ipfs://Qm456/img.png"}))
    upstream.get(IMAGE, httpx.Response(503))

    failed = (await client.post("/import/metadata_url", json=SCENARIO)).json()
    assert failed["failed"][0]["error_type"] == "MediaFetchError"

    health = (await client.get("/health")).json()
    assert health["status"] == "degraded"
    assert health["failed_imports"] == 1

    listed = await client.get("/imports/retryable", params={"data_source": "metadata_url"})
    assert listed.status_code == 200
    records = listed.json()
    assert len(records) == 1
    assert records[0]["import_status"] == "failed"
    assert records[0]["failed_step"] == "resolving-media"
    assert records[0]["attempt_count"] == 1

    upstream.get(IMAGE, httpx.Response(200, content=png_bytes))
    retried = await client.post("/imports/retry", json={"ids": [records[0]["id"]]})

    assert retried.status_code == 200
    assert retried.json()["succeeded_count"] == 1
    assert (await client.get("/imports/retryable")).json() == []
    assert (await client.get("/health")).json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_storage_outage(tmp_path, http_client, fast_policy, scenario):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'db.sqlite'}")
    context = PipelineContext.build(build_session_maker(engine), http_client, policy=fast_policy, ipfs_gateway=GATEWAY)
    transport = httpx.ASGITransport(app=build_app(context))

    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        imported = await test_client.post("/import/metadata_url", json=SCENARIO)
        health = await test_client.get("/health")

    assert imported.status_code == 503
    assert imported.json()["error_type"] == "StorageUnavailable"
    assert health.json()["status"] == "unhealthy"

    await engine.dispose()
