"""
Pytest configuration and fixtures
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import PipelineContext
from core.database import build_engine, build_session_maker
from core.retry import RetryPolicy
from ingestion.media.hosting import InMemoryHostingProvider
from ingestion.runner import ImportOrchestrator
from models import Base
from tests.helpers import GATEWAY, FakeUpstream, make_png


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_attempts=2, backoff_base=0, timeout=5)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest_asyncio.fixture
async def http_client(upstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    client = upstream.client()
    yield client
    await client.aclose()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite engine; every transaction takes the write lock up front"""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return build_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def hosting():
    return InMemoryHostingProvider()


@pytest.fixture
def context(session_maker, http_client, fast_policy) -> PipelineContext:
    """Pipeline without a hosting provider: media keeps gateway URLs"""
    return PipelineContext.build(
        session_maker,
        http_client,
        policy=fast_policy,
        media_policy=fast_policy,
        concurrency=4,
        ipfs_gateway=GATEWAY,
    )


@pytest.fixture
def hosted_context(session_maker, http_client, fast_policy, hosting) -> PipelineContext:
    return PipelineContext.build(
        session_maker,
        http_client,
        hosting=hosting,
        policy=fast_policy,
        media_policy=fast_policy,
        concurrency=4,
        ipfs_gateway=GATEWAY,
    )


@pytest.fixture
def orchestrator(context) -> ImportOrchestrator:
    return ImportOrchestrator(context)


@pytest.fixture
def png_bytes():
    return make_png(4, 3)
