"""
FastAPI dependencies shared by the routes
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import PipelineContext
from ingestion.runner import ImportOrchestrator


def get_context(request: Request) -> PipelineContext:
    """Pipeline context built at startup (or injected by tests)"""
    return request.app.state.context


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Database session from the pipeline context's session factory"""
    async with get_context(request).session_maker() as session:
        yield session


def get_orchestrator(request: Request) -> ImportOrchestrator:
    return ImportOrchestrator(get_context(request))
