"""
Health check endpoint with database and import ledger status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from models.base import ImportStatus
from models.import_record import ImportRecord
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Pending and failed import counts from the ledger
    - Whether the retry sweep is running

    Status is ``unhealthy`` without a database and ``degraded`` while
    failed imports are waiting for a retry.
    """
    db_connected = False
    counts = {}

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True

        result = await db.execute(
            select(ImportRecord.import_status, func.count())
            .group_by(ImportRecord.import_status)
        )
        counts = {status: count for status, count in result.all()}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {str(e)}")

    failed = counts.get(ImportStatus.FAILED, 0)
    if not db_connected:
        status = "unhealthy"
    elif failed:
        status = "degraded"
    else:
        status = "healthy"

    scheduler = getattr(request.app.state, "scheduler", None)

    return HealthCheckResponse(
        status=status,
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        pending_imports=counts.get(ImportStatus.PENDING, 0),
        failed_imports=failed,
        retry_sweep_enabled=bool(scheduler and scheduler.scheduler.running),
    )
