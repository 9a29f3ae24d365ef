"""
Import endpoints: batch import, wallet import and the retry ledger
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_orchestrator
from schemas.api import (
    ImportRequest,
    ImportResponse,
    WalletImportRequest,
    ImportRecordResponse,
    RetryRequest,
)
from ingestion.runner import ImportOrchestrator
from ingestion.tracker import ImportTracker
from models.base import DataSource
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Imports"])


def _source_or_404(source: str) -> DataSource:
    try:
        return DataSource(source)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source}")


@router.post("/import/{source}", response_model=ImportResponse)
async def import_nfts(
    source: str,
    payload: ImportRequest,
    request: Request,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Import a batch of NFT references from one source.

    Every item is reported individually; a malformed or missing item never
    fails the whole request.
    """
    data_source = _source_or_404(source)
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /import/{data_source.value} - {len(payload.nfts)} items")

    result = await orchestrator.import_batch(data_source, payload.nfts)
    return ImportResponse.from_result(result)


@router.post("/import/{source}/wallet", response_model=ImportResponse)
async def import_wallet(
    source: str,
    payload: WalletImportRequest,
    request: Request,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Import every NFT a wallet created or owns on the given source."""
    data_source = _source_or_404(source)
    request_id = getattr(request.state, "request_id", "-")
    logger.info(
        f"[{request_id}] POST /import/{data_source.value}/wallet - "
        f"{payload.kind.value} NFTs of {payload.wallet}"
    )

    try:
        result = await orchestrator.import_wallet(
            data_source, payload.wallet, kind=payload.kind, max_items=payload.max_items
        )
    except NotImplementedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ImportResponse.from_result(result)


@router.get("/imports/retryable", response_model=List[ImportRecordResponse])
async def list_retryable(
    data_source: Optional[DataSource] = Query(None, description="Filter by source"),
    blockchain: Optional[str] = Query(None, description="Filter by blockchain"),
    include_pending: bool = Query(False, description="Also list pending records"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Failed imports eligible for a retry, oldest attempt first."""
    records = await ImportTracker(db).list_retryable(
        data_source=data_source,
        blockchain=blockchain,
        include_pending=include_pending,
        limit=limit,
    )
    return [ImportRecordResponse.model_validate(r) for r in records]


@router.post("/imports/retry", response_model=ImportResponse)
async def retry_imports(
    payload: RetryRequest,
    request: Request,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Move failed records back to pending and import them again."""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /imports/retry - {len(payload.ids)} records")

    result = await orchestrator.retry_records(payload.ids)
    return ImportResponse.from_result(result)
