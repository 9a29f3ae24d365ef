"""
Artwork endpoints: lookup and refetch
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_orchestrator
from schemas.api import ArtworkSummary, RefetchResponse
from ingestion.loaders.artwork_loader import ArtworkLoader
from ingestion.runner import ImportOrchestrator
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/artworks", tags=["Artworks"])


@router.get("/{artwork_id}", response_model=ArtworkSummary)
async def get_artwork(artwork_id: int, db: AsyncSession = Depends(get_db)):
    artwork = await ArtworkLoader(db).get(artwork_id)
    if artwork is None:
        raise HTTPException(status_code=404, detail=f"Artwork {artwork_id} not found")
    return ArtworkSummary.model_validate(artwork)


@router.post("/{artwork_id}/refetch", response_model=RefetchResponse)
async def refetch_artwork(
    artwork_id: int,
    request: Request,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Re-fetch an artwork from its source.

    Only fields with a new, non-empty value are overwritten; the response
    lists them, or says that nothing changed.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /artworks/{artwork_id}/refetch")

    result = await orchestrator.refetch_artwork(artwork_id)
    return RefetchResponse(
        artwork_id=result.artwork.id,
        updated_fields=result.updated_fields,
        message=result.message,
        artwork=ArtworkSummary.model_validate(result.artwork),
    )
