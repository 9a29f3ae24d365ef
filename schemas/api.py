"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from models.base import ImportStatus, IndexType
from schemas.sources import RawRef


# ============================================================================
# Import Schemas
# ============================================================================

class ImportRequest(BaseModel):
    """Batch of references to import from one source"""
    nfts: List[RawRef] = Field(..., max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "nfts": [
                    {"contract_address": "0xABC", "token_id": "42", "metadata_url": "ipfs://Qm123/meta.json"}
                ]
            }
        }


class WalletImportRequest(BaseModel):
    wallet: str = Field(..., min_length=1, max_length=128)
    kind: IndexType = IndexType.OWNED
    max_items: Optional[int] = Field(None, ge=1, le=10000)


class ArtworkSummary(BaseModel):
    """Persisted artwork as returned by import and refetch endpoints"""
    id: int
    uid: str
    title: str
    description: Optional[str] = None
    blockchain: Optional[str] = None
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    token_standard: Optional[str] = None
    image_url: Optional[str] = None
    animation_url: Optional[str] = None
    generator_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    metadata_url: Optional[str] = None
    mime: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    supply: Optional[int] = None
    mint_date: Optional[datetime] = None
    collection_id: Optional[int] = None

    class Config:
        from_attributes = True


class ImportFailureResponse(BaseModel):
    ref: RawRef
    error: str
    error_type: str
    step: str

    class Config:
        from_attributes = True


class ImportResponse(BaseModel):
    """Per-item outcome of a batch import"""
    succeeded_count: int
    failed_count: int
    succeeded: List[ArtworkSummary] = Field(default_factory=list)
    failed: List[ImportFailureResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result) -> "ImportResponse":
        return cls(
            succeeded_count=len(result.succeeded),
            failed_count=len(result.failed),
            succeeded=[ArtworkSummary.model_validate(a) for a in result.succeeded],
            failed=[ImportFailureResponse.model_validate(f) for f in result.failed],
        )


class RefetchResponse(BaseModel):
    artwork_id: int
    updated_fields: List[str] = Field(default_factory=list)
    message: str
    artwork: Optional[ArtworkSummary] = None


# ============================================================================
# Import Ledger Schemas
# ============================================================================

class ImportRecordResponse(BaseModel):
    id: int
    contract_address: str
    token_id: str
    nft_uid: str
    blockchain: Optional[str] = None
    data_source: Optional[str] = None
    index_type: Optional[IndexType] = None
    import_status: ImportStatus
    attempt_count: int
    last_attempt: Optional[datetime] = None
    failed_step: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    artwork_id: Optional[int] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class RetryRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=1000)


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    pending_imports: int = 0
    failed_imports: int = 0
    retry_sweep_enabled: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "pending_imports": 0,
                "failed_imports": 2,
                "retry_sweep_enabled": True,
            }
        }
