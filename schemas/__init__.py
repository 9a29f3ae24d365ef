"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models for every boundary of the import
pipeline:

Schemas:
    sources: Upstream payloads (OpenSea, objkt, tzkt, metadata URL) as a
             tagged union, import references (RawRef) and RawNFT
    normalized: Canonical NormalizedArtwork plus creator/collection hints
    api: API endpoint request/response schemas

Features:
    - Untyped upstream JSON is parsed at the adapter boundary
    - Type coercion for ids, dimensions and attribute values
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.sources import RawRef, RawNFT
    from schemas.normalized import NormalizedArtwork
    from schemas.api import ImportRequest, ImportResponse

Example:
    ref = RawRef(contract_address="0xABC", token_id=42)

    # Token ids are always strings
    assert ref.token_id == "42"
"""

__all__ = [
    "RawRef",
    "RawNFT",
    "OffchainMetadata",
    "NormalizedArtwork",
    "CreatorHint",
    "CollectionHint",
    "ImportRequest",
    "ImportResponse",
    "RefetchResponse",
    "ImportRecordResponse",
    "HealthCheckResponse",
]
