"""
NFT import pipeline components.

This package contains every stage an NFT passes through on import:

Modules:
    base: Abstract source adapter with retry, status mapping and circuit breaker
    runner: Import orchestrator (batch, refetch, wallet import, retries)
    tracker: Import ledger (ImportRecord) with retry listing
    scheduler: APScheduler retry sweep

Subpackages:
    extractors: Source adapters (OpenSea, objkt, tzkt, metadata URL) and the off-chain metadata fetcher
    transformers: Metadata normalizer and chain helpers
    media: URI rewriting, MIME sniffing, dimensions, tags and hosting providers
    loaders: Identity resolution and artwork persistence

Architecture:
    Each item moves through

        pending -> fetching -> normalizing -> resolving-media
                -> resolving-identity -> persisting -> success | failed

    Items of a batch run concurrently and independently. Only the
    persisting step (together with identity resolution) writes to the
    database, in one transaction per artwork.

Usage:
    from core.context import PipelineContext
    from ingestion.runner import ImportOrchestrator
    from schemas.sources import RawRef

    context = PipelineContext.from_settings()
    orchestrator = ImportOrchestrator(context)

    result = await orchestrator.import_batch(
        "opensea",
        [RawRef(contract_address="0x...", token_id="1")],
    )
    print(f"{len(result.succeeded)} imported, {len(result.failed)} failed")

Error Handling:
    Failures are raised as core.exceptions types, caught per item by the
    orchestrator and written to the import ledger. Only StorageUnavailable
    aborts a batch.
"""

__all__ = [
    "ImportOrchestrator",
    "BatchResult",
    "RefetchResult",
    "ImportTracker",
    "RetrySweepScheduler",
    "SourceAdapter",
    "MetadataNormalizer",
    "MediaResolver",
    "IdentityResolver",
    "ArtworkLoader",
]
