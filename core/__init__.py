"""
Core utilities and configuration for the NFT ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database engine and session management
    exceptions: Ingestion exception taxonomy
    logging: Logging configuration
    retry: Bounded retry helper shared by every network call
    context: Explicit pipeline context (sessions, HTTP client, hosting provider)

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import SourceUnavailable, MalformedSource
    from core.logging import setup_logging
    from core.retry import RetryPolicy, retry_async
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    "RetryPolicy",
    "retry_async",
    "PipelineContext",
    # Exceptions
    "IngestionException",
    "RetryableError",
    "NonRetryableError",
    "SourceError",
    "SourceUnavailable",
    "RateLimitError",
    "NotFound",
    "AuthenticationError",
    "MalformedSource",
    "MediaError",
    "MediaFetchError",
    "UnsupportedMediaType",
    "MediaTooLarge",
    "IdentityConflict",
    "PersistenceError",
    "StorageUnavailable",
]
