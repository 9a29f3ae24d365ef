"""
Custom exceptions for the NFT ingestion pipeline with structured error context.

Every failure raised by an adapter, the normalizer, media resolution or
identity resolution derives from IngestionException, so the orchestrator can
turn it into a per-item failure entry and an ImportRecord update.

Exception Hierarchy:
    IngestionException (base)
    ├── SourceError
    │   ├── SourceUnavailable (retryable)
    │   │   └── RateLimitError
    │   ├── NotFound
    │   └── AuthenticationError
    ├── MalformedSource
    ├── MediaError
    │   ├── MediaFetchError (retryable)
    │   ├── UnsupportedMediaType
    │   └── MediaTooLarge
    ├── IdentityConflict (retryable)
    ├── PersistenceError (retryable)
    ├── StorageUnavailable
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class IngestionException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, contract, token, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    @property
    def retryable(self) -> bool:
        return isinstance(self, RetryableError)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionException):
    """
    Mixin for errors that may succeed on a later attempt.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    - Unique-key races that outlived the single re-fetch
    """
    pass


class NonRetryableError(IngestionException):
    """
    Mixin for errors that will fail the same way every time.

    Use this for permanent errors like:
    - Resource not found (HTTP 404)
    - Missing identity fields
    - Media types that cannot be hosted
    """
    pass


# ============================================================================
# Source Errors
# ============================================================================

class SourceError(IngestionException):
    """
    Base exception for upstream source failures.

    Context should include:
        - source: Adapter name (opensea, objkt, tzkt, metadata_url)
        - url: The endpoint that failed
        - status_code: HTTP status code (if applicable)
    """
    pass


class SourceUnavailable(RetryableError, SourceError):
    """Upstream outage, timeout or exhausted rate-limit backoff."""
    pass


class RateLimitError(SourceUnavailable):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class NotFound(NonRetryableError, SourceError):
    """The requested token does not exist upstream (HTTP 404 or empty result)."""
    pass


class AuthenticationError(NonRetryableError, SourceError):
    """Authentication failures (HTTP 401, 403) that should not be retried."""
    pass


# ============================================================================
# Normalization Errors
# ============================================================================

class MalformedSource(NonRetryableError):
    """
    Raised when a payload lacks the minimum identity fields.

    Context should include:
        - source: Adapter name
        - contract_address / token_id: whatever was present
    """
    pass


# ============================================================================
# Media Errors
# ============================================================================

class MediaError(IngestionException):
    """Base exception for media resolution failures."""
    pass


class MediaFetchError(RetryableError, MediaError):
    """
    Media download failed after the bounded retries were exhausted.

    Context should include:
        - url: The resolved HTTP url
        - attempts: Number of attempts made
    """
    pass


class UnsupportedMediaType(NonRetryableError, MediaError):
    """The media bytes are neither an image nor a video."""
    pass


class MediaTooLarge(NonRetryableError, MediaError):
    """The payload exceeded the configured byte cap while streaming."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class IdentityConflict(RetryableError):
    """
    A unique-key insert conflicted and the follow-up lookup found nothing.

    Context should include:
        - entity: artist or collection
        - key: The strong key that conflicted
    """
    pass


class PersistenceError(RetryableError):
    """The artwork write failed and was rolled back as a whole."""
    pass


class StorageUnavailable(IngestionException):
    """The storage layer itself is unreachable; no item can be persisted."""
    pass
