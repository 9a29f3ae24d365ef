"""
Abstract base class for NFT source adapters with retry and circuit breaker.

Adapters are pure fetchers: they never touch the database. Each one turns
an upstream response into a RawNFT whose payload is one of the typed
source payload models.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from core.config import settings
from core.exceptions import (
    AuthenticationError,
    MalformedSource,
    NotFound,
    RateLimitError,
    SourceError,
    SourceUnavailable,
)
from core.retry import RetryPolicy, retry_async
from models.base import DataSource, IndexType
from schemas.sources import RawNFT, RawRef

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """
    Base class for all source adapters.

    Responsibilities:
    - HTTP requests with bounded retry and exponential backoff
    - Mapping upstream status codes to the ingestion error taxonomy
    - Circuit breaker so a dead upstream fails fast

    Attributes:
        source_name: DataSource this adapter produces
        policy: Retry policy (attempts, backoff base, per-attempt timeout)
        circuit_breaker_threshold: Consecutive failures before the circuit opens
        circuit_breaker_timeout: Seconds before an open circuit is retried
    """

    source_name: DataSource

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        circuit_breaker_threshold: Optional[int] = None,
        circuit_breaker_timeout: Optional[int] = None,
    ):
        self.client = client
        self.policy = policy or RetryPolicy.from_settings()

        # Circuit breaker state
        self._circuit_breaker_failures = 0
        self._circuit_breaker_threshold = circuit_breaker_threshold or settings.CIRCUIT_BREAKER_THRESHOLD
        self._circuit_breaker_open_until: Optional[datetime] = None
        self._circuit_breaker_timeout = circuit_breaker_timeout or settings.CIRCUIT_BREAKER_TIMEOUT

    @abstractmethod
    async def fetch_raw_nft(self, ref: RawRef) -> RawNFT:
        """
        Fetch one token.

        Raises:
            SourceUnavailable: Upstream outage, timeout or rate limit (retryable)
            NotFound: Token does not exist upstream (terminal)
            MalformedSource: Reference or response lacks identity fields
        """
        pass

    async def list_wallet_nfts(
        self,
        wallet: str,
        kind: IndexType = IndexType.OWNED,
        max_items: Optional[int] = None,
    ) -> List[RawRef]:
        """References to every NFT a wallet owns or created, across all pages."""
        raise NotImplementedError(f"{self.source_name.value} cannot list wallet NFTs")

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _is_circuit_open(self) -> bool:
        """Check if circuit breaker is open."""
        if self._circuit_breaker_open_until is None:
            return False

        if datetime.utcnow() >= self._circuit_breaker_open_until:
            logger.info(f"Circuit breaker reset for {self.source_name.value}")
            self._circuit_breaker_failures = 0
            self._circuit_breaker_open_until = None
            return False

        return True

    def _record_failure(self):
        """Record a failure and potentially open circuit breaker."""
        self._circuit_breaker_failures += 1

        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            self._circuit_breaker_open_until = datetime.utcnow() + timedelta(
                seconds=self._circuit_breaker_timeout
            )
            logger.warning(
                f"Circuit breaker opened for {self.source_name.value}. "
                f"Will retry after {self._circuit_breaker_timeout} seconds."
            )

    def _record_success(self):
        """Record a successful request."""
        self._circuit_breaker_failures = 0
        self._circuit_breaker_open_until = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _context(self, url: str, **extra) -> Dict[str, Any]:
        return {"source": self.source_name.value, "url": url, **extra}

    async def _request_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SourceUnavailable(
                f"Request timeout for {url}",
                context=self._context(url),
                original_exception=e,
            )
        except httpx.TransportError as e:
            raise SourceUnavailable(
                f"Network error for {url}",
                context=self._context(url),
                original_exception=e,
            )

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {url}",
                context=self._context(url, status_code=status),
            )
        if status == 404:
            raise NotFound(
                f"Resource not found: {url}",
                context=self._context(url, status_code=404),
            )
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded for {url}",
                context=self._context(url, status_code=429),
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 500:
            raise SourceUnavailable(
                f"Server error {status} from {url}",
                context=self._context(url, status_code=status, response_body=response.text[:500]),
            )
        if status >= 400:
            raise SourceError(
                f"Request rejected with {status} by {url}",
                context=self._context(url, status_code=status, response_body=response.text[:500]),
            )
        return response

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make an HTTP request with retry logic and exponential backoff.

        Raises:
            SourceUnavailable: Circuit open, or retryable failure after max retries
            NotFound / AuthenticationError / SourceError: Non-retryable responses
        """
        if self._is_circuit_open():
            raise SourceUnavailable(
                f"Circuit breaker is open for {self.source_name.value}",
                context=self._context(url, open_until=self._circuit_breaker_open_until.isoformat()),
            )

        try:
            response = await retry_async(
                lambda: self._request_once(method, url, **kwargs),
                self.policy,
                label=f"{self.source_name.value} {method} {url}",
            )
        except asyncio.TimeoutError as e:
            self._record_failure()
            raise SourceUnavailable(
                f"Request timeout after {self.policy.max_attempts} attempts",
                context=self._context(url, timeout=self.policy.timeout, retry_count=self.policy.max_attempts),
                original_exception=e,
            )
        except SourceUnavailable as e:
            self._record_failure()
            e.context["retry_count"] = self.policy.max_attempts
            raise

        self._record_success()
        return response

    def _json(self, response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise SourceUnavailable(
                "Failed to parse JSON response",
                context=self._context(url, response_body=response.text[:500]),
                original_exception=e,
            )

    def _parse(self, model: Type[BaseModel], data: Any, url: str) -> BaseModel:
        """Validate an upstream document into its payload model."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise MalformedSource(
                f"Unexpected {model.__name__} shape from {self.source_name.value}",
                context=self._context(url, errors=e.error_count()),
                original_exception=e,
            )

    @staticmethod
    def _require_identity(ref: RawRef, source: DataSource):
        if not ref.contract_address or not ref.token_id:
            raise MalformedSource(
                f"{source.value} lookups need a contract address and a token id",
                context={"source": source.value, "ref": ref.describe()},
            )
