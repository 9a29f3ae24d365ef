"""
Bounded retry with exponential backoff.

Every network-calling component (source adapters, off-chain metadata fetch,
media download and upload) goes through retry_async so attempts, backoff and
per-attempt timeouts behave the same everywhere.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from core.config import settings
from core.exceptions import RetryableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total attempts including the first one
        backoff_base: Delay before the second attempt; doubles afterwards
        timeout: Hard timeout in seconds for a single attempt
    """

    max_attempts: int = 3
    backoff_base: float = 1.0
    timeout: Optional[float] = 30.0

    @classmethod
    def from_settings(cls, timeout: Optional[float] = None) -> "RetryPolicy":
        return cls(
            max_attempts=settings.MAX_RETRIES,
            backoff_base=settings.RETRY_BACKOFF_BASE,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt number ``attempt + 1`` (0-based ``attempt``)."""
        return self.backoff_base * (2 ** attempt)


RETRY_ON: Tuple[Type[BaseException], ...] = (RetryableError, asyncio.TimeoutError)


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    label: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = RETRY_ON,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Run ``operation`` until it succeeds or ``policy.max_attempts`` is reached.

    Only exceptions listed in ``retry_on`` are retried; anything else is
    raised immediately. After the last attempt the final exception is raised
    unchanged so callers can translate it into their own error type.

    A ``retry_after`` attribute on the raised exception (rate limiting)
    overrides the computed backoff delay.
    """
    attempts = max(1, policy.max_attempts)

    for attempt in range(attempts):
        try:
            logger.debug(f"{label}: attempt {attempt + 1}/{attempts}")
            if policy.timeout:
                return await asyncio.wait_for(operation(), timeout=policy.timeout)
            return await operation()

        except retry_on as e:
            if attempt >= attempts - 1:
                logger.warning(f"{label}: giving up after {attempts} attempts ({type(e).__name__})")
                raise

            delay = getattr(e, "retry_after", None) or policy.delay_for(attempt)
            logger.warning(
                f"{label}: {type(e).__name__} on attempt {attempt + 1}/{attempts}. "
                f"Retrying in {delay} seconds"
            )
            await sleep(delay)
