"""
Retry Utilities with Exponential Backoff

Transient I/O faults are retried with jittered exponential backoff:
DexScreener HTTP lookups, and blockhash / send calls against the Solana
RPC node. Venue rejections are never retried here.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Transient I/O fault talking to the chain (RPC hiccup, dropped socket)."""


DEFAULT_RETRYABLE_EXCEPTIONS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
    TransportError,
)

# Request Timeout, Too Many Requests, and 5xx gateway/server faults
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff schedule for one class of operation.

    delay(attempt) = min(base_delay * exponential_base ** attempt, max_delay),
    then +/-25% jitter, never below 0.1s. max_retries=0 disables retrying.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS
    retryable_status_codes: frozenset = field(default=DEFAULT_RETRYABLE_STATUS_CODES)

    @property
    def attempts(self) -> int:
        return self.max_retries + 1


# DexScreener lookups
HTTP_RETRY_CONFIG = RetryConfig(max_retries=3, base_delay=1.0, max_delay=30.0)

# Blockhash fetch and raw transaction send. Kept short: a stale blockhash
# is worse than a failed attempt.
TRANSPORT_RETRY_CONFIG = RetryConfig(max_retries=3, base_delay=0.5, max_delay=5.0)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait before retry number attempt (0-based)."""
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)

    if config.jitter:
        spread = delay * 0.25
        delay += random.uniform(-spread, spread)

    return max(0.1, delay)


def _describe(e: Exception) -> str:
    return f"{type(e).__name__}: {e}"


def async_retry(
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
):
    """
    Retry an async function on config.retryable_exceptions.

    Anything else propagates on the first attempt. The last retryable
    exception is re-raised once attempts are exhausted.

    Example:
        @async_retry(config=TRANSPORT_RETRY_CONFIG)
        async def send(raw_tx):
            return await client.send_raw_transaction(raw_tx)
    """
    if config is None:
        config = HTTP_RETRY_CONFIG

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(config.attempts):
                try:
                    return await func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_retries:
                        logger.error(f"[Retry] {func.__name__} gave up after {config.attempts} attempts: {_describe(e)}")
                        raise

                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        f"[Retry] {func.__name__} attempt {attempt + 1}/{config.attempts} failed: "
                        f"{_describe(e)}. Retrying in {delay:.1f}s..."
                    )
                    if on_retry:
                        on_retry(attempt, e)
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


async def retry_http_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> aiohttp.ClientResponse:
    """
    session.request() with retries on transient errors and retryable statuses.

    The final response is returned whatever its status; the caller owns it
    and must release it.
    """
    if config is None:
        config = HTTP_RETRY_CONFIG

    for attempt in range(config.attempts):
        last_attempt = attempt == config.max_retries
        try:
            resp = await session.request(method, url, **kwargs)
        except config.retryable_exceptions as e:
            if last_attempt:
                logger.error(f"[Retry] HTTP {method} {url} gave up after {config.attempts} attempts: {_describe(e)}")
                raise
            reason = _describe(e)
        else:
            if last_attempt or resp.status not in config.retryable_status_codes:
                return resp
            resp.release()
            reason = f"HTTP {resp.status}"

        delay = calculate_delay(attempt, config)
        logger.warning(
            f"[Retry] {method} {url} attempt {attempt + 1}/{config.attempts}: {reason}. "
            f"Retrying in {delay:.1f}s..."
        )
        await asyncio.sleep(delay)
