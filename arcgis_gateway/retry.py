"""
Retry helper for callers.

Gateways never retry internally. Callers that want resilience against
transient transport failures wrap their own coroutines::

    @retry_on_exception(config=RetryConfig(max_attempts=5))
    async def load_features():
        return await gateway.batch_query(operation)

A :class:`TransportError` is retried when it has no status code (connection,
DNS or TLS failure) or a status listed in ``retry_status_codes``.
``OperationError`` is a logical failure reported by the server and is only
retried when the caller lists it explicitly.
"""

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Optional, Tuple, Type

from .errors import TransportError
from .logging import get_logger

RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential",
                 retry_status_codes: Iterable[int] = RETRY_STATUS_CODES):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backoff_strategy not in ("exponential", "linear", "fixed"):
            raise ValueError(f"Unknown backoff strategy: {backoff_strategy}")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy
        self.retry_status_codes: FrozenSet[int] = frozenset(retry_status_codes)

    def is_retryable(self, error: BaseException) -> bool:
        """Whether a caught exception is worth another attempt."""
        if isinstance(error, TransportError) and error.status_code is not None:
            return error.status_code in self.retry_status_codes
        return True


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def retry_on_exception(exceptions: Tuple[Type[BaseException], ...] = (TransportError,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator retrying an async gateway call on the given exceptions."""

    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        logger = get_logger(f"arcgis_gateway.retry.{func.__name__}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 0
            while True:
                attempt += 1
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if not config.is_retryable(e):
                        raise

                    if attempt >= config.max_attempts:
                        logger.error(
                            "All retry attempts exhausted",
                            attempts=attempt,
                            function=func.__name__,
                            error=str(e)
                        )
                        raise RetryError(
                            f"{func.__name__} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt
                        ) from e

                    delay = _calculate_delay(attempt, config)
                    logger.warning(
                        "Gateway call failed, retrying",
                        attempt=attempt,
                        delay=delay,
                        function=func.__name__,
                        status_code=getattr(e, "status_code", None),
                        error=str(e)
                    )
                    await asyncio.sleep(delay)
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", attempt=attempt, function=func.__name__)
                return result

        return wrapper

    return decorator


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff for the given attempt number, capped and jittered."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)
    if config.jitter:
        spread = delay * 0.1
        delay += random.uniform(-spread, spread)
    return max(0.0, delay)
