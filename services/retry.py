from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from services.errors import RetryExhaustedError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


class RetryPolicy:
    """Runs a zero-argument coroutine factory with exponential backoff.

    Whether a failure is worth retrying is the caller's decision, passed in
    as ``retry_if``; this class only decides how and when to retry.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig = DEFAULT_RETRY_CONFIG,
        label: str = "operation",
        retry_if: Callable[[BaseException], bool] | None = None,
    ) -> T:
        last_error: Exception | None = None
        for attempt in range(1, config.max_attempts + 1):
            try:
                return await operation()
            except Exception as err:
                last_error = err
                if retry_if is not None and not retry_if(err):
                    logger.info("%s failed with a non-retryable error on attempt %d", label, attempt)
                    raise
                if attempt >= config.max_attempts:
                    break
                delay = config.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    label,
                    attempt,
                    config.max_attempts,
                    delay,
                    err,
                )
                await self._sleep(delay)

        logger.error("%s failed after %d attempts: %s", label, config.max_attempts, last_error)
        raise RetryExhaustedError(label, config.max_attempts, last_error) from last_error
