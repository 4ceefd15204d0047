"""Explicit retry policy shared by capability clients and workflow phases."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Tuple, Type

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff.

    The delay before retry ``n`` (1-based) is ``base_delay * 2 ** (n - 1)``,
    capped at ``max_delay``.

    Args:
        max_attempts: Total number of attempts, including the first
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for a single delay
        retry_on: Exception types that trigger a retry
        give_up_on: Exception types that are re-raised immediately
        sleep: Awaitable sleep function (replaced in tests)
        name: Label used in log lines
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    give_up_on: Tuple[Type[BaseException], ...] = ()
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)
    name: str = "retry"

    def delay_for(self, retry_number: int) -> float:
        """Backoff delay before the given retry (1-based)."""
        return min(self.base_delay * (2 ** (retry_number - 1)), self.max_delay)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{self.name} attempt {retry_state.attempt_number}/{self.max_attempts} failed: {exc}; "
            f"retrying in {delay:.1f}s"
        )

    def _retrying(self) -> AsyncRetrying:
        retry = retry_if_exception_type(self.retry_on)
        if self.give_up_on:
            retry = retry & retry_if_not_exception_type(self.give_up_on)
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=self.max_delay),
            retry=retry,
            sleep=self.sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``fn(*args, **kwargs)`` under this policy.

        The last exception is re-raised once attempts are exhausted.
        """
        return await self._retrying()(fn, *args, **kwargs)
