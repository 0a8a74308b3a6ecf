# meeting_booker/services/retry.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    return bool(getattr(exc, "transient", False))


class RetryPolicy:
    """
    Bounded exponential backoff around a single external call.

    With the default of one attempt the operation runs once and any error
    propagates unchanged. Only exceptions accepted by `retry_if` are
    retried; the delay before retry n (0-based) is `base_delay * 2**n`.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        base_delay_seconds: float = 1.0,
        retry_if: Callable[[BaseException], bool] = is_transient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.retry_if = retry_if
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "call") -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.retry_if(exc):
                    raise
                backoff = self.base_delay_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    description,
                    exc,
                    backoff,
                    attempt + 1,
                    self.max_attempts,
                )
                await self._sleep(backoff)
                attempt += 1


NO_RETRY = RetryPolicy()
