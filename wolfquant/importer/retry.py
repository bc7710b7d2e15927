"""Reusable async retry policy with fixed or exponential delay."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from wolfquant.errors import AdapterError

logger = logging.getLogger("wolfquant.importer")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to retry a failing coroutine.

    Args:
        retries: Extra attempts after the first one fails.
        delay: Seconds to wait before the first retry.
        backoff: Multiplier applied to *delay* after each retry
                 (``1.0`` = fixed delay).
        timeout: Per-attempt timeout in seconds; a timeout counts as a
                 retryable ``AdapterError``.  ``None`` disables it.
    """

    retries: int = 3
    delay: float = 1.0
    backoff: float = 1.0
    timeout: Optional[float] = None

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to sleep after failed *attempt* (1-based)."""
        return self.delay * (self.backoff ** (attempt - 1))

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        description: str = "call",
        retry_on: tuple[type[BaseException], ...] = (AdapterError,),
    ) -> T:
        """Await ``fn()`` until it succeeds or attempts run out.

        Exceptions outside *retry_on* propagate immediately.  On exhaustion
        the last error is raised.
        """
        last_exc: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                if self.timeout is None:
                    return await fn()
                try:
                    return await asyncio.wait_for(fn(), timeout=self.timeout)
                except asyncio.TimeoutError as exc:
                    raise AdapterError(
                        f"{description} timed out after {self.timeout:.1f}s"
                    ) from exc
            except retry_on as exc:
                last_exc = exc
                if attempt == self.max_attempts:
                    break
                wait = self.delay_for(attempt)
                logger.warning(
                    "%s failed (%s) — retry %d/%d in %.1fs",
                    description, exc, attempt, self.retries, wait,
                )
                await asyncio.sleep(wait)

        raise last_exc  # type: ignore[misc]
