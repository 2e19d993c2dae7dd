import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, Tuple, Type, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry policy for a single external call.

    `backoff_sec[i]` is the sleep before attempt i+2; when attempts outnumber
    the schedule the last value is reused.
    """

    max_attempts: int = 3
    backoff_sec: Tuple[float, ...] = (1.0, 2.0)
    retry_on: Tuple[Type[BaseException], ...] = field(default=(Exception,))

    def delay_for(self, attempt: int) -> float:
        if not self.backoff_sec:
            return 0.0
        idx = min(attempt - 1, len(self.backoff_sec) - 1)
        return float(self.backoff_sec[idx])


NO_RETRY = RetryPolicy(max_attempts=1, backoff_sec=())
NEWS_RETRY = RetryPolicy(max_attempts=3, backoff_sec=(1.0, 2.0))
CALENDAR_RETRY = RetryPolicy(max_attempts=3, backoff_sec=(1.0, 2.0))


async def run_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str,
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await `fn()` up to `policy.max_attempts` times.

    Exceptions outside `policy.retry_on` propagate immediately; after the last
    attempt the final exception is re-raised.
    """
    log = logger or logging.getLogger("RetryPolicy")
    attempts = max(1, int(policy.max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except policy.retry_on as exc:
            if attempt >= attempts:
                log.error("%s failed after %s attempts: %s", label, attempts, exc)
                raise
            delay = policy.delay_for(attempt)
            log.warning(
                "%s failed (attempt %s/%s): %s; retrying in %.1fs",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
            await sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
