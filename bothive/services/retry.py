"""
Bounded retry with exponential backoff for store writes.

Thin wrapper over tenacity so the policy is an explicit value object and
the sleep function can be swapped out in tests.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.base_delay * self.multiplier ** (attempt - 1)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[T], bool],
    on_failed_attempt: Optional[Callable[[int, Any], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run `operation` until `should_retry` rejects its result or attempts run out.

    Returns the last result either way; exhaustion is not an exception.
    `on_failed_attempt(attempt_number, result)` fires after every attempt
    whose result is retryable, including the final one.
    """
    def after(retry_state: RetryCallState) -> None:
        if on_failed_attempt is None:
            return
        outcome = retry_state.outcome
        on_failed_attempt(
            retry_state.attempt_number,
            outcome.exception() if outcome.failed else outcome.result(),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=policy.multiplier, min=0),
        retry=retry_if_result(should_retry),
        after=after,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        sleep=sleep,
    )

    # `operation` may be a plain lambda returning an awaitable
    async def attempt() -> T:
        return await operation()

    return await retrying(attempt)
