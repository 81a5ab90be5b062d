"""
PCN Challenge Engine - Retry Policy

Bounded exponential backoff for the drafting phase, driven by tenacity.
Only the orchestrator uses this; components never retry on their own.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...errors import GenerationUnavailable, MalformedDraft

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], None]


class RetryPolicy:
    """
    Retry configuration for retryable pipeline failures.

    Delay after failed attempt n is base_delay * multiplier ** (n - 1),
    capped at max_delay.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        retryable: Tuple[Type[BaseException], ...] = (GenerationUnavailable, MalformedDraft),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.retryable = retryable
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given (1-based) failed attempt."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def schedule(self) -> List[float]:
        """Every backoff the policy can produce, in order."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retryable)

    async def run(
        self,
        fn: Callable[[int], Awaitable[T]],
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        """
        Call `fn(attempt_number)` until it succeeds or the policy gives up.

        Non-retryable errors propagate immediately. When attempts are
        exhausted the last retryable error is re-raised unchanged.
        """
        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"Attempt {retry_state.attempt_number}/{self.max_attempts} failed "
                f"({type(exc).__name__}); retrying in {delay:.2f}s"
            )
            if on_retry is not None:
                on_retry(retry_state.attempt_number, exc, delay)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay,
                exp_base=self.multiplier,
                max=self.max_delay,
            ),
            retry=retry_if_exception_type(self.retryable),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                result = await fn(attempt.retry_state.attempt_number)
        return result
