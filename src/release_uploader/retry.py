"""Bounded retry with a fixed delay, built on tenacity.

Semantics:
- The operation runs once; on failure it is retried after
  ``delay_seconds`` until ``max_attempts`` attempts have been made.
- The last failure is re-raised unchanged.
- ``max_attempts <= 0`` means a single attempt.
- ``delay_seconds <= 0`` means no retry capability: the first failure
  propagates as-is.
- PreconditionError is never retried, the local state won't change.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from release_uploader.errors import PreconditionError
from release_uploader.logging_config import get_logger
from release_uploader.schemas import RetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")


def attempt_budget(policy: RetryPolicy) -> int:
    """Number of attempts a policy allows, never less than one."""
    if policy.max_attempts <= 0 or policy.delay_seconds <= 0:
        return 1
    return policy.max_attempts


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "retrying_operation",
        attempt=retry_state.attempt_number,
        next_wait=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error),
    )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` under ``policy``.

    Args:
        operation: Zero-argument coroutine function, called once per attempt
        policy: Delay and attempt budget
        sleep: Awaitable used for the inter-attempt wait (tests pass a stub)

    Returns:
        The operation's result from the first successful attempt

    Raises:
        Exception: The last failure, unchanged, once attempts are exhausted
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempt_budget(policy)),
        wait=wait_fixed(max(policy.delay_seconds, 0)),
        retry=retry_if_not_exception_type(PreconditionError),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(operation)
