"""Fixed-delay status polling used by entity resolution and version downloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from proknow.errors import ProKnowTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    """Retry budget for a status poll.

    Attributes:
        delay: Seconds to wait between requests.
        max_retries: Retries after the first request. A poll issues at most
            max_retries + 1 requests.
    """

    delay: float
    max_retries: int


# 200 ms x 25 retries (5 s) for entity and RTV processing completion
ENTITY_COMPLETION_POLICY = PollPolicy(delay=0.2, max_retries=25)

# 100 ms x 300 retries (30 s) for structure set version readiness
VERSION_READY_POLICY = PollPolicy(delay=0.1, max_retries=300)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.debug(
        "Poll attempt %d not done yet, waiting %.2fs",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
    )


async def poll_until(
    fetch: Callable[[], Awaitable[Any]],
    is_done: Callable[[Any], bool],
    *,
    policy: PollPolicy,
    description: str,
    status: str = "completed",
) -> Any:
    """Call fetch until is_done accepts its result.

    Exceptions raised by fetch are not retried and propagate immediately.

    Args:
        fetch: Coroutine function issuing one status request.
        is_done: Predicate applied to each result.
        policy: Delay and retry budget.
        description: Name of the awaited object, used in the timeout message.
        status: Name of the awaited status, used in the timeout message.

    Returns:
        The first result accepted by is_done.

    Raises:
        ProKnowTimeoutError: If the retry budget is exhausted.
    """
    async def _attempt() -> Any:
        return await fetch()

    retrying = AsyncRetrying(
        wait=wait_fixed(policy.delay),
        stop=stop_after_attempt(policy.max_retries + 1),
        retry=retry_if_result(lambda result: not is_done(result)),
        before_sleep=_log_retry,
    )
    try:
        return await retrying(_attempt)
    except RetryError as exc:
        message = f"Timeout while waiting for {description} to reach {status} status."
        logger.warning(message)
        raise ProKnowTimeoutError(message) from exc
