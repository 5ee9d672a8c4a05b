"""
Small driver for ordered fallback chains and bounded retries.

A chain is a list of named attempts. Each attempt returns a result or None;
the driver stops at the first result, or when a failed attempt's predicate
says the next attempt is not applicable.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from error_handler import TransientAPIError

logger = logging.getLogger(__name__)

Call = Callable[[], Awaitable[Any]]
ErrorPredicate = Callable[[Optional[BaseException]], bool]


def always(error: Optional[BaseException]) -> bool:
    return True


@dataclass
class Attempt:
    """One step of a fallback chain"""
    name: str
    call: Call
    continue_if: ErrorPredicate = always


async def first_success(attempts: Iterable[Attempt]) -> Optional[Any]:
    """
    Run attempts in order and return the first non-None result

    Args:
        attempts: Ordered attempts; a failed attempt is followed by the
            next one only when its continue_if predicate accepts the
            failure (None when the attempt simply found nothing)

    Returns:
        First result, or None when the chain is exhausted or stopped
    """
    for attempt in attempts:
        error: Optional[BaseException] = None
        try:
            result = await attempt.call()
        except Exception as e:
            error = e
            result = None
            logger.info(f"Attempt {attempt.name} failed: {e}")

        if result is not None:
            logger.debug(f"Attempt {attempt.name} succeeded")
            return result

        if not attempt.continue_if(error):
            logger.debug(f"Chain stopped after {attempt.name}")
            return None
    return None


async def retry(call: Call, retries: int, delay: float,
                retry_if: Callable[[BaseException], bool] = lambda e: False,
                name: str = "call",
                sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep) -> Optional[Any]:
    """
    Call with up to `retries` additional attempts and a fixed delay between them

    An empty (None) result is always retried; an exception is retried only
    when retry_if accepts it and is re-raised otherwise.

    Raises:
        TransientAPIError: the last attempt failed with a retryable error
    """
    last_error: Optional[BaseException] = None
    for attempt in range(retries + 1):
        if attempt:
            logger.info(f"Retrying {name} in {delay}s (attempt {attempt + 1}/{retries + 1})")
            await sleep(delay)
        try:
            result = await call()
        except Exception as e:
            if not retry_if(e):
                raise
            last_error = e
            continue

        if result is not None:
            return result
        last_error = None

    if last_error is not None:
        raise TransientAPIError(
            f"{name} gave up after {retries + 1} attempts: {last_error}",
            cause=str(last_error)
        )
    return None
