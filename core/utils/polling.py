"""Polling and retry helpers shared by the lifecycle, publisher and SSH layers."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    done: Callable[[T], bool],
    timeout: float,
    interval: float,
    description: str = "condition",
) -> T:
    """Call ``probe`` every ``interval`` seconds until ``done(value)`` holds.

    Returns the last probed value. Raises ``asyncio.TimeoutError`` (an alias
    of the builtin ``TimeoutError`` on current interpreters) once ``timeout``
    seconds have elapsed without success; callers convert it into their own
    error type.
    """
    deadline = time.monotonic() + timeout
    iteration = 0

    while True:
        iteration += 1
        value = await probe()
        if done(value):
            return value

        if time.monotonic() + interval > deadline:
            raise asyncio.TimeoutError(
                f"{description} not reached after {iteration} checks ({timeout}s)"
            )

        logger.debug(f"Waiting for {description} (check {iteration}), sleeping {interval}s")
        await asyncio.sleep(interval)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    delay: float,
    timeout: Optional[float] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, with a fixed backoff between tries.

    Gives up after ``attempts`` tries or once ``timeout`` seconds have passed,
    re-raising the last error.
    """
    deadline = time.monotonic() + timeout if timeout is not None else None
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            out_of_time = deadline is not None and time.monotonic() + delay > deadline
            if attempt == attempts or out_of_time:
                logger.warning(f"{description} failed after {attempt} attempts: {e}")
                break
            logger.info(f"{description} attempt {attempt}/{attempts} failed, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)

    raise last_error
