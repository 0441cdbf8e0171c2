import logging
from typing import Awaitable, Callable, TypeVar

import anyio

from .errors import OfflineError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> T:
    """Await `operation`, retrying failures after base_delay * 2**(attempt-1) seconds.

    The last error is re-raised once `max_attempts` attempts have failed.
    Going offline is not retried.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except OfflineError:
            raise
        except Exception as e:
            if attempt == max_attempts:
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.debug("Attempt %d/%d failed (%s); retrying in %.2fs", attempt, max_attempts, e, delay)
            await sleep(delay)
    raise AssertionError("unreachable")
