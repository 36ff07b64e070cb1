"""Retry decorators shared by the dispatcher and the upload orchestrator."""
import time
from functools import wraps
from typing import Callable, Tuple, Type

from loguru import logger


def backoff_delay(attempt: int, base_secs: float, max_secs: float) -> float:
    """Exponential backoff delay before retry number `attempt` (1-based)."""
    return min(base_secs * (2 ** (attempt - 1)), max_secs)


def retrybackoffexp(
    max_tries: int = 3,
    base_secs: float = 0.5,
    max_secs: float = 8.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator with bounded exponential backoff.

    Only exceptions listed in retry_on are retried; anything else
    propagates on the first attempt. After max_tries attempts the last
    exception is re-raised.

    Args:
        max_tries: Maximum number of attempts (including the first)
        base_secs: Delay before the first retry
        max_secs: Upper bound for a single delay
        retry_on: Exception types considered transient
        sleep: Sleep function (injectable for tests)

    Returns:
        Decorated function
    """

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_tries + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_tries:
                        logger.error(
                            f"All {max_tries} attempts failed for {func.__name__}: {e}"
                        )
                        raise
                    wait_time = backoff_delay(attempt, base_secs, max_secs)
                    logger.warning(f"Attempt {attempt}/{max_tries} failed: {e}")
                    logger.info(f"Exponential backoff: Retrying in {wait_time:.1f} seconds")
                    sleep(wait_time)

        return wrapper

    return decorator
