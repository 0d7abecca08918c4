"""Timing decorators for render, compile and analysis calls."""
import time
import logging
import functools
from typing import Callable

logger = logging.getLogger("bluebook-api.perf")


def timed(func: Callable) -> Callable:
    """
    Log the wall time of a synchronous function at DEBUG.

    Usage::

        @timed
        def render_plan_pdf(...):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "%s took %.2f ms", func.__qualname__, duration_ms,
                extra={"duration_ms": duration_ms},
            )
    return wrapper


def timed_async(func: Callable) -> Callable:
    """Async counterpart of :func:`timed`."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "%s took %.2f ms", func.__qualname__, duration_ms,
                extra={"duration_ms": duration_ms},
            )
    return wrapper
