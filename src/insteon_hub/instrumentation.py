"""
Timing of link database reads, write-backs and merges.

Every pass decorated with `timed` is observed in the
`insteon_sync_duration_seconds` histogram. With INSTEON_PERF_TRACKING set,
each pass is also logged, at WARNING when it runs past
INSTEON_PERF_THRESHOLD_MS.
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Callable
from typing import Any, TypeVar

from insteon_hub import const
from insteon_hub.logging_abstraction import InsteonLogger, get_logger
from insteon_hub.metrics import record_sync_duration

__all__ = ["timed"]

F = TypeVar("F", bound=Callable[..., Any])

logger = get_logger(__name__)


def timed(operation: str | None = None) -> Callable[[F], F]:
    """
    Time a sync pass, plain or coroutine function.

    Example:
        @timed("read_device_database")
        async def read_database(self, force=False):
            ...
    """

    def decorator(func: F) -> F:
        name = operation or func.__name__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _finish(name, start)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _finish(name, start)

        return wrapper  # type: ignore[return-value]

    return decorator


def _finish(operation: str, start: float) -> None:
    elapsed = time.perf_counter() - start
    record_sync_duration(operation, elapsed)
    if const.INSTEON_PERF_TRACKING:
        _log_timing(logger, operation, elapsed * 1000, const.INSTEON_PERF_THRESHOLD_MS)


def _log_timing(log: InsteonLogger, operation: str, elapsed_ms: float, threshold_ms: int) -> None:
    """Log timing at WARNING above the threshold, DEBUG otherwise."""
    context = {"operation": operation, "duration_ms": round(elapsed_ms, 2)}
    if elapsed_ms > threshold_ms:
        log.warning(
            "⏱️ %s took %.1fms (threshold: %dms)",
            operation,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        log.debug("⏱️ %s took %.1fms", operation, elapsed_ms, extra=context)
