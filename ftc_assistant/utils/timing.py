"""
Performance timing decorator and context manager.

Usage:
    @timed("planner")
    async def plan_question(...):
        ...

    async with Timer("retrieval") as t:
        chunks = await retrieve_chunks(...)
    logger.info("took %.1fms", t.elapsed_ms)
"""

from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Callable

from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.timing")


class Timer:
    """Simple context-manager timer (sync + async compatible)."""

    def __init__(self, label: str = ""):
        self.label = label
        self._start: float = 0.0
        self.elapsed_s: float = 0.0

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed_s * 1000

    # Sync
    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: Any) -> None:
        self.elapsed_s = time.perf_counter() - self._start
        if self.label:
            logger.info("%s completed in %.1fms", self.label, self.elapsed_ms)

    # Async
    async def __aenter__(self) -> "Timer":
        return self.__enter__()

    async def __aexit__(self, *exc: Any) -> None:
        self.__exit__(*exc)


def timed(label: str | None = None) -> Callable:
    """
    Decorator that logs the wall-clock time of a function call.
    Works for both sync and async functions.
    """

    def decorator(fn: Callable) -> Callable:
        _label = label or fn.__qualname__

        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                async with Timer(_label):
                    return await fn(*args, **kwargs)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with Timer(_label):
                return fn(*args, **kwargs)

        return sync_wrapper

    return decorator
