"""
Async execution of blocking storage calls.

Repository methods are plain synchronous SQLAlchemy code. Services run them
through run_storage_call(), which executes the call in a worker thread,
retries transient failures with exponential backoff and enforces a
caller-supplied timeout.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tmcore.exceptions import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Cancel flag visible to the worker thread running the current storage call.
current_cancel_event: contextvars.ContextVar[Optional[threading.Event]] = (
    contextvars.ContextVar("tmcore_cancel_event", default=None)
)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.05,
    retry_on: Tuple[Type[BaseException], ...] = (TransientStorageError,),
) -> T:
    """Retry an async callable with exponential backoff."""
    last_error: Optional[BaseException] = None

    for attempt in range(max_retries):
        try:
            return await func()
        except retry_on as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
                await asyncio.sleep(delay)

    reason = getattr(last_error, "reason", None) or str(last_error)
    raise TransientStorageError(reason, attempts=max_retries)


async def run_storage_call(
    func: Callable[..., T],
    *args: Any,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    **kwargs: Any,
) -> T:
    """
    Run a blocking storage call off the event loop.

    On timeout the call's cancel event is set so an in-flight transaction
    rolls back instead of committing, and TransientStorageError is raised.
    """
    from tmcore.config.settings import settings

    timeout = settings.operation_timeout if timeout is None else timeout
    max_retries = settings.max_retries if max_retries is None else max_retries
    base_delay = settings.retry_base_delay if base_delay is None else base_delay

    cancel_event = threading.Event()
    token = current_cancel_event.set(cancel_event)
    try:
        async def attempt() -> T:
            return await asyncio.to_thread(func, *args, **kwargs)

        try:
            return await asyncio.wait_for(
                retry_with_backoff(attempt, max_retries=max_retries, base_delay=base_delay),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            cancel_event.set()
            name = getattr(func, "__name__", repr(func))
            logger.warning(f"Storage call {name} abandoned after {timeout}s")
            raise TransientStorageError(f"{name} timed out after {timeout}s") from e
    finally:
        current_cancel_event.reset(token)
