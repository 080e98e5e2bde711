"""Fire-and-forget execution for best-effort side effects.

Lead scoring, conversation-memory writes and locale updates must never
delay or fail a chat response.  They are handed to
:meth:`BackgroundTaskRunner.spawn_detached`, which runs them on a small
thread pool and logs (never raises) any exception.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class BackgroundTaskRunner:
    """Thread-pool backed runner for detached side effects."""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="chat-side-effect",
        )

    def spawn_detached(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Future:
        """Schedule ``fn(*args, **kwargs)`` and return immediately.

        The returned future is for tests and shutdown only; request code
        must not wait on it.
        """
        future = self._pool.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._log_outcome(name, f))
        return future

    @staticmethod
    def _log_outcome(name: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("Background task %r was cancelled", name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background task %r failed: %s", name, exc, exc_info=exc)
        else:
            logger.debug("Background task %r finished", name)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with ``wait=True`` drain what is queued."""
        self._pool.shutdown(wait=wait)
