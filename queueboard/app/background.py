"""Run blocking port calls off the UI thread and hand results back to it.

Store calls are blocking ``requests`` round-trips. ``BackgroundRunner``
submits them to an executor so several can be in flight at once, and routes
every completion through ``post`` so the view and lock table are only touched
from the UI thread.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import Executor, Future
from typing import Any, Callable

PostFn = Callable[[Callable[[], None]], None]
DoneFn = Callable[[Future], None]

_log = logging.getLogger(__name__)


class BackgroundRunner:
    """Executor front-end whose completion callbacks run on the UI thread."""

    def __init__(self, executor: Executor, post: PostFn) -> None:
        self._executor = executor
        self._post = post

    def submit(self, fn: Callable[..., Any], *args: Any, on_done: DoneFn) -> Future:
        future = self._executor.submit(fn, *args)
        future.add_done_callback(lambda fut: self._post(lambda: on_done(fut)))
        return future

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


class MainThreadQueue:
    """Thread-safe inbox drained on the UI thread by a periodic pump.

    ``post`` may be called from any thread; ``drain`` runs queued callbacks
    in FIFO order and must only be called from the UI thread.
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Callable[[], None]]" = queue.SimpleQueue()

    def post(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    def drain(self, limit: int = 500) -> int:
        ran = 0
        while ran < limit:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                break
            ran += 1
            try:
                callback()
            except Exception:
                _log.exception("UI callback failed")
        return ran


__all__ = ["BackgroundRunner", "MainThreadQueue"]
