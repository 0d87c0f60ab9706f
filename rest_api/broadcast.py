"""In-process fan-out of board events to Server-Sent Events subscribers.

`rest_api.app` owns one hub per application. ``POST /events`` and the
initialize route call :meth:`BroadcastHub.publish`; every open ``GET /events``
stream holds a bounded queue from :meth:`BroadcastHub.subscribe` and drains it
through :func:`sse_stream`. A subscriber that falls behind loses events rather
than blocking publishers; clients recover through their regular poll.
"""

import json
import logging
import queue
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional

log = logging.getLogger(__name__)

KEEPALIVE_S = 15.0
SUBSCRIBER_QUEUE_SIZE = 500
_CLOSED = object()


class BroadcastHub:
    """Thread-safe registry of subscriber queues."""

    def __init__(self, queue_size: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: List["queue.Queue[Any]"] = []
        self.dropped = 0

    def subscribe(self) -> "queue.Queue[Any]":
        sub: "queue.Queue[Any]" = queue.Queue(maxsize=self._queue_size)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: "queue.Queue[Any]") -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: str, payload: Mapping[str, Any], origin: Optional[str] = None) -> int:
        """Queue ``event`` for every subscriber; returns how many received it.

        ``origin`` travels inside the payload so publishers can drop their own
        echo.
        """
        message: Dict[str, Any] = dict(payload)
        if origin:
            message["origin"] = origin
        delivered = 0
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            try:
                sub.put_nowait((event, message))
                delivered += 1
            except queue.Full:
                self.dropped += 1
                log.warning("SSE subscriber too slow; dropped %s", event)
        return delivered

    def close(self) -> None:
        """End every open stream."""
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for sub in subscribers:
            try:
                sub.put_nowait(_CLOSED)
            except queue.Full:
                # Drop one pending event so the close marker fits.
                try:
                    sub.get_nowait()
                except queue.Empty:
                    pass
                sub.put_nowait(_CLOSED)


def format_sse(event: str, data: Mapping[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, separators=(',', ':'))}\n\n"


def sse_stream(
    hub: BroadcastHub,
    sub: "queue.Queue[Any]",
    keepalive_s: float = KEEPALIVE_S,
) -> Iterator[str]:
    """Yield SSE frames from ``sub`` until the hub closes; always unsubscribes."""
    try:
        yield ": connected\n\n"
        while True:
            try:
                item = sub.get(timeout=keepalive_s)
            except queue.Empty:
                yield ": keepalive\n\n"
                continue
            if item is _CLOSED:
                return
            event, data = item
            yield format_sse(event, data)
    finally:
        hub.unsubscribe(sub)
