"""Broadcast adapter over the board API's Server-Sent Events stream.

Publishing is a JSON ``POST /events``; subscribing keeps one ``GET /events``
stream open on a daemon thread and reconnects after failures. Handlers are
never called on the listener thread: each delivery is handed to ``post`` so
it runs on the UI thread next to the rest of the sync layer.

Dependencies:
    - ``requests`` (through ``RetryingSession``) for the publish call and stream.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from requests import exceptions as req_exc

from queueboard.domain.ports import BroadcastHandler, BroadcastPort

from .api_errors import ApiError, raise_for_response
from .http_client import HttpConfig, RetryingSession

PostFn = Callable[[Callable[[], None]], None]
StateFn = Callable[[str], None]

CONNECTING = "connecting"
CONNECTED = "connected"
DISCONNECTED = "disconnected"


def iter_sse_events(lines: Iterable[str]) -> Iterator[Tuple[str, str]]:
    """Yield ``(event, data)`` pairs from raw SSE lines.

    Comment lines (``:``) are keep-alives and are skipped. Events without an
    ``event:`` field default to ``message``.
    """
    event = "message"
    data: List[str] = []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class SseBroadcastAdapter(BroadcastPort):
    """``BroadcastPort`` backed by ``/events`` on the board API."""

    def __init__(
        self,
        base_url: str,
        *,
        post: PostFn,
        api_key: Optional[str] = None,
        client_id: Optional[str] = None,
        request_timeout_s: float = 10,
        read_timeout_s: float = 45,
        reconnect_delay_s: float = 3.0,
        on_state: Optional[StateFn] = None,
        session: Optional[RetryingSession] = None,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.client_id = client_id or uuid.uuid4().hex
        self.http = session or RetryingSession(
            base_url, api_key, HttpConfig(request_timeout_s=request_timeout_s)
        )
        self._post = post
        self._read_timeout_s = read_timeout_s
        self._reconnect_delay_s = reconnect_delay_s
        self._on_state = on_state
        self._handlers: Dict[str, List[BroadcastHandler]] = {}
        self._handlers_lock = threading.Lock()
        self._stop = threading.Event()
        self._listener: Optional[threading.Thread] = None
        self._publisher = ThreadPoolExecutor(max_workers=1, thread_name_prefix="queueboard-publish")
        self.state = DISCONNECTED

    # ---------- BroadcastPort ----------

    def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._stop.is_set():
            return
        try:
            self._publisher.submit(self._send, event, dict(payload))
        except RuntimeError:
            self._log.warning("Broadcast publisher closed; dropped %s", event)

    def subscribe(self, event: str, handler: BroadcastHandler) -> None:
        with self._handlers_lock:
            self._handlers.setdefault(event, []).append(handler)
        self._ensure_listener()

    def unsubscribe(self, event: str, handler: BroadcastHandler) -> None:
        with self._handlers_lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def close(self) -> None:
        self._stop.set()
        self._publisher.shutdown(wait=False)
        self.http.close()
        self._set_state(DISCONNECTED)

    # ---------- Internals ----------

    def _send(self, event: str, payload: Dict[str, Any]) -> None:
        body = {"event": event, "payload": payload, "origin": self.client_id}
        try:
            resp = self.http.post("/events", json_body=body)
            raise_for_response(resp, f"Publish {event}")
        except ApiError as exc:
            self._log.warning("Broadcast publish failed: %s", exc)
        except Exception:
            self._log.exception("Unexpected broadcast publish failure for %s", event)

    def _ensure_listener(self) -> None:
        if self._listener is not None and self._listener.is_alive():
            return
        self._stop.clear()
        self._listener = threading.Thread(
            target=self._listen_forever, name="queueboard-sse", daemon=True
        )
        self._listener.start()

    def _listen_forever(self) -> None:
        while not self._stop.is_set():
            self._set_state(CONNECTING)
            try:
                self._listen_once()
            except (ApiError, req_exc.RequestException) as exc:
                self._log.warning("Broadcast stream lost: %s", exc)
            except Exception:
                self._log.exception("Broadcast stream crashed")
            self._set_state(DISCONNECTED)
            self._stop.wait(self._reconnect_delay_s)

    def _listen_once(self) -> None:
        resp = self.http.get(
            "/events",
            accept="text/event-stream",
            stream=True,
            timeout=(self.http.cfg.request_timeout_s, self._read_timeout_s),
        )
        raise_for_response(resp, "Subscribe events")
        self._set_state(CONNECTED)
        try:
            for event, data in iter_sse_events(resp.iter_lines(decode_unicode=True)):
                if self._stop.is_set():
                    break
                self._dispatch(event, data)
        finally:
            resp.close()

    def _dispatch(self, event: str, data: str) -> None:
        try:
            payload = json.loads(data)
        except ValueError:
            self._log.warning("Ignoring non-JSON %s event", event)
            return
        if not isinstance(payload, dict):
            return
        if payload.get("origin") == self.client_id:
            return
        with self._handlers_lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            self._post(lambda h=handler: h(payload))

    def _set_state(self, state: str) -> None:
        if state == self.state:
            return
        self.state = state
        self._log.info("Broadcast connection %s", state)
        if self._on_state:
            callback = self._on_state
            self._post(lambda: callback(state))


__all__ = [
    "CONNECTED",
    "CONNECTING",
    "DISCONNECTED",
    "SseBroadcastAdapter",
    "iter_sse_events",
]
