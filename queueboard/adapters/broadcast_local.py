"""In-process broadcast channel shared by several clients.

Used for offline runs (no backend) and for multi-client tests. Delivery is
synchronous and skips the publishing client, like the SSE transport does.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from queueboard.domain.ports import BroadcastHandler, BroadcastPort

_log = logging.getLogger(__name__)


class LocalBroadcastHub:
    """Fan-out point; hand each client its own channel via ``channel()``."""

    def __init__(self) -> None:
        self._channels: List["LocalBroadcastChannel"] = []
        self.published: List[tuple] = []

    def channel(self, client_id: str) -> "LocalBroadcastChannel":
        chan = LocalBroadcastChannel(self, client_id)
        self._channels.append(chan)
        return chan

    def deliver(self, origin: str, event: str, payload: Mapping[str, Any]) -> None:
        self.published.append((origin, event, dict(payload)))
        for chan in list(self._channels):
            if chan.client_id == origin:
                continue
            chan.receive(event, payload)

    def detach(self, chan: "LocalBroadcastChannel") -> None:
        if chan in self._channels:
            self._channels.remove(chan)


class LocalBroadcastChannel(BroadcastPort):
    def __init__(self, hub: LocalBroadcastHub, client_id: str) -> None:
        self.hub = hub
        self.client_id = client_id
        self._handlers: Dict[str, List[BroadcastHandler]] = {}

    def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        try:
            self.hub.deliver(self.client_id, event, payload)
        except Exception:
            _log.exception("Local broadcast of %s failed", event)

    def subscribe(self, event: str, handler: BroadcastHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: BroadcastHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def receive(self, event: str, payload: Mapping[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            handler(payload)

    def close(self) -> None:
        self._handlers.clear()
        self.hub.detach(self)


__all__ = ["LocalBroadcastChannel", "LocalBroadcastHub"]
