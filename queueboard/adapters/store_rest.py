# queueboard/adapters/store_rest.py
from __future__ import annotations

import logging
from typing import Any, List, Optional

from queueboard.domain.entities import (
    HistoryLogEntry,
    Slot,
    SlotId,
    SlotPatch,
    history_from_payload,
    slot_from_payload,
    slots_from_payload,
)
from queueboard.domain.ports import StorePort

from .api_errors import ApiResponseFormatError, raise_for_response
from .http_client import HttpConfig, RetryingSession


class StoreRestAdapter(StorePort):
    """REST adapter for the board API.

    Endpoints:
      - GET    {base}/queue               -> [slot, ...]
      - GET    {base}/queue/{id}          -> slot
      - POST   {base}/queue               body: {"action": "initialize"} -> [slot, ...]
      - PATCH  {base}/queue/{id}          body: {"text"?, "checked"?, "rowIndex"?} -> slot
      - DELETE {base}/queue/{id}          -> slot (text cleared, row kept)
      - GET    {base}/history?limit=N     -> [entry, ...] newest first

    Notes:
      - Every call is bounded by ``request_timeout_s``.
      - 404/429/4xx/5xx become typed ``ApiError`` subclasses.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        request_timeout_s: float = 10,
        retries: int = 0,
        session: Optional[RetryingSession] = None,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.cfg = HttpConfig(request_timeout_s=request_timeout_s, retries=retries)
        self.http = session or RetryingSession(base_url, api_key, self.cfg)

    # ---------- StorePort implementation ----------

    def list_slots(self) -> List[Slot]:
        resp = self.http.get("/queue")
        raise_for_response(resp, "List slots")
        return self._parse_slots(resp, "List slots")

    def get_slot(self, slot_id: SlotId) -> Slot:
        resp = self.http.get(f"/queue/{int(slot_id)}")
        raise_for_response(resp, f"Get slot {slot_id}")
        return self._parse_slot(resp, f"Get slot {slot_id}")

    def update_slot(self, slot_id: SlotId, patch: SlotPatch) -> Slot:
        ctx = f"Update slot {slot_id}"
        resp = self.http.patch(f"/queue/{int(slot_id)}", json_body=patch.to_payload())
        raise_for_response(resp, ctx)
        return self._parse_slot(resp, ctx)

    def clear_slot_text(self, slot_id: SlotId) -> Slot:
        ctx = f"Clear slot {slot_id}"
        resp = self.http.delete(f"/queue/{int(slot_id)}")
        raise_for_response(resp, ctx)
        return self._parse_slot(resp, ctx)

    def initialize_grid(self) -> List[Slot]:
        resp = self.http.post("/queue", json_body={"action": "initialize"})
        raise_for_response(resp, "Initialize board")
        return self._parse_slots(resp, "Initialize board")

    def list_history(self, limit: int = 100) -> List[HistoryLogEntry]:
        resp = self.http.get("/history", params={"limit": int(limit)})
        raise_for_response(resp, "List history")
        data = self._json(resp, "List history")
        if not isinstance(data, list):
            raise ApiResponseFormatError(
                "List history: expected an array", payload=data, context="List history"
            )
        try:
            return [history_from_payload(item) for item in data]
        except ValueError as exc:
            raise ApiResponseFormatError(f"List history: {exc}", payload=data) from exc

    # ---------- Helpers ----------

    def _json(self, resp: Any, ctx: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiResponseFormatError(f"{ctx}: response is not JSON", context=ctx) from exc

    def _parse_slots(self, resp: Any, ctx: str) -> List[Slot]:
        data = self._json(resp, ctx)
        try:
            return slots_from_payload(data)
        except ValueError as exc:
            self._log.warning("%s returned malformed data: %s", ctx, exc)
            raise ApiResponseFormatError(f"{ctx}: {exc}", payload=data, context=ctx) from exc

    def _parse_slot(self, resp: Any, ctx: str) -> Slot:
        data = self._json(resp, ctx)
        try:
            return slot_from_payload(data)
        except ValueError as exc:
            raise ApiResponseFormatError(f"{ctx}: {exc}", payload=data, context=ctx) from exc


__all__ = ["StoreRestAdapter"]
