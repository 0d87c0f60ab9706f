# rest_api/app.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from rest_api.broadcast import BroadcastHub, sse_stream
from rest_api.rate_limit import RateLimiter, client_ip
from rest_api.storage import BOARD_ROWS, EntryNotFound, QueueStore

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./queueboard.db")
QUEUE_RATE_LIMIT = int(os.getenv("QUEUE_RATE_LIMIT", "300"))
HISTORY_RATE_LIMIT = int(os.getenv("HISTORY_RATE_LIMIT", "30"))
RATE_LIMIT_WINDOW_S = float(os.getenv("RATE_LIMIT_WINDOW_S", "60"))
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")

EVENT_ENTRY_UPDATED = "entry-updated"
EVENT_SYNC_ALL = "sync-all"

log = logging.getLogger("rest_api")


# ---------- Request models ----------
class EntryPatch(BaseModel):
    text: Optional[str] = None
    checked: Optional[bool] = None
    rowIndex: Optional[int] = Field(None, ge=0, lt=BOARD_ROWS)


class QueueAction(BaseModel):
    action: Literal["initialize"]


class PublishRequest(BaseModel):
    event: Literal["entry-updated", "sync-all"]
    payload: Dict[str, Any] = Field(default_factory=dict)
    origin: Optional[str] = None


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def create_app(
    store: Optional[QueueStore] = None,
    hub: Optional[BroadcastHub] = None,
    queue_limiter: Optional[RateLimiter] = None,
    history_limiter: Optional[RateLimiter] = None,
    cors_origins: Optional[List[str]] = None,
) -> FastAPI:
    """Build the board API around injected store, hub and limiters."""
    if store is None:
        store = QueueStore(DATABASE_URL)
    if hub is None:
        hub = BroadcastHub()
    if queue_limiter is None:
        queue_limiter = RateLimiter(QUEUE_RATE_LIMIT, RATE_LIMIT_WINDOW_S)
    if history_limiter is None:
        history_limiter = RateLimiter(HISTORY_RATE_LIMIT, RATE_LIMIT_WINDOW_S)
    origins = _split_csv(CORS_ALLOW_ORIGINS) if cors_origins is None else list(cors_origins)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.create_schema()
        try:
            yield
        finally:
            hub.close()

    app = FastAPI(title="Queue Board API", version="0.3.0", lifespan=lifespan)
    app.state.store = store
    app.state.hub = hub
    app.state.queue_limiter = queue_limiter
    app.state.history_limiter = history_limiter

    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "X-API-Key"],
        )

    def _enforce(limiter: RateLimiter, request: Request, response: Response) -> None:
        peer = request.client.host if request.client else None
        result = limiter.hit(client_ip(request.headers, peer))
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(int(result.reset_at)),
        }
        if not result.success:
            headers["Retry-After"] = str(result.retry_after_s)
            raise HTTPException(429, "Too many requests", headers=headers)
        response.headers.update(headers)

    def queue_limit(request: Request, response: Response) -> None:
        _enforce(queue_limiter, request, response)

    def history_limit(request: Request, response: Response) -> None:
        _enforce(history_limiter, request, response)

    def _entry_or_404(fn, *args):
        try:
            return fn(*args)
        except EntryNotFound as exc:
            raise HTTPException(404, str(exc))

    @app.get("/health")
    def health():
        return {"ok": True, "subscribers": hub.subscriber_count}

    @app.get("/queue", dependencies=[Depends(queue_limit)])
    def list_queue():
        return store.list_entries()

    @app.post("/queue", dependencies=[Depends(queue_limit)])
    def queue_action(req: QueueAction):
        slots = store.initialize_grid()
        hub.publish(EVENT_SYNC_ALL, {"slots": slots})
        return slots

    @app.get("/queue/{entry_id}", dependencies=[Depends(queue_limit)])
    def get_queue_entry(entry_id: int):
        return _entry_or_404(store.get_entry, entry_id)

    @app.patch("/queue/{entry_id}", dependencies=[Depends(queue_limit)])
    def patch_queue_entry(entry_id: int, patch: EntryPatch):
        present = patch.model_fields_set
        changes: Dict[str, Any] = {}
        if "text" in present:
            changes["text"] = patch.text or ""
        if "checked" in present and patch.checked is not None:
            changes["checked"] = patch.checked
        if "rowIndex" in present and patch.rowIndex is not None:
            changes["row_index"] = patch.rowIndex
        if not changes:
            raise HTTPException(400, "No fields to update")
        return _entry_or_404(store.update_entry, entry_id, changes)

    @app.delete("/queue/{entry_id}", dependencies=[Depends(queue_limit)])
    def clear_queue_entry(entry_id: int):
        return _entry_or_404(store.clear_entry, entry_id)

    @app.get("/history", dependencies=[Depends(history_limit)])
    def list_history(limit: int = Query(100, ge=1, le=100)):
        return store.list_history(limit)

    @app.post("/events", status_code=202)
    def publish_event(req: PublishRequest):
        delivered = hub.publish(req.event, req.payload, origin=req.origin)
        return {"ok": True, "delivered": delivered}

    @app.get("/events")
    def stream_events():
        sub = hub.subscribe()
        return StreamingResponse(
            sse_stream(hub, sub),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
