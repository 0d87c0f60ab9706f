"""Typed failures raised by the REST/SSE adapters.

Use cases never see ``requests`` exceptions; they receive one of the classes
below and translate it with ``queueboard.usecases.error_mapping``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type

# Keys the FastAPI backend (and most JSON APIs) use for a readable reason.
DETAIL_KEYS = ("detail", "error", "message", "details")
HINT_KEYS = ("hint", "details")


class ApiError(RuntimeError):
    """Base class for REST adapter failures."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        hint: Optional[str] = None,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.hint = hint
        self.payload = payload
        self.context = context


class ApiClientError(ApiError):
    """HTTP 4xx from the board API."""


class ApiNotFoundError(ApiClientError):
    """HTTP 404: the slot id no longer resolves."""


class ApiRateLimitError(ApiClientError):
    """HTTP 429; ``retry_after_s`` carries the server's ``Retry-After`` seconds."""

    def __init__(self, message: str, *, retry_after_s: Optional[int] = None, **kwargs: Any) -> None:
        kwargs.setdefault("status", 429)
        super().__init__(message, **kwargs)
        self.retry_after_s = retry_after_s


class ApiServerError(ApiError):
    """HTTP 5xx from the board API."""


class ApiTimeoutError(ApiError):
    """The server could not be reached (timeout or refused connection)."""


class ApiResponseFormatError(ApiError):
    """2xx response whose body is not the expected JSON shape."""


_BY_STATUS: Dict[int, Type[ApiClientError]] = {404: ApiNotFoundError}


def parse_error_payload(resp: Any) -> Any:
    """JSON body of an error response, else up to 400 chars of its text."""
    try:
        return resp.json()
    except ValueError:
        return (getattr(resp, "text", "") or "")[:400] or None


def error_detail(payload: Any) -> Optional[str]:
    """First non-empty reason string found in ``payload``, searching nested values."""
    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, dict):
        candidates = [payload.get(key) for key in DETAIL_KEYS]
    elif isinstance(payload, list):
        candidates = list(payload)
    else:
        return None
    for value in candidates:
        if isinstance(value, (str, list, dict)):
            found = error_detail(value)
            if found:
                return found
    return None


def extract_error_hint(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for key in HINT_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()[:200]
    return None


def parse_retry_after(value: Any) -> Optional[int]:
    """Delta-seconds from a ``Retry-After`` header; HTTP dates are not supported."""
    if value is None:
        return None
    try:
        return max(0, int(float(str(value).strip())))
    except ValueError:
        return None


def raise_for_response(resp: Any, context: str) -> None:
    """Raise the typed error matching a non-2xx response; return for 2xx."""
    status = int(getattr(resp, "status_code", 0) or 0)
    if 200 <= status < 300:
        return
    payload = parse_error_payload(resp)
    detail = error_detail(payload)
    message = f"{context}: {detail} (HTTP {status})" if detail else f"{context}: HTTP {status}"
    common = {"status": status, "payload": payload, "context": context}
    if status >= 500 or status < 400:
        raise ApiServerError(message, **common)
    if status == 429:
        headers = getattr(resp, "headers", None) or {}
        raise ApiRateLimitError(
            message, retry_after_s=parse_retry_after(headers.get("Retry-After")), **common
        )
    error_cls = _BY_STATUS.get(status, ApiClientError)
    raise error_cls(message, hint=extract_error_hint(payload), **common)


__all__ = [
    "ApiClientError",
    "ApiError",
    "ApiNotFoundError",
    "ApiRateLimitError",
    "ApiResponseFormatError",
    "ApiServerError",
    "ApiTimeoutError",
    "error_detail",
    "extract_error_hint",
    "parse_error_payload",
    "parse_retry_after",
    "raise_for_response",
]
