"""Adapter exceptions -> ``UseCaseError`` codes the board view model understands."""

from __future__ import annotations

from typing import Optional, Tuple, Type

from queueboard.adapters.api_errors import (
    ApiClientError,
    ApiError,
    ApiNotFoundError,
    ApiRateLimitError,
    ApiResponseFormatError,
    ApiServerError,
    ApiTimeoutError,
    extract_error_hint,
)
from queueboard.domain.ports import UseCaseError

TRANSIENT_CODES = frozenset({"REQUEST_TIMEOUT", "RATE_LIMITED", "SERVER_ERROR"})

# Checked in order; subclasses come before their bases.
_FIXED: Tuple[Tuple[Type[ApiError], str, str], ...] = (
    (ApiTimeoutError, "REQUEST_TIMEOUT", "Cannot reach the server. Check your connection."),
    (ApiNotFoundError, "NOT_FOUND", "Entry not found."),
    (ApiResponseFormatError, "INVALID_RESPONSE", "Invalid data format received from server."),
    (ApiServerError, "SERVER_ERROR", "Server error, try again."),
)


def map_api_error(
    exc: Exception,
    *,
    default_code: str,
    default_message: Optional[str] = None,
) -> UseCaseError:
    """Return a ``UseCaseError`` for ``exc``.

    ``default_code`` labels exceptions from outside the adapter hierarchy;
    ``default_message`` stands in when such an exception has no text.
    """
    if isinstance(exc, UseCaseError):
        return exc
    if isinstance(exc, ApiRateLimitError):
        return _rate_limited(exc.retry_after_s)
    for exc_type, code, message in _FIXED:
        if isinstance(exc, exc_type):
            return UseCaseError(code, message)
    if isinstance(exc, ApiClientError):
        hint = exc.hint or extract_error_hint(exc.payload)
        if exc.status in (400, 422):
            return UseCaseError("INVALID_PARAMS", _with_hint("Invalid request", hint))
        label = f"Request failed (HTTP {exc.status})" if exc.status else "Request failed"
        return UseCaseError("REQUEST_FAILED", _with_hint(label, hint))
    if isinstance(exc, ApiError):
        return UseCaseError("API_ERROR", str(exc))
    return UseCaseError(default_code, default_message or str(exc) or "Unexpected error.")


def _rate_limited(retry_after: Optional[int]) -> UseCaseError:
    if retry_after is None:
        message = "Rate limit exceeded. Try again shortly."
    else:
        message = f"Rate limit exceeded. Retry in {retry_after}s."
    return UseCaseError("RATE_LIMITED", message, meta={"retry_after_s": retry_after})


def _with_hint(base: str, hint: Optional[str]) -> str:
    text = (hint or "").strip()
    return f"{base}: {text}" if text else f"{base.rstrip('.')}."


def is_transient(err: UseCaseError) -> bool:
    """True for failures the next poll cycle or user action retries naturally."""
    return err.code in TRANSIENT_CODES


__all__ = ["TRANSIENT_CODES", "is_transient", "map_api_error"]
