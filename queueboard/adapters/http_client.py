"""requests transport shared by the REST store and the SSE broadcast adapter.

Every call goes to ``<base_url>/<path>`` with the ``X-API-Key`` header when a
key is configured. Unreachable servers surface as ``ApiTimeoutError`` after
``HttpConfig.retries`` extra attempts; HTTP status handling stays with the
calling adapter.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import requests
from requests import exceptions as req_exc

from queueboard.adapters.api_errors import ApiError, ApiTimeoutError

# Seconds, or (connect, read) where a ``None`` read timeout keeps a stream open.
Timeout = Union[float, Tuple[float, Optional[float]]]

JSON = "application/json"


@dataclass
class HttpConfig:
    request_timeout_s: float = 10
    retries: int = 0

    @property
    def attempts(self) -> int:
        return max(0, self.retries) + 1


class RetryingSession:
    """One ``requests.Session`` bound to a board API base URL."""

    def __init__(self, base_url: str, api_key: Optional[str], cfg: HttpConfig) -> None:
        self.session = requests.Session()
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.cfg = cfg

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def headers_for(self, accept: str, has_body: bool) -> Dict[str, str]:
        headers = {"Accept": accept}
        if has_body:
            headers["Content-Type"] = JSON
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        accept: str = JSON,
        timeout: Optional[Timeout] = None,
        stream: bool = False,
    ) -> requests.Response:
        """Return the first response that reached the server, whatever its status.

        Raises ``ApiTimeoutError`` once every attempt timed out or was refused,
        and ``ApiError`` right away for other ``requests`` failures such as an
        invalid URL.
        """
        url = self.url(path)
        context = f"{method} {url}"
        kwargs = {
            "params": params,
            "data": None if json_body is None else json.dumps(json_body),
            "headers": self.headers_for(accept, json_body is not None),
            "timeout": self.cfg.request_timeout_s if timeout is None else timeout,
            "stream": stream,
        }
        for attempt in range(1, self.cfg.attempts + 1):
            try:
                return self.session.request(method, url, **kwargs)
            except (req_exc.Timeout, req_exc.ConnectionError) as exc:
                if attempt == self.cfg.attempts:
                    raise ApiTimeoutError(
                        f"Timeout contacting {url}", context=context
                    ) from exc
            except req_exc.RequestException as exc:
                raise ApiError(str(exc), context=context) from exc
        raise AssertionError("unreachable")

    def get(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> requests.Response:
        return self.request("DELETE", path, **kwargs)

    def close(self) -> None:
        self.session.close()


__all__ = ["HttpConfig", "RetryingSession", "Timeout"]
