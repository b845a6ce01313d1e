from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from splunk_mcp.shared.errors import (
    ExtractionError,
    TransportError,
    UpstreamTimeoutError,
)
from splunk_mcp.shared.observability import get_logger
from splunk_mcp.shared.observability.metrics import (
    upstream_request_duration_seconds,
    upstream_requests_total,
)

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class UpstreamClient:
    """Authenticated async HTTP client for one upstream.

    Holds a long-lived ``httpx.AsyncClient`` with a fixed base URL and auth
    headers. Every request carries the client timeout as its deadline, and
    failures surface as ``TransportError``/``UpstreamTimeoutError`` carrying the
    ``httpx`` message text.
    """

    upstream = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_options: Any,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout if timeout is not None else DEFAULT_TIMEOUT_SECONDS,
            transport=transport,
            **client_options,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> httpx.Headers:
        return self._client.headers

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        status = "error"
        start = time.perf_counter()
        try:
            response = await self._client.request(method, path, **kwargs)
            status = str(response.status_code)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as exc:
            status = "timeout"
            raise UpstreamTimeoutError(
                f"{self.upstream} request timed out: {method} {path}: {exc}",
                upstream=self.upstream,
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                str(exc),
                upstream=self.upstream,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                str(exc) or exc.__class__.__name__, upstream=self.upstream
            ) from exc
        finally:
            upstream_requests_total.labels(self.upstream, method, status).inc()
            upstream_request_duration_seconds.labels(self.upstream, method).observe(
                time.perf_counter() - start
            )

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ExtractionError(
                f"Expected a JSON body from {response.request.url}",
                details={"status_code": response.status_code},
            ) from exc

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.request("GET", path, params=params)
        return self._decode_json(response)

    async def post_json(self, path: str, body: Dict[str, Any]) -> Any:
        response = await self.request("POST", path, json=body)
        return self._decode_json(response)
