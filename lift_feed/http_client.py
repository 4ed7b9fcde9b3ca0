from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .errors import UpstreamTimeoutError, UpstreamTransportError
from .logging import get_logger

logger = get_logger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class HttpFetcher:
    """Thin httpx wrapper that turns transport failures into :class:`FetchError` types.

    There is no retry here: a failed attempt falls through to the next adapter
    and the orchestrator owns backoff between cycles.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        timeout: float = 10.0,
        adapter: str = "http",
    ) -> None:
        self.client = client or httpx.Client(
            timeout=timeout,
            headers={"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"},
        )
        self.adapter = adapter

    def get(
        self,
        url: str,
        *,
        extra_headers: Optional[Dict[str, str]] = None,
        trace_id: str | None = None,
    ) -> httpx.Response:
        return self._send("GET", url, headers=extra_headers, trace_id=trace_id)

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        trace_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        logger.info("http.request", trace_id=trace_id, adapter=self.adapter, method=method, url=url)
        try:
            response = self.client.request(method, url, headers=headers or {}, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("http.timeout", trace_id=trace_id, adapter=self.adapter, url=url, error=str(exc))
            raise UpstreamTimeoutError(f"request to {url} timed out", adapter=self.adapter) from exc
        except httpx.RequestError as exc:
            logger.warning("http.error", trace_id=trace_id, adapter=self.adapter, url=url, error=str(exc))
            raise UpstreamTransportError(f"request to {url} failed: {exc}", adapter=self.adapter) from exc
        logger.info(
            "http.response",
            trace_id=trace_id,
            adapter=self.adapter,
            url=url,
            status_code=response.status_code,
        )
        return response

    def close(self) -> None:
        self.client.close()
