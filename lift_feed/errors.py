"""Typed failures raised by upstream adapters.

Every adapter failure is a :class:`FetchError`; the refresh orchestrator treats
all of them as "try the next adapter" and only surfaces them once the whole
chain is exhausted.
"""
from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """An upstream adapter could not produce a snapshot."""

    def __init__(self, message: str, *, adapter: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.adapter = adapter
        self.status_code = status_code

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        prefix = f"{self.adapter}: " if self.adapter else ""
        suffix = f" (HTTP {self.status_code})" if self.status_code is not None else ""
        return f"{prefix}{self.message}{suffix}"


class UpstreamTransportError(FetchError):
    """Connection, DNS or protocol failure talking to an upstream."""


class UpstreamTimeoutError(UpstreamTransportError):
    pass


class VendorHTTPError(FetchError):
    """The vendor API answered with a non-200 status."""


class VendorAuthError(VendorHTTPError):
    """The vendor API rejected our credentials (401/403)."""


class MalformedPayloadError(FetchError):
    """An upstream response did not have the expected shape."""


class NoRecordsError(FetchError):
    """The upstream answered but nothing usable was extracted.

    An empty lift list is never a successful result.
    """


class PageLoadError(FetchError):
    """The headless browser failed to load the page."""


class NavigationTimeoutError(PageLoadError):
    pass


class ExtractionServiceError(FetchError):
    """The structured-extraction (LLM) service failed."""


class ExtractionTimeoutError(ExtractionServiceError):
    pass


class ExtractionAuthError(ExtractionServiceError):
    pass


class ExtractionQuotaError(ExtractionServiceError):
    """Quota or billing exhaustion on the extraction service."""


class MalformedExtractionError(MalformedPayloadError):
    """The extraction service returned something other than the requested JSON."""


__all__ = [
    "ExtractionAuthError",
    "ExtractionQuotaError",
    "ExtractionServiceError",
    "ExtractionTimeoutError",
    "FetchError",
    "MalformedExtractionError",
    "MalformedPayloadError",
    "NavigationTimeoutError",
    "NoRecordsError",
    "PageLoadError",
    "UpstreamTimeoutError",
    "UpstreamTransportError",
    "VendorAuthError",
    "VendorHTTPError",
]
