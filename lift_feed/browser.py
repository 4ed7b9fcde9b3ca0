"""Headless page rendering for the scrape adapters."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol

from bs4 import BeautifulSoup, Comment
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .errors import NavigationTimeoutError, PageLoadError
from .http_client import DEFAULT_USER_AGENT
from .logging import get_logger
from .models import utcnow

logger = get_logger(__name__)

BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
)

_NOISE_TAGS = ("script", "style", "noscript", "svg", "iframe", "link", "meta")


@dataclass(frozen=True)
class RenderedPage:
    url: str
    html: str
    captured_at: datetime = field(default_factory=utcnow)


class PageFetcher(Protocol):
    def fetch(self, url: str, *, trace_id: str | None = None) -> RenderedPage:
        ...


class PlaywrightPageFetcher:
    """Loads a page in headless Chromium and returns the rendered document.

    A fresh browser is launched per fetch and always closed afterwards, so a
    crashed page never leaks a process. Fetches through one instance are
    serialized.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        navigation_timeout: float = 45.0,
        settle_seconds: float = 3.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.headless = headless
        self.navigation_timeout = navigation_timeout
        self.settle_seconds = settle_seconds
        self.user_agent = user_agent
        self._lock = threading.Lock()

    def fetch(self, url: str, *, trace_id: str | None = None) -> RenderedPage:
        with self._lock:
            logger.info("browser.fetch", trace_id=trace_id, url=url, headless=self.headless)
            try:
                with sync_playwright() as playwright:
                    browser = playwright.chromium.launch(headless=self.headless, args=list(BROWSER_ARGS))
                    try:
                        context = browser.new_context(
                            user_agent=self.user_agent,
                            extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
                        )
                        page = context.new_page()
                        page.goto(
                            url,
                            wait_until="domcontentloaded",
                            timeout=self.navigation_timeout * 1000,
                        )
                        if self.settle_seconds > 0:
                            page.wait_for_timeout(self.settle_seconds * 1000)
                        html = page.content()
                    finally:
                        browser.close()
            except PlaywrightTimeoutError as exc:
                logger.warning("browser.timeout", trace_id=trace_id, url=url, error=str(exc))
                raise NavigationTimeoutError(
                    f"navigation to {url} exceeded {self.navigation_timeout:.0f}s", adapter="browser"
                ) from exc
            except PlaywrightError as exc:
                logger.warning("browser.error", trace_id=trace_id, url=url, error=str(exc))
                raise PageLoadError(f"could not load {url}: {exc}", adapter="browser") from exc

        logger.info("browser.fetched", trace_id=trace_id, url=url, html_length=len(html))
        return RenderedPage(url=url, html=html)


def compact_document(html: str, *, max_chars: Optional[int] = None) -> str:
    """Strip markup that carries no lift data and cap the length for the extraction prompt."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    body = soup.body or soup
    compact = " ".join(str(body).split())
    if max_chars is not None and len(compact) > max_chars:
        compact = compact[:max_chars]
    return compact
