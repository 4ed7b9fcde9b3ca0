"""Shared plumbing for upstream adapters using BeautifulSoup."""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Iterable, List, Optional, Set

from bs4 import BeautifulSoup, Tag

from ..browser import PageFetcher, RenderedPage
from ..logging import get_logger
from ..models import Snapshot, Source

logger = get_logger(__name__)


def create_soup(html: str) -> BeautifulSoup:
    """Create a BeautifulSoup parser from HTML content."""
    return BeautifulSoup(html, "lxml")


def clean_text(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return " ".join(element.get_text(" ", strip=True).split())


def class_tokens(element: Tag) -> Set[str]:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return {cls.lower() for cls in classes}


def find_status_token(text: str, tokens: Iterable[str]) -> Optional[str]:
    """Return the first of ``tokens`` appearing as a whole word in ``text``."""
    lowered = text.lower()
    for token in tokens:
        if re.search(rf"\b{re.escape(token)}\b", lowered):
            return token
    return None


@dataclass
class FetchContext:
    """State shared by the adapters of one refresh cycle.

    Rendered pages are kept by URL so a fallback adapter can reuse the
    document an earlier adapter already paid to load.
    """

    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    documents: Dict[str, RenderedPage] = field(default_factory=dict)

    def document(self, url: str) -> Optional[RenderedPage]:
        return self.documents.get(url)

    def remember(self, page: RenderedPage) -> None:
        self.documents[page.url] = page


def load_page(fetcher: PageFetcher, url: str, context: FetchContext) -> RenderedPage:
    cached = context.document(url)
    if cached is not None:
        logger.info("adapter.page.reused", trace_id=context.trace_id, url=url)
        return cached
    page = fetcher.fetch(url, trace_id=context.trace_id)
    context.remember(page)
    return page


class Adapter:
    """One upstream strategy in a refresh chain.

    Subclasses implement :meth:`fetch`, returning a populated snapshot or
    raising a :class:`~lift_feed.errors.FetchError`.
    """

    name: ClassVar[str] = "adapter"
    kind: ClassVar[str] = ""
    source: ClassVar[Source] = Source.SCRAPE

    def fetch(self, context: Optional[FetchContext] = None) -> Snapshot:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def adapter_names(adapters: Iterable[Adapter]) -> List[str]:
    return [adapter.name for adapter in adapters]
