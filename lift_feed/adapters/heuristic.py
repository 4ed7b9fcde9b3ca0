"""Non-LLM lift status extraction from the rendered status page.

Lower precision than the extraction service and with no external service
dependency. Two passes run in order:

* the page's own markup (``.lift-container`` blocks whose status lives in an
  ``openContainer``/``closedContainer``/``holdContainer`` class), and
* a scan for known lift names, reading a status word from the text around
  each match.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from ..browser import PageFetcher
from ..errors import NoRecordsError
from ..logging import get_logger
from ..models import LIFTS, LiftSnapshot, Source, utcnow
from ..normalization import RawLift, normalize_lifts
from .base import Adapter, FetchContext, class_tokens, clean_text, create_soup, find_status_token, load_page

logger = get_logger(__name__)

KNOWN_LIFTS: Tuple[str, ...] = (
    "Peak 2 Peak Gondola",
    "Whistler Village Gondola",
    "Creekside Gondola",
    "Blackcomb Gondola",
    "Excalibur Gondola",
    "Peak Express",
    "Harmony Express",
    "Big Red Express",
    "Emerald Express",
    "Symphony Express",
    "Garbanzo Express",
    "Fitzsimmons Express",
    "Olympic Express",
    "Olympic Chair",
    "Franz Chair",
    "Red Chair",
    "Orange Chair",
    "Magic Chair",
    "Jersey Cream Express",
    "Glacier Express",
    "7th Heaven Express",
    "Crystal Ridge Express",
    "Catskinner Express",
    "Catskinner Chair",
    "Excelerator Express",
    "Solar Coaster Express",
    "Wizard Express",
    "Showcase T-Bar",
    "Horstman T-Bar",
    "Glacier T-Bar",
)

# Checked in order; "hold" wins over "open" when a lift reads "open - on hold".
STATUS_TOKENS: Tuple[str, ...] = ("hold", "scheduled", "closed", "open")

CONTAINER_STATUS_CLASSES: Tuple[Tuple[str, str], ...] = (
    ("holdcontainer", "On Hold"),
    ("closedcontainer", "Closed"),
    ("opencontainer", "Open"),
)

_HEADINGS = ("h1", "h2", "h3", "h4")
_MAX_PARENT_LEVELS = 3


def _container_status(container: Tag) -> Optional[str]:
    classes = set(class_tokens(container))
    for child in container.find_all(class_=True):
        classes |= class_tokens(child)
    for css_class, status in CONTAINER_STATUS_CLASSES:
        if css_class in classes:
            return status
    return None


def parse_lift_markup(soup: BeautifulSoup) -> List[RawLift]:
    raw: List[RawLift] = []
    for container in soup.select(".lift-container"):
        name = clean_text(container.select_one(".liftName"))
        if not name:
            continue
        heading = container.find_previous(_HEADINGS)
        raw.append(
            RawLift(
                name=name,
                status=_container_status(container),
                grouping=clean_text(heading) or None,
            )
        )
    return raw


def _mentions_other_lift(text: str, lift_name: str) -> bool:
    lowered = text.lower()
    return any(other.lower() in lowered for other in KNOWN_LIFTS if other != lift_name)


def scan_known_lifts(soup: BeautifulSoup) -> List[RawLift]:
    raw: List[RawLift] = []
    for lift_name in KNOWN_LIFTS:
        pattern = re.compile(rf"\b{re.escape(lift_name)}\b", re.IGNORECASE)
        match = soup.find(string=pattern)
        if match is None:
            continue

        element = match.parent
        token = None
        for _ in range(_MAX_PARENT_LEVELS):
            if element is None:
                break
            text = clean_text(element)
            # Past this point the text belongs to a neighbouring lift as well.
            if _mentions_other_lift(text, lift_name):
                break
            token = find_status_token(text, STATUS_TOKENS)
            if token:
                break
            element = element.parent
        if token:
            raw.append(RawLift(name=lift_name, status=token))
    return raw


def extract_lifts(html: str) -> Tuple[List[RawLift], str]:
    """Return raw lifts and the pass that produced them (``markup`` or ``name-scan``)."""
    soup = create_soup(html)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    raw = parse_lift_markup(soup)
    if raw:
        return raw, "markup"
    return scan_known_lifts(soup), "name-scan"


class HeuristicLiftAdapter(Adapter):
    name = "lift-heuristic"
    kind = LIFTS
    source = Source.SCRAPE_FALLBACK

    def __init__(self, fetcher: PageFetcher, *, url: str) -> None:
        self.fetcher = fetcher
        self.url = url

    def fetch(self, context: Optional[FetchContext] = None) -> LiftSnapshot:
        context = context or FetchContext()
        page = load_page(self.fetcher, self.url, context)
        raw, method = extract_lifts(page.html)

        fetched_at = utcnow()
        result = normalize_lifts(raw, timestamp=fetched_at)
        logger.info("heuristic.lifts", trace_id=context.trace_id, method=method, lifts=len(result.records))
        if not result.records:
            raise NoRecordsError("no known lifts recognised on the page", adapter=self.name)

        return LiftSnapshot(last_updated=fetched_at, source=self.source.value, records=result.records)
