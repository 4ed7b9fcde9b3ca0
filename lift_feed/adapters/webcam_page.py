from __future__ import annotations

from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..browser import PageFetcher
from ..errors import NoRecordsError
from ..logging import get_logger
from ..models import WEBCAMS, Source, WebcamSnapshot, utcnow
from ..normalization import RawWebcam, normalize_webcams
from ..services.extraction import ExtractionClient, parse_webcam_extraction, webcam_prompt
from .base import Adapter, FetchContext, clean_text, create_soup, load_page

logger = get_logger(__name__)

DEFAULT_WEBCAMS_URL = "https://www.whistlerblackcomb.com/the-mountain/mountain-conditions/mountain-cams.aspx"

MEDIA_TAGS = ("img", "iframe", "video", "source")
LIVE_TAGS = ("iframe", "video", "source")
CAMERA_KEYWORDS = ("webcam", "cam", "camera", "stream")

KNOWN_WEBCAMS: Tuple[str, ...] = (
    "Peak Express",
    "Whistler Peak",
    "Blackcomb Glacier",
    "Roundhouse Lodge",
    "Village Square",
    "Rendezvous Lodge",
    "Crystal Hut",
    "Harmony",
    "Symphony",
    "Emerald Express",
    "Big Red Express",
    "Catskinner",
    "Jersey Cream",
    "7th Heaven",
    "Glacier Express",
)

# (name fragments, location, elevation in metres); first match wins.
LOCATION_TABLE: Tuple[Tuple[Tuple[str, ...], str, int], ...] = (
    (("peak",), "Peak Area", 2180),
    (("glacier", "7th heaven"), "Blackcomb Glacier", 2240),
    (("roundhouse",), "Mid-Mountain", 1860),
    (("village",), "Whistler Village", 675),
    (("rendezvous",), "Blackcomb Base", 675),
    (("crystal",), "Crystal Ridge", 2020),
)
DEFAULT_LOCATION = ("Mountain Area", 1500)


def locate(name: str) -> Tuple[str, int]:
    lowered = name.lower()
    for fragments, location, elevation in LOCATION_TABLE:
        if any(fragment in lowered for fragment in fragments):
            return location, elevation
    return DEFAULT_LOCATION


def _media_source(element: Tag) -> str:
    for attr in ("src", "data-src", "poster"):
        value = element.get(attr)
        if value:
            return str(value).strip()
    return ""


def _known_name(*texts: str) -> Optional[str]:
    haystack = " ".join(texts).lower()
    squashed = haystack.replace("-", "").replace("_", "")
    for name in KNOWN_WEBCAMS:
        lowered = name.lower()
        if lowered in haystack or lowered.replace(" ", "") in squashed:
            return name
    return None


def media_elements(soup: BeautifulSoup) -> List[Tag]:
    return [element for element in soup.find_all(MEDIA_TAGS) if _media_source(element)]


def describe_media(html: str, *, base_url: str) -> str:
    """Summarise the page's media elements, one per line, for the extraction prompt."""
    soup = create_soup(html)
    lines = []
    for element in media_elements(soup):
        parent_text = clean_text(element.parent)[:200] if element.parent is not None else ""
        lines.append(
            " | ".join(
                (
                    element.name,
                    urljoin(base_url, _media_source(element)),
                    f"alt={element.get('alt') or ''}",
                    f"title={element.get('title') or ''}",
                    f"context={parent_text}",
                )
            )
        )
    return "\n".join(lines)


def scan_webcams(html: str, *, base_url: str) -> List[RawWebcam]:
    soup = create_soup(html)
    raw: List[RawWebcam] = []
    for element in media_elements(soup):
        src = _media_source(element)
        alt = str(element.get("alt") or "").strip()
        title = str(element.get("title") or "").strip()
        if not any(keyword in f"{src} {alt} {title}".lower() for keyword in CAMERA_KEYWORDS):
            continue

        name = _known_name(alt, title, src) or alt or title
        if not name:
            continue
        location, elevation = locate(name)
        raw.append(
            RawWebcam(
                name=name,
                url=urljoin(base_url, src),
                location=location,
                is_live=element.name in LIVE_TAGS,
                elevation=elevation,
            )
        )
    return raw


class WebcamPageAdapter(Adapter):
    """Reads the webcam page through the extraction service."""

    name = "webcam-page"
    kind = WEBCAMS
    source = Source.SCRAPE

    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: ExtractionClient,
        *,
        url: str = DEFAULT_WEBCAMS_URL,
        max_document_chars: Optional[int] = 60000,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.url = url
        self.max_document_chars = max_document_chars

    def fetch(self, context: Optional[FetchContext] = None) -> WebcamSnapshot:
        context = context or FetchContext()
        page = load_page(self.fetcher, self.url, context)
        document = describe_media(page.html, base_url=page.url)
        if not document:
            raise NoRecordsError("no media elements on the webcam page", adapter=self.name)
        if self.max_document_chars is not None:
            document = document[: self.max_document_chars]

        output = self.extractor.complete(webcam_prompt(document, url=self.url), trace_id=context.trace_id)
        raw = []
        for item in parse_webcam_extraction(output):
            location, elevation = locate(item.name)
            raw.append(
                RawWebcam(
                    name=item.name,
                    url=urljoin(page.url, item.url),
                    location=item.location or location,
                    is_live=item.isLive,
                    elevation=item.elevation if item.elevation is not None else elevation,
                )
            )

        fetched_at = utcnow()
        result = normalize_webcams(raw, timestamp=fetched_at)
        logger.info("webcam_page.normalized", trace_id=context.trace_id, webcams=len(result.records))
        if not result.records:
            raise NoRecordsError("extraction found no webcams", adapter=self.name)
        return WebcamSnapshot(last_updated=fetched_at, source=self.source.value, records=result.records)


class HeuristicWebcamAdapter(Adapter):
    name = "webcam-heuristic"
    kind = WEBCAMS
    source = Source.SCRAPE_FALLBACK

    def __init__(self, fetcher: PageFetcher, *, url: str = DEFAULT_WEBCAMS_URL) -> None:
        self.fetcher = fetcher
        self.url = url

    def fetch(self, context: Optional[FetchContext] = None) -> WebcamSnapshot:
        context = context or FetchContext()
        page = load_page(self.fetcher, self.url, context)

        fetched_at = utcnow()
        result = normalize_webcams(scan_webcams(page.html, base_url=page.url), timestamp=fetched_at)
        logger.info("heuristic.webcams", trace_id=context.trace_id, webcams=len(result.records))
        if not result.records:
            raise NoRecordsError("no camera media recognised on the page", adapter=self.name)
        return WebcamSnapshot(last_updated=fetched_at, source=self.source.value, records=result.records)
