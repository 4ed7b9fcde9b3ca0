from __future__ import annotations

from typing import Optional

from ..browser import PageFetcher, compact_document
from ..errors import NoRecordsError
from ..logging import get_logger
from ..models import LIFTS, LiftSnapshot, Source, utcnow
from ..normalization import RawLift, normalize_lifts
from ..services.extraction import ExtractionClient, lift_prompt, parse_lift_extraction
from .base import Adapter, FetchContext, load_page

logger = get_logger(__name__)

DEFAULT_LIFTS_URL = "https://whistlerpeak.com/livelifts/"


class LiftPageAdapter(Adapter):
    """Renders the public lift status page and has the extraction service read it."""

    name = "lift-page"
    kind = LIFTS
    source = Source.SCRAPE

    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: ExtractionClient,
        *,
        url: str = DEFAULT_LIFTS_URL,
        max_document_chars: Optional[int] = 60000,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.url = url
        self.max_document_chars = max_document_chars

    def fetch(self, context: Optional[FetchContext] = None) -> LiftSnapshot:
        context = context or FetchContext()
        page = load_page(self.fetcher, self.url, context)
        document = compact_document(page.html, max_chars=self.max_document_chars)

        output = self.extractor.complete(lift_prompt(document, url=self.url), trace_id=context.trace_id)
        extracted = parse_lift_extraction(output)

        raw = [
            RawLift(
                name=item.liftName,
                status=item.status,
                lift_type=item.type,
                wait_time=item.waitTimeMinutes,
                capacity=item.capacity,
                sector=item.mountain,
            )
            for item in extracted
        ]
        fetched_at = utcnow()
        result = normalize_lifts(raw, timestamp=fetched_at)
        logger.info(
            "lift_page.normalized",
            trace_id=context.trace_id,
            extracted=len(extracted),
            lifts=len(result.records),
            duplicates_dropped=result.duplicates_dropped,
        )
        if not result.records:
            raise NoRecordsError("extraction found no lifts on the page", adapter=self.name)

        return LiftSnapshot(last_updated=fetched_at, source=self.source.value, records=result.records)
