from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from lift_feed.browser import RenderedPage
from lift_feed.models import LiftRecord, LiftSnapshot, LiftStatus, LiftType, Mountain

FIXTURES = Path(__file__).parent / "fixtures"


class StaticPageFetcher:
    """Stands in for the headless browser; serves one HTML document for every URL."""

    def __init__(self, html: str) -> None:
        self.html = html
        self.calls: List[str] = []

    def fetch(self, url: str, *, trace_id: Optional[str] = None) -> RenderedPage:
        self.calls.append(url)
        return RenderedPage(url=url, html=self.html)


@pytest.fixture
def fixture_text() -> Callable[[str], str]:
    def _read(name: str) -> str:
        return (FIXTURES / name).read_text()

    return _read


@pytest.fixture
def page_fetcher_factory() -> Callable[[str], StaticPageFetcher]:
    return StaticPageFetcher


@pytest.fixture
def lift_snapshot_factory() -> Callable[..., LiftSnapshot]:
    def _build(
        names=("Peak Express", "Jersey Cream Express"),
        *,
        source: str = "live-vendor-api",
        timestamp: Optional[datetime] = None,
    ) -> LiftSnapshot:
        timestamp = timestamp or datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)
        records = [
            LiftRecord(
                name=name,
                status=LiftStatus.OPEN,
                mountain=Mountain.UNKNOWN,
                type=LiftType.EXPRESS_CHAIR,
                last_updated=timestamp,
                wait_time_minutes=5,
                capacity=1200,
            )
            for name in names
        ]
        return LiftSnapshot(last_updated=timestamp, source=source, records=records)

    return _build
