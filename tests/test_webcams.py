from __future__ import annotations

import httpx
import pytest

from lift_feed.adapters.webcam_page import (
    HeuristicWebcamAdapter,
    WebcamPageAdapter,
    describe_media,
    locate,
    scan_webcams,
)
from lift_feed.errors import NoRecordsError
from lift_feed.services.extraction import ExtractionClient

CAMS_URL = "https://www.whistlerblackcomb.com/the-mountain/mountain-conditions/mountain-cams.aspx"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Whistler Peak", ("Peak Area", 2180)),
        ("7th Heaven", ("Blackcomb Glacier", 2240)),
        ("Roundhouse Lodge", ("Mid-Mountain", 1860)),
        ("Village Square", ("Whistler Village", 675)),
        ("Rendezvous Lodge", ("Blackcomb Base", 675)),
        ("Crystal Hut", ("Crystal Ridge", 2020)),
        ("Harmony", ("Mountain Area", 1500)),
    ],
)
def test_location_table(name, expected):
    assert locate(name) == expected


def test_scan_picks_camera_media_only(fixture_text):
    raw = scan_webcams(fixture_text("mountain_cams.html"), base_url=CAMS_URL)

    assert [(item.name, item.location, item.is_live) for item in raw] == [
        ("Roundhouse Lodge", "Mid-Mountain", False),
        ("Whistler Peak", "Peak Area", True),
        ("7th Heaven", "Blackcomb Glacier", False),
    ]
    assert raw[0].url == "https://www.whistlerblackcomb.com/webcams/roundhouse-lodge-cam.jpg"


def test_heuristic_webcam_adapter(fixture_text, page_fetcher_factory):
    fetcher = page_fetcher_factory(fixture_text("mountain_cams.html"))

    snapshot = HeuristicWebcamAdapter(fetcher, url=CAMS_URL).fetch()

    assert snapshot.source == "live-scrape-fallback"
    assert snapshot.to_dict()["webcamCount"] == 3
    assert snapshot.records[1].elevation == 2180


def test_heuristic_webcam_adapter_never_invents_cameras(page_fetcher_factory):
    fetcher = page_fetcher_factory('<html><body><img src="/logo.png" alt="Logo"></body></html>')

    with pytest.raises(NoRecordsError):
        HeuristicWebcamAdapter(fetcher, url=CAMS_URL).fetch()


def test_webcam_page_adapter_uses_extraction(fixture_text, page_fetcher_factory):
    prompts = []

    def handler(request: httpx.Request) -> httpx.Response:
        prompts.append(request.content.decode())
        content = (
            '```json\n[{"name": "Roundhouse Lodge", "imageUrl": "/webcams/roundhouse-lodge-cam.jpg", '
            '"isLive": false}, {"name": "Whistler Peak", "url": "https://player.example.com/stream/whistler-peak", '
            '"location": "Summit", "isLive": true, "elevation": 2182}]\n```'
        )
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    extractor = ExtractionClient("sk-test", client=httpx.Client(transport=httpx.MockTransport(handler)))
    fetcher = page_fetcher_factory(fixture_text("mountain_cams.html"))

    snapshot = WebcamPageAdapter(fetcher, extractor, url=CAMS_URL).fetch()

    assert snapshot.source == "live-scrape"
    roundhouse, peak = snapshot.records
    assert roundhouse.url == "https://www.whistlerblackcomb.com/webcams/roundhouse-lodge-cam.jpg"
    assert roundhouse.location == "Mid-Mountain"
    assert roundhouse.is_live is False
    assert peak.location == "Summit"
    assert peak.elevation == 2182
    assert "roundhouse-lodge-cam.jpg" in prompts[0]


def test_describe_media_lists_absolute_sources(fixture_text):
    summary = describe_media(fixture_text("mountain_cams.html"), base_url=CAMS_URL)

    assert [line.split(" | ")[1] for line in summary.splitlines()] == [
        "https://www.whistlerblackcomb.com/images/logo.png",
        "https://www.whistlerblackcomb.com/webcams/roundhouse-lodge-cam.jpg",
        "https://player.example.com/stream/whistler-peak",
        "https://cdn.example.com/cams/7thheaven.jpg",
        "https://cdn.example.com/cams/unnamed.jpg",
        "https://www.whistlerblackcomb.com/images/epic-pass.png",
    ]
    assert summary.splitlines()[2].startswith("iframe | ")
