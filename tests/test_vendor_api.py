from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from lift_feed.adapters.vendor_api import SUBSCRIPTION_HEADER, VendorApiAdapter, parse_vendor_payload
from lift_feed.errors import (
    MalformedPayloadError,
    NoRecordsError,
    UpstreamTimeoutError,
    UpstreamTransportError,
    VendorAuthError,
    VendorHTTPError,
)
from lift_feed.models import LiftStatus, LiftType, Mountain

VENDOR_URL = "https://vendor.example.com/resort/80/status"


def _adapter(handler: Callable[[httpx.Request], httpx.Response]) -> VendorApiAdapter:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return VendorApiAdapter("secret-key", url=VENDOR_URL, client=client)


def test_vendor_payload_is_normalized(fixture_text):
    payload = fixture_text("vendor_status.json")
    seen_headers = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen_headers["key"] = request.headers.get(SUBSCRIPTION_HEADER)
        return httpx.Response(200, text=payload, headers={"Content-Type": "application/json"})

    snapshot = _adapter(handler).fetch()

    assert seen_headers["key"] == "secret-key"
    assert snapshot.source == "live-vendor-api"
    assert snapshot.lift_count == 6
    by_name = {record.name: record for record in snapshot.records}

    peak = by_name["Peak Express"]
    assert peak.status is LiftStatus.OPEN
    assert peak.mountain is Mountain.WHISTLER
    assert peak.type is LiftType.EXPRESS_CHAIR
    assert peak.wait_time_minutes == 5
    assert peak.capacity == 2000

    harmony = by_name["Harmony 6 Express"]
    assert harmony.status is LiftStatus.ON_HOLD
    assert harmony.wait_time_minutes is None

    assert by_name["7th Heaven Express"].mountain is Mountain.BLACKCOMB
    assert by_name["7th Heaven Express"].capacity == 2400
    assert by_name["Showcase T-Bar"].status is LiftStatus.SCHEDULED
    assert by_name["Showcase T-Bar"].type is LiftType.T_BAR
    assert by_name["Peak 2 Peak Gondola"].mountain is Mountain.BOTH
    assert by_name["Peak 2 Peak Gondola"].wait_time_minutes == 3


def test_three_statuses_scenario():
    body = {"lifts": [
        {"name": "Peak Express", "status": "OPEN"},
        {"name": "Big Red Express", "status": "CLOSED"},
        {"name": "Franz Chair", "status": "bogus-status"},
    ]}

    snapshot = _adapter(lambda request: httpx.Response(200, json=body)).fetch()

    assert [record.status for record in snapshot.records] == [
        LiftStatus.OPEN,
        LiftStatus.CLOSED,
        LiftStatus.UNKNOWN,
    ]
    assert snapshot.to_dict()["liftCount"] == 3


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failures_are_distinguished(status_code):
    with pytest.raises(VendorAuthError) as excinfo:
        _adapter(lambda request: httpx.Response(status_code, text="denied")).fetch()

    assert excinfo.value.status_code == status_code
    assert isinstance(excinfo.value, VendorHTTPError)


def test_server_error_carries_status():
    with pytest.raises(VendorHTTPError) as excinfo:
        _adapter(lambda request: httpx.Response(503)).fetch()

    assert excinfo.value.status_code == 503
    assert not isinstance(excinfo.value, VendorAuthError)


def test_transport_failures():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamTimeoutError):
        _adapter(timeout).fetch()
    with pytest.raises(UpstreamTransportError):
        _adapter(refused).fetch()


def test_malformed_and_empty_payloads():
    with pytest.raises(MalformedPayloadError):
        _adapter(lambda request: httpx.Response(200, text="<html>maintenance</html>")).fetch()
    with pytest.raises(MalformedPayloadError):
        _adapter(lambda request: httpx.Response(200, json={"resortId": 80})).fetch()
    with pytest.raises(NoRecordsError):
        _adapter(lambda request: httpx.Response(200, json={"maps": []})).fetch()


def test_parse_accepts_bare_list_and_pascal_case_groups():
    bare = parse_vendor_payload([{"Name": "Olympic Chair", "Status": "Open"}, "junk"])
    assert [raw.name for raw in bare] == ["Olympic Chair"]

    grouped = parse_vendor_payload(
        json.loads('{"MapGroups": [{"MapName": "BC", "Lifts": [{"liftName": "Chair 9", "openingStatus": 1}]}]}')
    )
    assert grouped[0].grouping == "BC"
    assert grouped[0].status == 1
