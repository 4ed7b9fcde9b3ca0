from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

import httpx

from ..errors import MalformedPayloadError, NoRecordsError, VendorAuthError, VendorHTTPError
from ..http_client import HttpFetcher
from ..logging import get_logger
from ..models import LIFTS, LiftSnapshot, Source, utcnow
from ..normalization import FieldMapping, RawLift, normalize_lifts
from .base import Adapter, FetchContext

logger = get_logger(__name__)

DEFAULT_VENDOR_URL = "https://mtnapi-prod.azure-api.net/resortstatus/api/v1/resort/rpos/80/status"
SUBSCRIPTION_HEADER = "Ocp-Apim-Subscription-Key"

GROUP_KEYS = ("maps", "Maps", "mapGroups", "MapGroups")
GROUP_NAME_KEYS = ("name", "Name", "mapName", "MapName")
LIFT_LIST_KEYS = ("lifts", "Lifts")

VENDOR_FIELD_MAPPINGS = {
    "name": FieldMapping(("name", "Name", "liftName", "LiftName")),
    "status": FieldMapping(("status", "Status", "openingStatus", "OpeningStatus")),
    "lift_type": FieldMapping(("type", "Type", "liftType", "LiftType")),
    "wait_time": FieldMapping(("waitTimeInMinutes", "WaitTimeInMinutes", "waitTime", "WaitTime")),
    "capacity": FieldMapping(("capacity", "Capacity")),
    "sector": FieldMapping(("sector", "Sector", "mountain", "Mountain")),
}


def _first_present(payload: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _raw_lifts(entries: Iterable[Any], grouping: Any = None) -> List[RawLift]:
    grouping_name = str(grouping) if grouping else None
    return [
        RawLift.from_payload(entry, VENDOR_FIELD_MAPPINGS, grouping=grouping_name)
        for entry in entries
        if isinstance(entry, Mapping)
    ]


def parse_vendor_payload(payload: Any, *, adapter: str = "vendor-api") -> List[RawLift]:
    """Flatten the vendor's map groupings into raw lift entries.

    Accepts ``{"maps": [{"name": ..., "lifts": [...]}, ...]}``, a top-level
    ``{"lifts": [...]}`` or a bare list of lift objects.
    """
    if isinstance(payload, list):
        return _raw_lifts(payload)
    if not isinstance(payload, Mapping):
        raise MalformedPayloadError("vendor payload is not a JSON object", adapter=adapter)

    groups = _first_present(payload, GROUP_KEYS)
    if groups is not None:
        if not isinstance(groups, list):
            raise MalformedPayloadError("vendor map groupings are not a list", adapter=adapter)
        raw: List[RawLift] = []
        for group in groups:
            if not isinstance(group, Mapping):
                continue
            lifts = _first_present(group, LIFT_LIST_KEYS)
            if isinstance(lifts, list):
                raw.extend(_raw_lifts(lifts, _first_present(group, GROUP_NAME_KEYS)))
        return raw

    lifts = _first_present(payload, LIFT_LIST_KEYS)
    if isinstance(lifts, list):
        return _raw_lifts(lifts)
    raise MalformedPayloadError("vendor payload has no map groupings or lift list", adapter=adapter)


class VendorApiAdapter(Adapter):
    """Reads lift status from the resort operator's status API."""

    name = "vendor-api"
    kind = LIFTS
    source = Source.VENDOR_API

    def __init__(
        self,
        subscription_key: str,
        *,
        url: str = DEFAULT_VENDOR_URL,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
        fetcher: Optional[HttpFetcher] = None,
    ) -> None:
        self.url = url
        self.subscription_key = subscription_key
        self.fetcher = fetcher or HttpFetcher(client, timeout=timeout, adapter=self.name)

    def fetch(self, context: Optional[FetchContext] = None) -> LiftSnapshot:
        context = context or FetchContext()
        response = self.fetcher.get(
            self.url,
            extra_headers={SUBSCRIPTION_HEADER: self.subscription_key},
            trace_id=context.trace_id,
        )

        status = response.status_code
        if status in (401, 403):
            raise VendorAuthError("vendor API rejected the subscription key", adapter=self.name, status_code=status)
        if status != 200:
            raise VendorHTTPError(
                f"vendor API answered {response.reason_phrase or 'error'}", adapter=self.name, status_code=status
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedPayloadError("vendor API response is not JSON", adapter=self.name) from exc

        fetched_at = utcnow()
        result = normalize_lifts(parse_vendor_payload(payload, adapter=self.name), timestamp=fetched_at)
        logger.info(
            "vendor.normalized",
            trace_id=context.trace_id,
            lifts=len(result.records),
            duplicates_dropped=result.duplicates_dropped,
            invalid_dropped=result.invalid_dropped,
        )
        if not result.records:
            raise NoRecordsError("vendor API returned no usable lifts", adapter=self.name)

        return LiftSnapshot(last_updated=fetched_at, source=self.source.value, records=result.records)
