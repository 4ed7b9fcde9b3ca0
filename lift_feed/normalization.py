from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar

from .classifier import classify, is_peak_to_peak
from .models import LiftRecord, LiftStatus, LiftType, WebcamRecord, utcnow

Converter = Callable[[Any], Any]
R = TypeVar("R")


@dataclass(frozen=True)
class FieldMapping:
    """Pulls a raw value out of an upstream payload.

    ``sources`` lists the keys an upstream has been seen to use for the field;
    the first key that is present (and not ``None``) wins.
    """

    sources: Tuple[str, ...]
    converter: Optional[Converter] = None

    def extract(self, payload: Mapping[str, Any]) -> Any:
        value = None
        for source in self.sources:
            if payload.get(source) is not None:
                value = payload[source]
                break
        if self.converter and value is not None:
            value = self.converter(value)
        return value


@dataclass(frozen=True)
class RawLift:
    """An upstream lift entry before normalization; every field may be junk."""

    name: Any
    status: Any = None
    lift_type: Any = None
    wait_time: Any = None
    capacity: Any = None
    sector: Any = None
    grouping: Any = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        mappings: Mapping[str, FieldMapping],
        *,
        grouping: Optional[str] = None,
    ) -> "RawLift":
        values = {name: mapping.extract(payload) for name, mapping in mappings.items()}
        if grouping is not None and values.get("grouping") is None:
            values["grouping"] = grouping
        return cls(**values)


@dataclass(frozen=True)
class RawWebcam:
    name: Any
    url: Any = None
    location: Any = None
    is_live: Any = None
    elevation: Any = None


@dataclass
class NormalizationResult(Generic[R]):
    records: List[R] = field(default_factory=list)
    duplicates_dropped: int = 0
    invalid_dropped: int = 0

    def __iter__(self):
        # Allows ``records, dropped = normalize_lifts(...)`` unpacking.
        yield self.records
        yield self.duplicates_dropped


STATUS_LOOKUP: Dict[str, LiftStatus] = {
    "open": LiftStatus.OPEN,
    "opened": LiftStatus.OPEN,
    "operating": LiftStatus.OPEN,
    "running": LiftStatus.OPEN,
    "in service": LiftStatus.OPEN,
    "1": LiftStatus.OPEN,
    "closed": LiftStatus.CLOSED,
    "close": LiftStatus.CLOSED,
    "not operating": LiftStatus.CLOSED,
    "out of service": LiftStatus.CLOSED,
    "closed for season": LiftStatus.CLOSED,
    "0": LiftStatus.CLOSED,
    "scheduled": LiftStatus.SCHEDULED,
    "expected": LiftStatus.SCHEDULED,
    "opening soon": LiftStatus.SCHEDULED,
    "3": LiftStatus.SCHEDULED,
    "on hold": LiftStatus.ON_HOLD,
    "onhold": LiftStatus.ON_HOLD,
    "hold": LiftStatus.ON_HOLD,
    "wind hold": LiftStatus.ON_HOLD,
    "weather hold": LiftStatus.ON_HOLD,
    "delayed": LiftStatus.ON_HOLD,
    "2": LiftStatus.ON_HOLD,
    "maintenance": LiftStatus.MAINTENANCE,
    "under maintenance": LiftStatus.MAINTENANCE,
    "mechanical": LiftStatus.MAINTENANCE,
}

TYPE_LOOKUP: Dict[str, LiftType] = {
    "gondola": LiftType.GONDOLA,
    "cabin": LiftType.GONDOLA,
    "tram": LiftType.GONDOLA,
    "express chair": LiftType.EXPRESS_CHAIR,
    "express": LiftType.EXPRESS_CHAIR,
    "high speed quad": LiftType.EXPRESS_CHAIR,
    "detachable chair": LiftType.EXPRESS_CHAIR,
    "chair": LiftType.FIXED_CHAIR,
    "chairlift": LiftType.FIXED_CHAIR,
    "fixed chair": LiftType.FIXED_CHAIR,
    "fixed grip chair": LiftType.FIXED_CHAIR,
    "magic chair": LiftType.FIXED_CHAIR,
    "surface lift": LiftType.SURFACE_LIFT,
    "surface": LiftType.SURFACE_LIFT,
    "magic carpet": LiftType.SURFACE_LIFT,
    "carpet": LiftType.SURFACE_LIFT,
    "rope tow": LiftType.SURFACE_LIFT,
    "platter": LiftType.SURFACE_LIFT,
    "t-bar": LiftType.T_BAR,
    "tbar": LiftType.T_BAR,
    "t bar": LiftType.T_BAR,
    "funicular": LiftType.FUNICULAR,
}

# Keyword inference from the lift name, checked in order.
_NAME_TYPE_HINTS: Tuple[Tuple[str, LiftType], ...] = (
    ("t-bar", LiftType.T_BAR),
    ("t bar", LiftType.T_BAR),
    ("gondola", LiftType.GONDOLA),
    ("funicular", LiftType.FUNICULAR),
    ("carpet", LiftType.SURFACE_LIFT),
    ("rope tow", LiftType.SURFACE_LIFT),
    ("platter", LiftType.SURFACE_LIFT),
    ("express", LiftType.EXPRESS_CHAIR),
    ("chair", LiftType.FIXED_CHAIR),
)


def _fold(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return " ".join(str(value).replace("_", " ").lower().split())


def dedup_key(name: Any) -> str:
    return str(name).strip().lower() if name is not None else ""


def map_status(value: Any) -> LiftStatus:
    if isinstance(value, bool):
        return LiftStatus.OPEN if value else LiftStatus.CLOSED
    return STATUS_LOOKUP.get(_fold(value), LiftStatus.UNKNOWN)


def map_lift_type(value: Any, name: Any = None) -> LiftType:
    mapped = TYPE_LOOKUP.get(_fold(value))
    if mapped is not None:
        return mapped
    folded_name = _fold(name)
    if is_peak_to_peak(folded_name):
        return LiftType.GONDOLA
    for hint, lift_type in _NAME_TYPE_HINTS:
        if hint in folded_name:
            return lift_type
    return LiftType.UNKNOWN


def to_non_negative_int(value: Any) -> Optional[int]:
    """Coerce ``5``, ``"5"``, ``"5 min"`` or ``5.0`` to an int; junk becomes ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = int(value)
        except (OverflowError, ValueError):
            return None
    else:
        match = re.search(r"-?\d+", str(value).replace(",", ""))
        if not match:
            return None
        number = int(match.group(0))
    return number if number >= 0 else None


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def normalize_lifts(
    raw_lifts: Iterable[RawLift],
    *,
    timestamp: Optional[datetime] = None,
) -> NormalizationResult[LiftRecord]:
    """Turn raw upstream entries into canonical :class:`LiftRecord` objects.

    Never raises on bad input: unknown statuses and types degrade to
    ``Unknown``, nameless entries are skipped, and later duplicates of a name
    (case-insensitive, trimmed) are dropped.
    """
    timestamp = timestamp or utcnow()
    result: NormalizationResult[LiftRecord] = NormalizationResult()
    seen = set()

    for raw in raw_lifts:
        name = _clean_text(raw.name)
        key = dedup_key(name)
        if not key:
            result.invalid_dropped += 1
            continue
        if key in seen:
            result.duplicates_dropped += 1
            continue
        seen.add(key)

        status = map_status(raw.status)
        wait_time = to_non_negative_int(raw.wait_time) if status is LiftStatus.OPEN else None
        sector = _clean_text(raw.sector) or None
        grouping = _clean_text(raw.grouping) or None

        result.records.append(
            LiftRecord(
                name=name,
                status=status,
                mountain=classify(name, sector, grouping),
                type=map_lift_type(raw.lift_type, name),
                last_updated=timestamp,
                wait_time_minutes=wait_time,
                capacity=to_non_negative_int(raw.capacity) or 0,
            )
        )

    return result


def _to_bool(value: Any, default: bool = True) -> bool:
    if isinstance(value, bool):
        return value
    folded = _fold(value)
    if folded in {"true", "yes", "1", "live"}:
        return True
    if folded in {"false", "no", "0", "static"}:
        return False
    return default


def normalize_webcams(
    raw_webcams: Iterable[RawWebcam],
    *,
    timestamp: Optional[datetime] = None,
) -> NormalizationResult[WebcamRecord]:
    timestamp = timestamp or utcnow()
    result: NormalizationResult[WebcamRecord] = NormalizationResult()
    seen = set()

    for raw in raw_webcams:
        name = _clean_text(raw.name)
        url = _clean_text(raw.url)
        key = dedup_key(name)
        if not key or not url.lower().startswith(("http://", "https://")):
            result.invalid_dropped += 1
            continue
        if key in seen:
            result.duplicates_dropped += 1
            continue
        seen.add(key)

        result.records.append(
            WebcamRecord(
                name=name,
                location=_clean_text(raw.location) or "Unknown",
                url=url,
                is_live=_to_bool(raw.is_live),
                elevation=to_non_negative_int(raw.elevation),
                last_updated=timestamp,
            )
        )

    return result


__all__ = [
    "FieldMapping",
    "NormalizationResult",
    "RawLift",
    "RawWebcam",
    "STATUS_LOOKUP",
    "TYPE_LOOKUP",
    "dedup_key",
    "map_lift_type",
    "map_status",
    "normalize_lifts",
    "normalize_webcams",
    "to_non_negative_int",
]
