from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, Mapping, Optional, Tuple, Type, TypeVar

NO_DATA_SOURCE = "no-data"


class LiftStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    SCHEDULED = "Scheduled"
    ON_HOLD = "On Hold"
    MAINTENANCE = "Maintenance"
    UNKNOWN = "Unknown"


class Mountain(str, Enum):
    WHISTLER = "Whistler"
    BLACKCOMB = "Blackcomb"
    BOTH = "Both"
    UNKNOWN = "Unknown"


class LiftType(str, Enum):
    GONDOLA = "Gondola"
    EXPRESS_CHAIR = "Express Chair"
    FIXED_CHAIR = "Fixed Chair"
    SURFACE_LIFT = "Surface Lift"
    T_BAR = "T-Bar"
    FUNICULAR = "Funicular"
    UNKNOWN = "Unknown"


class Source(str, Enum):
    """Provenance tags written into every snapshot."""

    VENDOR_API = "live-vendor-api"
    SCRAPE = "live-scrape"
    SCRAPE_FALLBACK = "live-scrape-fallback"
    NO_DATA = NO_DATA_SOURCE


E = TypeVar("E", bound=Enum)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise TypeError("timestamp must be a datetime or ISO-8601 string")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _enum_or_unknown(enum_type: Type[E], value: Any, unknown: E) -> E:
    try:
        return enum_type(value)
    except ValueError:
        return unknown


def _count_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


@dataclass(frozen=True)
class LiftRecord:
    """Current state of one lift, as produced by a single fetch."""

    name: str
    status: LiftStatus
    mountain: Mountain
    type: LiftType
    last_updated: datetime
    wait_time_minutes: Optional[int] = None
    capacity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "liftName": self.name,
            "status": self.status.value,
            "mountain": self.mountain.value,
            "type": self.type.value,
            "waitTimeMinutes": self.wait_time_minutes,
            "capacity": self.capacity,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LiftRecord":
        return cls(
            name=data["liftName"],
            status=_enum_or_unknown(LiftStatus, data.get("status"), LiftStatus.UNKNOWN),
            mountain=_enum_or_unknown(Mountain, data.get("mountain"), Mountain.UNKNOWN),
            type=_enum_or_unknown(LiftType, data.get("type"), LiftType.UNKNOWN),
            last_updated=parse_timestamp(data["lastUpdated"]),
            wait_time_minutes=_count_or_none(data.get("waitTimeMinutes")),
            capacity=_count_or_none(data.get("capacity")) or 0,
        )


@dataclass(frozen=True)
class WebcamRecord:
    name: str
    location: str
    url: str
    is_live: bool
    last_updated: datetime
    elevation: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "location": self.location,
            "url": self.url,
            "isLive": self.is_live,
            "elevation": self.elevation,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WebcamRecord":
        return cls(
            name=data["name"],
            location=data.get("location") or "Unknown",
            url=data["url"],
            is_live=bool(data.get("isLive", True)),
            elevation=_count_or_none(data.get("elevation")),
            last_updated=parse_timestamp(data["lastUpdated"]),
        )


S = TypeVar("S", bound="Snapshot")


@dataclass(frozen=True)
class Snapshot:
    """An immutable, fully formed result set for one data kind.

    Subclasses name the wire keys for their records and record count; the
    on-disk cache format and the HTTP payload are the same document.
    """

    ITEMS_KEY: ClassVar[str] = "records"
    COUNT_KEY: ClassVar[str] = "count"
    RECORD_TYPE: ClassVar[Any] = None

    last_updated: datetime
    source: str
    records: Tuple[Any, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.records, tuple):
            object.__setattr__(self, "records", tuple(self.records))
        if self.source == NO_DATA_SOURCE and self.records:
            raise ValueError("a no-data snapshot cannot carry records")

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return self.source == NO_DATA_SOURCE

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utcnow()) - self.last_updated

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "lastUpdated": self.last_updated.isoformat(),
            "source": self.source,
            self.COUNT_KEY: self.count,
            self.ITEMS_KEY: [record.to_dict() for record in self.records],
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_dict(cls: Type[S], data: Mapping[str, Any]) -> S:
        items = data.get(cls.ITEMS_KEY) or []
        return cls(
            last_updated=parse_timestamp(data["lastUpdated"]),
            source=str(data.get("source") or NO_DATA_SOURCE),
            records=tuple(cls.RECORD_TYPE.from_dict(item) for item in items),
            error=data.get("error"),
        )

    @classmethod
    def no_data(cls: Type[S], error: str, *, timestamp: Optional[datetime] = None) -> S:
        return cls(last_updated=timestamp or utcnow(), source=NO_DATA_SOURCE, records=(), error=error)


@dataclass(frozen=True)
class LiftSnapshot(Snapshot):
    ITEMS_KEY: ClassVar[str] = "lifts"
    COUNT_KEY: ClassVar[str] = "liftCount"
    RECORD_TYPE: ClassVar[Any] = LiftRecord

    @property
    def lift_count(self) -> int:
        return self.count


@dataclass(frozen=True)
class WebcamSnapshot(Snapshot):
    ITEMS_KEY: ClassVar[str] = "webcams"
    COUNT_KEY: ClassVar[str] = "webcamCount"
    RECORD_TYPE: ClassVar[Any] = WebcamRecord

    @property
    def webcam_count(self) -> int:
        return self.count


LIFTS = "lifts"
WEBCAMS = "webcams"

SNAPSHOT_TYPES: Dict[str, Type[Snapshot]] = {
    LIFTS: LiftSnapshot,
    WEBCAMS: WebcamSnapshot,
}


def snapshot_type(kind: str) -> Type[Snapshot]:
    try:
        return SNAPSHOT_TYPES[kind]
    except KeyError:
        raise KeyError(f"Unknown data kind: {kind}") from None


def known_kinds() -> Iterable[str]:
    return tuple(SNAPSHOT_TYPES)
