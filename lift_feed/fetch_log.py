from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .logging import get_logger
from .models import parse_timestamp, utcnow
from .storage import write_json_atomic

logger = get_logger(__name__)

LEVELS = ("info", "warn", "error")


@dataclass(frozen=True)
class FetchLogEntry:
    timestamp: datetime
    level: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "level": self.level, "message": self.message}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FetchLogEntry":
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            level=str(data.get("level", "info")),
            message=str(data.get("message", "")),
        )


class FetchLog:
    """Bounded, persisted diagnostic trail of fetch attempts for one data kind.

    Behaves like a ring buffer: once ``max_entries`` is reached the oldest
    entries are dropped on every append. Each entry is also emitted through
    structlog so process logs and the persisted trail agree.
    """

    def __init__(self, path: Path | str, *, max_entries: int = 100, kind: Optional[str] = None) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.path = Path(path)
        self.max_entries = max_entries
        self.kind = kind or self.path.stem.replace("-log", "")
        self._lock = threading.Lock()

    def entries(self) -> List[FetchLogEntry]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.warning("fetch_log.unreadable", path=str(self.path), error=str(exc))
            return []
        if not isinstance(data, list):
            return []

        entries: List[FetchLogEntry] = []
        for item in data:
            try:
                entries.append(FetchLogEntry.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                continue
        return entries

    def tail(self, limit: int = 10) -> List[FetchLogEntry]:
        entries = self.entries()
        return entries[-limit:] if limit > 0 else []

    def append(self, message: str, level: str = "info", **fields: Any) -> FetchLogEntry:
        if level not in LEVELS:
            raise ValueError(f"level must be one of {LEVELS}")
        entry = FetchLogEntry(timestamp=utcnow(), level=level, message=message)

        log_method = {"info": logger.info, "warn": logger.warning, "error": logger.error}[level]
        log_method("fetch_log.entry", kind=self.kind, message=message, **fields)

        with self._lock:
            entries = self.entries()
            entries.append(entry)
            entries = entries[-self.max_entries:]
            try:
                write_json_atomic(self.path, [item.to_dict() for item in entries])
            except OSError as exc:
                # The diagnostic trail must never take down a refresh.
                logger.error("fetch_log.write_failed", path=str(self.path), error=str(exc))
        return entry

    def info(self, message: str, **fields: Any) -> FetchLogEntry:
        return self.append(message, "info", **fields)

    def warn(self, message: str, **fields: Any) -> FetchLogEntry:
        return self.append(message, "warn", **fields)

    def error(self, message: str, **fields: Any) -> FetchLogEntry:
        return self.append(message, "error", **fields)
