from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Type

from .logging import get_logger
from .models import SNAPSHOT_TYPES, Snapshot, utcnow

logger = get_logger(__name__)


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write JSON next to ``path`` and rename it into place.

    Readers see either the previous file or the new one, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class SnapshotStore:
    """Persists the latest snapshot per data kind as one JSON document each.

    Writers serialize on a per-kind lock; readers never lock and always read
    from disk so that several processes sharing ``data_dir`` agree on age.
    """

    def __init__(
        self,
        data_dir: Path | str = Path("data"),
        snapshot_types: Optional[Mapping[str, Type[Snapshot]]] = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._types: Dict[str, Type[Snapshot]] = dict(snapshot_types or SNAPSHOT_TYPES)
        self._locks: Dict[str, threading.Lock] = {kind: threading.Lock() for kind in self._types}

    @property
    def kinds(self):
        return tuple(self._types)

    def path_for(self, kind: str) -> Path:
        self._type_for(kind)
        return self.data_dir / f"{kind}.json"

    def _type_for(self, kind: str) -> Type[Snapshot]:
        try:
            return self._types[kind]
        except KeyError:
            raise KeyError(f"Unknown data kind: {kind}") from None

    def write(self, kind: str, snapshot: Snapshot) -> None:
        expected = self._type_for(kind)
        if not isinstance(snapshot, expected):
            raise TypeError(f"{kind} expects {expected.__name__}, got {type(snapshot).__name__}")
        path = self.path_for(kind)
        with self._locks[kind]:
            write_json_atomic(path, snapshot.to_dict())
        logger.info("cache.write", kind=kind, source=snapshot.source, count=snapshot.count, path=str(path))

    def read(self, kind: str) -> Optional[Snapshot]:
        snapshot_cls = self._type_for(kind)
        path = self.path_for(kind)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("cache.read.unreadable", kind=kind, path=str(path), error=str(exc))
            return None

        try:
            return snapshot_cls.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("cache.read.corrupt", kind=kind, path=str(path), error=str(exc))
            return None

    def age_of(self, kind: str, *, now: Optional[datetime] = None) -> Optional[timedelta]:
        snapshot = self.read(kind)
        if snapshot is None:
            return None
        return snapshot.age(now or utcnow())
