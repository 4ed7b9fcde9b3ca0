"""Refresh orchestration: when to hit upstream, when to serve the cache.

One :class:`RefreshOrchestrator` owns the store, the adapter chain and the
fetch log for every data kind. Per kind it guarantees at most one refresh in
flight; concurrent callers of :meth:`RefreshOrchestrator.force_refresh` join
the running attempt and receive the same snapshot.
"""
from __future__ import annotations

import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .adapters.base import Adapter, FetchContext
from .config import AppConfig
from .errors import FetchError
from .fetch_log import FetchLog
from .logging import get_logger
from .models import Snapshot, snapshot_type, utcnow
from .storage import SnapshotStore

logger = get_logger(__name__)


class OrchestrationError(RuntimeError):
    """An internal fault while refreshing, as opposed to an upstream failure."""


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class KindState:
    state: RefreshState = RefreshState.IDLE
    last_outcome: Optional[RefreshState] = None
    last_error: Optional[str] = None
    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    consecutive_failures: int = 0
    retry_after: Optional[datetime] = None


@dataclass
class Backoff:
    """Capped exponential delay with multiplicative jitter."""

    base_seconds: float = 60.0
    max_seconds: float = 1800.0
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random)

    def delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        exponent = min(failures - 1, 32)
        capped = min(self.max_seconds, self.base_seconds * (2 ** exponent))
        return capped * self.rng.uniform(1 - self.jitter, 1 + self.jitter)


class RefreshOrchestrator:
    def __init__(
        self,
        store: SnapshotStore,
        pipelines: Mapping[str, Sequence[Adapter]],
        *,
        max_age: timedelta = timedelta(minutes=10),
        logs: Optional[Mapping[str, FetchLog]] = None,
        backoff: Optional[Backoff] = None,
        refresh_wait_seconds: float = 180.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.pipelines: Dict[str, Tuple[Adapter, ...]] = {kind: tuple(chain) for kind, chain in pipelines.items()}
        self.max_age = max_age
        self.backoff = backoff or Backoff()
        self.refresh_wait_seconds = refresh_wait_seconds
        self._clock = clock
        self._logs: Dict[str, FetchLog] = dict(logs or {})
        for kind in self.pipelines:
            self._logs.setdefault(kind, FetchLog(store.data_dir / f"{kind}-log.json", kind=kind))

        self._guard = threading.Lock()
        self._inflight: Dict[str, Future] = {}
        self._states: Dict[str, KindState] = {kind: KindState() for kind in self.pipelines}
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, len(self.pipelines)), thread_name_prefix="lift-feed-refresh"
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        pipelines: Optional[Mapping[str, Sequence[Adapter]]] = None,
    ) -> "RefreshOrchestrator":
        if pipelines is None:
            from .adapters import build_pipelines

            pipelines = build_pipelines(config)
        store = SnapshotStore(config.data_dir)
        logs = {
            kind: FetchLog(
                store.data_dir / f"{kind}-log.json",
                max_entries=config.cache.log_max_entries,
                kind=kind,
            )
            for kind in pipelines
        }
        backoff = Backoff(
            base_seconds=config.scheduler.backoff_base_seconds,
            max_seconds=config.scheduler.backoff_max_seconds,
            jitter=config.scheduler.backoff_jitter,
        )
        return cls(
            store,
            pipelines,
            max_age=timedelta(minutes=config.cache.max_age_minutes),
            logs=logs,
            backoff=backoff,
            refresh_wait_seconds=config.cache.refresh_wait_seconds,
        )

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self.pipelines)

    def _check_kind(self, kind: str) -> None:
        if kind not in self.pipelines:
            raise KeyError(f"Unknown data kind: {kind}")

    # Read path

    def serve(self, kind: str) -> Snapshot:
        """Return the best snapshot available without failing.

        Blocks only when nothing has ever been cached. A stale (or cached
        no-data) snapshot is returned unchanged while a background refresh
        is started.
        """
        self._check_kind(kind)
        snapshot = self.store.read(kind)
        if snapshot is None:
            logger.info("serve.cache_absent", kind=kind)
            try:
                return self.force_refresh(kind)
            except Exception as exc:
                logger.error("serve.refresh_failed", kind=kind, error=str(exc))
                return snapshot_type(kind).no_data(f"Refresh failed: {exc}")

        age = snapshot.age(self._clock())
        if age <= self.max_age and not snapshot.is_empty:
            return snapshot

        logger.info("serve.stale", kind=kind, age_seconds=round(age.total_seconds()), source=snapshot.source)
        if self.in_backoff(kind):
            logger.info("serve.refresh_deferred", kind=kind, retry_after=self._retry_after_iso(kind))
        else:
            self.refresh_in_background(kind)
        return snapshot

    def latest(self, kind: str) -> Snapshot:
        """Cached snapshot or an empty placeholder; never touches upstream."""
        self._check_kind(kind)
        snapshot = self.store.read(kind)
        if snapshot is None:
            return snapshot_type(kind).no_data(f"No {kind} data has been fetched yet")
        return snapshot

    # Write path

    def force_refresh(self, kind: str) -> Snapshot:
        """Run the adapter chain now, or join the refresh already running."""
        self._check_kind(kind)
        flight, leader = self._start_or_join(kind)
        if leader:
            self._run(kind, flight)
        else:
            logger.info("refresh.joined", kind=kind)
        try:
            return flight.result(timeout=self.refresh_wait_seconds)
        except FutureTimeoutError as exc:
            raise OrchestrationError(
                f"{kind} refresh did not finish within {self.refresh_wait_seconds:.0f}s"
            ) from exc

    def refresh_in_background(self, kind: str) -> bool:
        """Start a refresh without waiting. Returns ``False`` if one is already running."""
        self._check_kind(kind)
        flight, leader = self._start_or_join(kind)
        if not leader:
            logger.info("refresh.already_running", kind=kind)
            return False
        try:
            self._executor.submit(self._run, kind, flight)
        except RuntimeError as exc:
            # Executor already shut down.
            self._finish(kind, flight, error=exc)
            return False
        logger.info("refresh.background_started", kind=kind)
        return True

    def scheduled_refresh(self) -> None:
        for kind in self.kinds:
            if self.in_backoff(kind):
                logger.info("scheduler.skip_backoff", kind=kind, retry_after=self._retry_after_iso(kind))
                continue
            try:
                snapshot = self.force_refresh(kind)
            except Exception:
                logger.exception("scheduler.refresh_failed", kind=kind)
                continue
            logger.info("scheduler.refreshed", kind=kind, source=snapshot.source, count=snapshot.count)

    # Single-flight bookkeeping

    def _start_or_join(self, kind: str) -> Tuple[Future, bool]:
        with self._guard:
            flight = self._inflight.get(kind)
            if flight is not None:
                return flight, False
            flight = Future()
            flight.set_running_or_notify_cancel()
            self._inflight[kind] = flight
            state = self._states[kind]
            state.state = RefreshState.FETCHING
            state.last_attempt = self._clock()
            return flight, True

    def _run(self, kind: str, flight: Future) -> None:
        snapshot: Optional[Snapshot] = None
        error: Optional[BaseException] = None
        try:
            snapshot = self._refresh(kind)
        except Exception as exc:
            logger.exception("refresh.internal_fault", kind=kind)
            error = exc
        finally:
            if snapshot is None and error is None:
                error = OrchestrationError(f"{kind} refresh was interrupted")
            self._finish(kind, flight, snapshot=snapshot, error=error)

    def _finish(
        self,
        kind: str,
        flight: Future,
        *,
        snapshot: Optional[Snapshot] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        now = self._clock()
        with self._guard:
            state = self._states[kind]
            if snapshot is not None and not snapshot.is_empty:
                state.last_outcome = RefreshState.SUCCEEDED
                state.last_success = now
                state.last_error = None
                state.consecutive_failures = 0
                state.retry_after = None
            else:
                state.last_outcome = RefreshState.FAILED
                state.last_error = str(error) if error is not None else (snapshot.error if snapshot else None)
                state.consecutive_failures += 1
                delay = self.backoff.delay(state.consecutive_failures)
                state.retry_after = now + timedelta(seconds=delay)
                logger.warning(
                    "refresh.backoff",
                    kind=kind,
                    consecutive_failures=state.consecutive_failures,
                    delay_seconds=round(delay, 1),
                )
            state.state = RefreshState.IDLE
            self._inflight.pop(kind, None)

        if error is not None:
            flight.set_exception(error)
        else:
            flight.set_result(snapshot)

    # Adapter chain

    def _refresh(self, kind: str) -> Snapshot:
        chain = self.pipelines[kind]
        fetch_log = self._logs[kind]
        context = FetchContext()
        fetch_log.info(f"Starting {kind} refresh", trace_id=context.trace_id, adapters=len(chain))

        failures: List[str] = []
        snapshot: Optional[Snapshot] = None
        for adapter in chain:
            started = time.monotonic()
            try:
                snapshot = adapter.fetch(context)
            except FetchError as exc:
                failures.append(f"{adapter.name}: {exc.message}")
                fetch_log.warn(
                    f"{adapter.name} failed ({exc.kind}): {exc.message}",
                    trace_id=context.trace_id,
                    status_code=exc.status_code,
                    elapsed=round(time.monotonic() - started, 2),
                )
                continue
            except Exception as exc:
                logger.exception("adapter.unexpected_error", kind=kind, adapter=adapter.name)
                failures.append(f"{adapter.name}: {type(exc).__name__}: {exc}")
                fetch_log.error(
                    f"{adapter.name} crashed ({type(exc).__name__}): {exc}",
                    trace_id=context.trace_id,
                )
                continue

            fetch_log.info(
                f"{adapter.name} returned {snapshot.count} {kind}",
                trace_id=context.trace_id,
                source=snapshot.source,
                elapsed=round(time.monotonic() - started, 2),
            )
            break

        if snapshot is None:
            if failures:
                message = "All upstream sources failed: " + "; ".join(failures)
            else:
                message = f"No upstream sources are configured for {kind}"
            snapshot = snapshot_type(kind).no_data(message)
            fetch_log.error(message, trace_id=context.trace_id)

        self.store.write(kind, snapshot)
        return snapshot

    # Introspection

    def state(self, kind: str) -> KindState:
        self._check_kind(kind)
        with self._guard:
            return replace(self._states[kind])

    def refreshing(self, kind: str) -> bool:
        with self._guard:
            return kind in self._inflight

    def pending(self, kind: str) -> Optional[Future]:
        with self._guard:
            return self._inflight.get(kind)

    def in_backoff(self, kind: str) -> bool:
        with self._guard:
            retry_after = self._states[kind].retry_after
        return retry_after is not None and self._clock() < retry_after

    def _retry_after_iso(self, kind: str) -> Optional[str]:
        retry_after = self._states[kind].retry_after
        return retry_after.isoformat() if retry_after else None

    def fetch_log(self, kind: str) -> FetchLog:
        self._check_kind(kind)
        return self._logs[kind]

    def status(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        report: Dict[str, Dict[str, Any]] = {}
        for kind in self.kinds:
            snapshot = self.store.read(kind)
            state = self.state(kind)
            age = snapshot.age(now) if snapshot is not None else None
            report[kind] = {
                "available": snapshot is not None and not snapshot.is_empty,
                "lastUpdated": snapshot.last_updated.isoformat() if snapshot else None,
                "source": snapshot.source if snapshot else None,
                "count": snapshot.count if snapshot else 0,
                "ageSeconds": round(age.total_seconds()) if age is not None else None,
                "stale": age is None or age > self.max_age,
                "state": state.state.value,
                "lastOutcome": state.last_outcome.value if state.last_outcome else None,
                "refreshing": self.refreshing(kind),
                "consecutiveFailures": state.consecutive_failures,
                "lastError": state.last_error or (snapshot.error if snapshot else None),
                "retryAfter": state.retry_after.isoformat() if state.retry_after else None,
                "recentLog": [entry.to_dict() for entry in self._logs[kind].tail(5)],
            }
        return report

    def shutdown(self, *, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
