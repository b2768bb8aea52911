from __future__ import annotations

import threading
import time
from typing import Any, Dict

from quotefeed.schemas.session import SessionPhase, SessionResult, SessionStatus
from quotefeed.schemas.snapshot import Snapshot


class QuoteCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: dict[str, Snapshot] = {}

    def upsert(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._rows[snapshot.instrument_id] = snapshot

    def get(self, instrument_id: str) -> Snapshot | None:
        with self._lock:
            return self._rows.get(instrument_id)

    def list_many(self, instrument_ids: list[str]) -> list[Snapshot]:
        out: list[Snapshot] = []
        for instrument_id in instrument_ids:
            row = self.get(instrument_id)
            if row:
                out.append(row)
        return out

    def list_all(self) -> list[Snapshot]:
        with self._lock:
            return list(self._rows.values())

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()


class QuoteIngestWorker:
    """Session callbacks -> cache update, per-instrument status and counters."""

    def __init__(self, cache: QuoteCache, stale_after_sec: int = 10) -> None:
        self.cache = cache
        self.stale_after_sec = stale_after_sec
        self._lock = threading.Lock()
        self._statuses: dict[str, SessionStatus] = {}
        self.snapshots_received = 0
        self.sessions_closed = 0
        self.last_snapshot_ts: int | None = None

    def _status(self, instrument_id: str) -> SessionStatus:
        status = self._statuses.get(instrument_id)
        if status is None:
            status = SessionStatus(instrument_id=instrument_id)
            self._statuses[instrument_id] = status
        return status

    def on_snapshot(self, snapshot: Snapshot) -> Snapshot:
        self.cache.upsert(snapshot)
        with self._lock:
            self.snapshots_received += 1
            self.last_snapshot_ts = snapshot.timestamp
            status = self._status(snapshot.instrument_id)
            status.snapshots += 1
            status.last_snapshot_ts = snapshot.timestamp
        return snapshot

    def sync_session_state(
        self,
        *,
        instrument_id: str,
        phase: SessionPhase,
        result: SessionResult | None = None,
    ) -> None:
        with self._lock:
            status = self._status(instrument_id)
            status.phase = phase
            if result is not None:
                status.last_reason = result.reason
                status.last_detail = result.detail
                self.sessions_closed += 1

    def sync_reconnect(self, *, instrument_id: str, reconnect_count: int, last_error: str | None) -> None:
        with self._lock:
            status = self._status(instrument_id)
            status.reconnect_count = int(reconnect_count)
            status.last_detail = last_error

    def session_statuses(self) -> list[SessionStatus]:
        with self._lock:
            return [status.model_copy(deep=True) for status in self._statuses.values()]

    def quote_view(self, snapshot: Snapshot, now: int | None = None) -> Dict[str, Any]:
        ref = int(time.time()) if now is None else now
        age = float(max(ref - snapshot.timestamp, 0))
        row = snapshot.model_dump()
        row["freshness_sec"] = age
        row["state"] = "HEALTHY" if age <= self.stale_after_sec else "STALE"
        return row

    def metrics(self, now: int | None = None) -> dict:
        ref = int(time.time()) if now is None else now
        rows = self.cache.list_all()
        stale = sum(1 for r in rows if (ref - r.timestamp) > self.stale_after_sec)
        with self._lock:
            streaming = sum(1 for s in self._statuses.values() if s.phase is SessionPhase.STREAMING)
            reconnects = sum(s.reconnect_count for s in self._statuses.values())
            return {
                "cached_instruments": len(rows),
                "stale_instruments": stale,
                "snapshots_received": self.snapshots_received,
                "last_snapshot_ts": self.last_snapshot_ts,
                "sessions_streaming": streaming,
                "sessions_closed": self.sessions_closed,
                "reconnect_count": reconnects,
            }

    def reset(self) -> None:
        self.cache.clear()
        with self._lock:
            self._statuses.clear()
            self.snapshots_received = 0
            self.sessions_closed = 0
            self.last_snapshot_ts = None


quote_cache = QuoteCache()
quote_ingest_worker = QuoteIngestWorker(quote_cache)
