from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from quotefeed.schemas.session import CloseReason, SessionResult
from quotefeed.schemas.snapshot import Snapshot
from quotefeed.services.session import SessionHandle, SessionOrchestrator


class SessionSupervisor:
    """Restart one instrument's session after it closes, with exponential backoff.

    Sessions never retry on their own; this loop sits above SessionHandle and
    starts a fresh session (new endpoint, new connection) each time. The
    attempt counter resets after a session that delivered at least one
    snapshot.
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        instrument_id: str,
        on_snapshot: Callable[[Snapshot], None],
        *,
        sleep_fn: Optional[Callable[[float], Any]] = None,
        max_retries: int = 5,
        backoff_base_sec: float = 1.0,
        backoff_cap_sec: float = 30.0,
        on_state_change: Optional[Callable[..., None]] = None,
        on_reconnect: Optional[Callable[..., None]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.instrument_id = instrument_id
        self._on_snapshot = on_snapshot
        self._stop = threading.Event()
        self._sleep = sleep_fn or self._stop.wait
        self.max_retries = max_retries
        self.backoff_base_sec = backoff_base_sec
        self.backoff_cap_sec = backoff_cap_sec
        self._on_state_change = on_state_change
        self._on_reconnect = on_reconnect
        self._lock = threading.Lock()
        self._handle: SessionHandle | None = None
        self.reconnect_count = 0
        self.last_result: SessionResult | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()
        with self._lock:
            handle = self._handle
        if handle is not None:
            handle.cancel()

    def _start_session(self) -> SessionHandle:
        handle = self.orchestrator.start(
            self.instrument_id,
            self._on_snapshot,
            on_state_change=self._on_state_change,
        )
        with self._lock:
            self._handle = handle
        if self._stop.is_set():
            handle.cancel()
        return handle

    def run(self) -> SessionResult | None:
        """Run sessions until cancelled, stopped or out of retries."""
        if self.max_retries < 1:
            return None

        attempt = 0
        while not self._stop.is_set():
            result = self._start_session().join()
            self.last_result = result
            if result is None or result.reason is CloseReason.CANCELLED or self._stop.is_set():
                break

            if result.snapshots > 0:
                attempt = 0
            attempt += 1
            if attempt >= self.max_retries:
                print(
                    f"[SUPERVISOR][give_up] instrument={self.instrument_id} attempts={attempt} "
                    f"reason={result.reason.value}",
                    flush=True,
                )
                break

            self.reconnect_count += 1
            if self._on_reconnect is not None:
                self._on_reconnect(
                    instrument_id=self.instrument_id,
                    reconnect_count=self.reconnect_count,
                    last_error=result.detail or result.reason.value,
                )

            backoff = min(self.backoff_base_sec * (2 ** (attempt - 1)), self.backoff_cap_sec)
            print(f"[SUPERVISOR][backoff] instrument={self.instrument_id} sec={backoff}", flush=True)
            self._sleep(backoff)

        return self.last_result
