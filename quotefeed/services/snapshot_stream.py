from __future__ import annotations

import queue
from typing import Any, Iterator

from quotefeed.schemas.session import SessionPhase, SessionResult
from quotefeed.schemas.snapshot import Snapshot

_END = object()


class SnapshotStream:
    """Pull-style view of one session: iterate snapshots until it closes."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self.handle: Any = None

    def bind(self, handle: Any) -> None:
        self.handle = handle

    def put(self, snapshot: Snapshot) -> None:
        self._queue.put(snapshot)

    def on_state_change(self, *, instrument_id: str, phase: SessionPhase, result: SessionResult | None = None) -> None:
        if phase is SessionPhase.CLOSED:
            self._queue.put(_END)

    def __iter__(self) -> Iterator[Snapshot]:
        while True:
            item = self._queue.get()
            if item is _END:
                # keep the marker so a second iteration ends immediately
                self._queue.put(_END)
                return
            yield item

    def cancel(self) -> None:
        if self.handle is not None:
            self.handle.cancel()

    def result(self, timeout: float | None = None) -> SessionResult | None:
        if self.handle is None:
            return None
        return self.handle.join(timeout)
