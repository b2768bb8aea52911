from __future__ import annotations

import threading
from typing import Callable, Optional

from quotefeed.errors import TransportError
from quotefeed.integrations.wire import HEARTBEAT_FRAME

DEFAULT_HEARTBEAT_INTERVAL_SEC = 3.2


class KeepAliveTask:
    """Periodic heartbeat writer bound to one connection's send half."""

    def __init__(
        self,
        send: Callable[[str], None],
        *,
        interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC,
        frame: str = HEARTBEAT_FRAME,
        on_failure: Optional[Callable[[TransportError], None]] = None,
        name: str = "quotefeed-keepalive",
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self._send = send
        self.interval_sec = interval_sec
        self.frame = frame
        self._on_failure = on_failure
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)
        self.beats = 0
        self.error: TransportError | None = None

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._send(self.frame)
            except TransportError as exc:
                if self._stop.is_set():
                    return
                self.error = exc
                print(f"[KEEPALIVE][send_failed] error={exc}", flush=True)
                if self._on_failure is not None:
                    self._on_failure(exc)
                return
            self.beats += 1
            if self._stop.wait(self.interval_sec):
                return
