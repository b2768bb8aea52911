from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Tuple

from quotefeed.errors import DecodeError, HandshakeFailedError, TransportError
from quotefeed.integrations import frame_decoder
from quotefeed.integrations.endpoint import EndpointDescriptor, next_endpoint
from quotefeed.integrations.transport import WsTransport
from quotefeed.integrations.wire import (
    DEFAULT_TZ_ID,
    OPEN_ACK,
    build_identity_frame,
    build_subscribe_frame,
    subscription_key,
)
from quotefeed.schemas.session import CloseReason, SessionPhase, SessionResult
from quotefeed.schemas.snapshot import Snapshot
from quotefeed.services.keepalive import DEFAULT_HEARTBEAT_INTERVAL_SEC, KeepAliveTask
from quotefeed.services.snapshot_stream import SnapshotStream

SnapshotCallback = Callable[[Snapshot], None]
StateCallback = Callable[..., None]
_Outcome = Tuple[CloseReason, Optional[str], Optional[str]]

# reasons our own connection teardown can produce while a cancel is in flight
_CANCEL_MASKED = {
    CloseReason.HANDSHAKE_FAILED,
    CloseReason.TRANSPORT_ERROR,
    CloseReason.END_OF_STREAM,
}
_KEEPALIVE_JOIN_TIMEOUT_SEC = 5.0


class Session:
    """One instrument subscription over one exclusively owned connection.

    Phases run CONNECTING -> HANDSHAKING -> STREAMING -> CLOSED on a
    dedicated thread. The keep-alive thread is started only after both
    handshake frames went out and is stopped before the connection is
    closed, so it never outlives the session.
    """

    def __init__(
        self,
        instrument_id: str,
        on_snapshot: SnapshotCallback,
        *,
        transport: Any,
        endpoint_factory: Callable[[], EndpointDescriptor],
        heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC,
        tz_id: str = DEFAULT_TZ_ID,
        state_callbacks: tuple[StateCallback, ...] = (),
    ) -> None:
        self.instrument_id = instrument_id
        self._on_snapshot = on_snapshot
        self._transport = transport
        self._endpoint_factory = endpoint_factory
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self.tz_id = tz_id
        self._state_callbacks = state_callbacks

        self.phase = SessionPhase.CONNECTING
        self.endpoint: EndpointDescriptor | None = None
        self.result: SessionResult | None = None
        self.snapshots = 0

        self._connection: Any = None
        self._keepalive: KeepAliveTask | None = None
        self._lock = threading.Lock()
        # held while the consumer callback runs; cancel() takes it too
        self._dispatch_lock = threading.RLock()
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f"quotefeed-session-{instrument_id}",
        )

    def start(self) -> None:
        self._emit_state()
        self._thread.start()

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        if self._done.is_set():
            return
        with self._dispatch_lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
        print(f"[SESSION][cancel] instrument={self.instrument_id} phase={self.phase.value}", flush=True)
        keepalive = self._keepalive
        if keepalive is not None:
            keepalive.stop()
        self._close_connection()

    def _emit_state(self) -> None:
        for callback in self._state_callbacks:
            callback(instrument_id=self.instrument_id, phase=self.phase, result=self.result)

    def _set_phase(self, phase: SessionPhase) -> None:
        self.phase = phase
        print(f"[SESSION][phase] instrument={self.instrument_id} phase={phase.value}", flush=True)
        self._emit_state()

    def _close_connection(self) -> None:
        with self._lock:
            connection = self._connection
            self._connection = None
        if connection is not None:
            connection.close()

    def _on_keepalive_failure(self, exc: TransportError) -> None:
        # wake the dispatch loop; it reports the heartbeat error
        self._close_connection()

    def _run(self) -> None:
        try:
            reason, detail, decode_kind = self._serve()
        except Exception as exc:
            print(f"[SESSION][unexpected_error] instrument={self.instrument_id} error={exc!r}", flush=True)
            reason, detail, decode_kind = CloseReason.TRANSPORT_ERROR, repr(exc), None

        try:
            if self._keepalive is not None:
                self._keepalive.stop()
            self._close_connection()
            if self._keepalive is not None:
                self._keepalive.join(_KEEPALIVE_JOIN_TIMEOUT_SEC)

            if self._cancelled.is_set() and reason in _CANCEL_MASKED:
                reason, detail = CloseReason.CANCELLED, None

            self.result = SessionResult(
                instrument_id=self.instrument_id,
                reason=reason,
                detail=detail,
                decode_error=decode_kind,
                snapshots=self.snapshots,
                endpoint=self.endpoint.url if self.endpoint is not None else None,
            )
            print(
                f"[SESSION][closed] instrument={self.instrument_id} reason={reason.value} "
                f"snapshots={self.snapshots} detail={detail}",
                flush=True,
            )
            self._set_phase(SessionPhase.CLOSED)
        finally:
            self._done.set()

    def _serve(self) -> _Outcome:
        self.endpoint = self._endpoint_factory()
        print(f"[SESSION][connect] instrument={self.instrument_id} url={self.endpoint.url}", flush=True)

        try:
            connection = self._transport.connect(self.endpoint.url)
            with self._lock:
                self._connection = connection
            if self._cancelled.is_set():
                return CloseReason.CANCELLED, None, None
            self._handshake(connection)
        except (TransportError, HandshakeFailedError) as exc:
            return CloseReason.HANDSHAKE_FAILED, str(exc), None

        self._set_phase(SessionPhase.STREAMING)
        self._keepalive = KeepAliveTask(
            connection.send,
            interval_sec=self.heartbeat_interval_sec,
            on_failure=self._on_keepalive_failure,
            name=f"quotefeed-keepalive-{self.instrument_id}",
        )
        self._keepalive.start()
        return self._dispatch(connection)

    def _handshake(self, connection: Any) -> None:
        first = connection.recv()
        if first != OPEN_ACK:
            raise HandshakeFailedError(f"unexpected open token: {first!r}")

        self._set_phase(SessionPhase.HANDSHAKING)
        connection.send(build_subscribe_frame(self.instrument_id, self.tz_id))
        connection.send(build_identity_frame())
        print(f"[SESSION][subscribed] instrument={self.instrument_id} tz_id={self.tz_id}", flush=True)

    def _dispatch(self, connection: Any) -> _Outcome:
        key = subscription_key(self.instrument_id)
        keepalive = self._keepalive

        while not self._cancelled.is_set():
            try:
                raw = connection.recv()
            except TransportError as exc:
                if keepalive is not None and keepalive.error is not None:
                    return CloseReason.TRANSPORT_ERROR, f"heartbeat failed: {keepalive.error}", None
                return CloseReason.TRANSPORT_ERROR, str(exc), None

            if keepalive is not None and keepalive.error is not None:
                return CloseReason.TRANSPORT_ERROR, f"heartbeat failed: {keepalive.error}", None
            if raw is None:
                return CloseReason.END_OF_STREAM, None, None
            if key not in raw:
                continue

            try:
                snapshot = frame_decoder.decode(raw)
            except DecodeError as exc:
                return CloseReason.DECODE_ERROR, str(exc), exc.kind

            with self._dispatch_lock:
                if self._cancelled.is_set():
                    break
                try:
                    self._on_snapshot(snapshot)
                except Exception as exc:
                    return CloseReason.CALLBACK_FAILED, repr(exc), None
                self.snapshots += 1

        return CloseReason.CANCELLED, None, None


class SessionHandle:
    """Caller-side control over a running session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def instrument_id(self) -> str:
        return self._session.instrument_id

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    @property
    def snapshots(self) -> int:
        return self._session.snapshots

    def done(self) -> bool:
        return self._session.done()

    def cancel(self) -> None:
        self._session.cancel()

    def join(self, timeout: float | None = None) -> SessionResult | None:
        """Wait for the terminal result; None if ``timeout`` elapsed first."""
        if not self._session.wait(timeout):
            return None
        return self._session.result


class SessionOrchestrator:
    def __init__(
        self,
        *,
        transport: Any = None,
        endpoint_factory: Optional[Callable[[], EndpointDescriptor]] = None,
        heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC,
        tz_id: str = DEFAULT_TZ_ID,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self.transport = transport or WsTransport()
        self.endpoint_factory = endpoint_factory or next_endpoint
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self.tz_id = tz_id
        self._on_state_change = on_state_change

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "SessionOrchestrator":
        kwargs.setdefault("transport", WsTransport(connect_timeout_sec=settings.CONNECT_TIMEOUT_SEC))
        kwargs.setdefault(
            "endpoint_factory",
            lambda: next_endpoint(host=settings.VENDOR_HOST, scheme=settings.URL_SCHEME),
        )
        kwargs.setdefault("heartbeat_interval_sec", settings.HEARTBEAT_SEC)
        kwargs.setdefault("tz_id", settings.TZ_ID)
        return cls(**kwargs)

    def start(
        self,
        instrument_id: str,
        on_snapshot: SnapshotCallback,
        *,
        on_state_change: Optional[StateCallback] = None,
    ) -> SessionHandle:
        if not instrument_id:
            raise ValueError("instrument_id is required")

        callbacks = tuple(cb for cb in (self._on_state_change, on_state_change) if cb is not None)
        session = Session(
            instrument_id,
            on_snapshot,
            transport=self.transport,
            endpoint_factory=self.endpoint_factory,
            heartbeat_interval_sec=self.heartbeat_interval_sec,
            tz_id=self.tz_id,
            state_callbacks=callbacks,
        )
        session.start()
        return SessionHandle(session)

    def open_stream(self, instrument_id: str) -> SnapshotStream:
        stream = SnapshotStream()
        stream.bind(self.start(instrument_id, stream.put, on_state_change=stream.on_state_change))
        return stream


def start_session(instrument_id: str, on_snapshot: SnapshotCallback, **kwargs: Any) -> SessionHandle:
    return SessionOrchestrator(**kwargs).start(instrument_id, on_snapshot)
