from __future__ import annotations

from typing import Any, Callable, Optional

from websocket import (
    ABNF,
    WebSocketConnectionClosedException,
    WebSocketException,
    create_connection,
)

from quotefeed.errors import TransportError


class WsConnection:
    """Text-frame view over a websocket-client connection."""

    def __init__(self, ws: Any) -> None:
        self._ws = ws

    def send(self, text: str) -> None:
        try:
            self._ws.send(text)
        except (WebSocketException, OSError) as exc:
            raise TransportError(f"send failed: {exc}") from exc

    def recv(self) -> Optional[str]:
        """Return the next text frame, or None once the peer has closed."""
        try:
            opcode, data = self._ws.recv_data()
        except WebSocketConnectionClosedException:
            return None
        except (WebSocketException, OSError) as exc:
            raise TransportError(f"recv failed: {exc}") from exc

        if opcode == ABNF.OPCODE_CLOSE:
            return None
        if isinstance(data, bytes):
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise TransportError(f"recv failed: frame is not valid utf-8: {exc}") from exc
        return str(data)

    def close(self) -> None:
        # abort wakes a reader blocked in recv() on another thread
        try:
            self._ws.abort()
            self._ws.shutdown()
        except (WebSocketException, OSError) as exc:
            print(f"[TRANSPORT][close_error] error={exc}", flush=True)


class WsTransport:
    def __init__(
        self,
        *,
        connect_timeout_sec: float = 10.0,
        connection_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.connect_timeout_sec = connect_timeout_sec
        self._connection_factory = connection_factory or create_connection

    def connect(self, url: str) -> WsConnection:
        try:
            ws = self._connection_factory(
                url,
                timeout=self.connect_timeout_sec,
                enable_multithread=True,
            )
        except (WebSocketException, OSError) as exc:
            raise TransportError(f"connect failed: {exc}") from exc

        # blocking reads after connect; idle gaps are covered by heartbeats
        ws.settimeout(None)
        return WsConnection(ws)
