from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SessionPhase(str, Enum):
    CONNECTING = "CONNECTING"
    HANDSHAKING = "HANDSHAKING"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"


class CloseReason(str, Enum):
    HANDSHAKE_FAILED = "HANDSHAKE_FAILED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    DECODE_ERROR = "DECODE_ERROR"
    END_OF_STREAM = "END_OF_STREAM"
    CANCELLED = "CANCELLED"
    CALLBACK_FAILED = "CALLBACK_FAILED"


class SessionResult(BaseModel):
    instrument_id: str
    reason: CloseReason
    detail: str | None = None
    decode_error: str | None = None
    snapshots: int = 0
    endpoint: str | None = None


class SessionStatus(BaseModel):
    instrument_id: str
    phase: SessionPhase = SessionPhase.CLOSED
    last_reason: CloseReason | None = None
    last_detail: str | None = None
    reconnect_count: int = 0
    snapshots: int = 0
    last_snapshot_ts: int | None = None
