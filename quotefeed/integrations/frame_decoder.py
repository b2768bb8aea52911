from __future__ import annotations

import json
from typing import Any, Dict

from pydantic import ValidationError

from quotefeed.errors import InvalidJsonError, InvalidNumberError, MalformedEnvelopeError
from quotefeed.schemas.snapshot import Snapshot

OPEN_DELIMITER = "::{"
CLOSE_DELIMITER = "}"
# one nesting level of the vendor envelope escapes each inner quote as \\\"
NESTED_ESCAPE = "\\\\\\"


def extract_payload(raw: str) -> str:
    """Return the inner snapshot JSON text carried by a wire envelope.

    The server serialises the snapshot twice: the outer frame is a JSON array
    holding a JSON string holding ``{"message": "pid-<id>::{...}"}``. The
    object after ``::`` therefore arrives with three backslashes in front of
    every quote. Stripping that sequence is lossy if a field value ever
    contains it; the server never sends such values.
    """
    start = raw.find(OPEN_DELIMITER)
    if start < 0:
        raise MalformedEnvelopeError("opening delimiter '::{' not found")
    end = raw.find(CLOSE_DELIMITER, start)
    if end < 0:
        raise MalformedEnvelopeError("closing brace not found after '::{'")

    return raw[start + 2 : end + 1].replace(NESTED_ESCAPE, "")


def decode(raw: str) -> Snapshot:
    """Decode one inbound snapshot frame."""
    payload = extract_payload(raw)
    try:
        fields = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise InvalidJsonError(f"snapshot payload is not valid JSON: {exc}") from exc
    if not isinstance(fields, dict):
        raise InvalidJsonError("snapshot payload must be a JSON object")

    try:
        return Snapshot.model_validate(fields)
    except ValidationError as exc:
        for error in exc.errors():
            if error["loc"][:1] == ("turnover_numeric",):
                raise InvalidNumberError(error["msg"]) from exc
        raise InvalidJsonError(f"snapshot payload does not match schema: {exc}") from exc


def encode(snapshot: Snapshot, *, message_key: str | None = None) -> str:
    """Build the wire envelope the server would send for ``snapshot``."""
    key = message_key or f"pid-{snapshot.instrument_id}"
    inner: Dict[str, Any] = snapshot.model_dump(by_alias=True)
    message = {"message": f"{key}::{json.dumps(inner, separators=(',', ':'))}"}
    return "a" + json.dumps([json.dumps(message, separators=(",", ":"))])
