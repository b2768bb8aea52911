from __future__ import annotations

import json
from typing import Any, Dict

OPEN_ACK = "o"
DEFAULT_TZ_ID = "8"
DEFAULT_UID = 0


def _frame(event: Dict[str, Any]) -> str:
    # the server expects a JSON array holding the event as a JSON string
    return json.dumps([json.dumps(event, separators=(",", ":"))])


def build_subscribe_frame(instrument_id: str, tz_id: str = DEFAULT_TZ_ID) -> str:
    return _frame(
        {
            "_event": "bulk-subscribe",
            "tzID": tz_id,
            "message": f"pid-{instrument_id}:",
        }
    )


def build_identity_frame(uid: int = DEFAULT_UID) -> str:
    return _frame({"_event": "UID", "UID": uid})


HEARTBEAT_FRAME = _frame({"_event": "heartbeat", "data": "h"})


def subscription_key(instrument_id: str) -> str:
    return f"pid-{instrument_id}::{{"
