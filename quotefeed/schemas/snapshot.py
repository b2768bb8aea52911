from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1


def coerce_turnover_numeric(value: Any) -> int:
    """Normalize turnover_numeric sent as a JSON number, digit string or empty string."""
    if isinstance(value, bool):
        raise ValueError(f"turnover_numeric must be u32 or string, got {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        if value == "":
            return 0
        if not (value.isascii() and value.isdigit()):
            raise ValueError(f"invalid digit found in string: {value!r}")
        number = int(value)
    else:
        raise ValueError(f"turnover_numeric must be u32 or string, got {value!r}")

    if number < 0 or number > U32_MAX:
        raise ValueError(f"turnover_numeric out of u32 range: {number}")
    return number


class Snapshot(BaseModel):
    """One instrument price update as pushed by the streaming server."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, strict=True)

    instrument_id: str = Field(alias="pid")
    direction: str | None = Field(default=None, alias="last_dir")
    last_value: float = Field(alias="last_numeric")
    last_display: str = Field(alias="last")
    bid_display: str = Field(alias="bid")
    ask_display: str = Field(alias="ask")
    high_display: str = Field(alias="high")
    low_display: str = Field(alias="low")
    previous_close_display: str = Field(default="", alias="last_close")
    change_display: str = Field(alias="pc")
    change_percent_display: str = Field(alias="pcp")
    change_style: str = Field(alias="pc_col")
    turnover_display: str = Field(default="", alias="turnover")
    turnover_numeric: int = Field(default=0, alias="turnover_numeric")
    time_display: str = Field(alias="time")
    timestamp: int = Field(alias="timestamp", ge=0, le=U64_MAX)

    @field_validator("turnover_numeric", mode="before")
    @classmethod
    def _turnover_numeric(cls, value: Any) -> int:
        return coerce_turnover_numeric(value)
