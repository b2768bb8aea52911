import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field

ENV_PREFIX = "QUOTEFEED_"
DEFAULT_INSTRUMENT = "945629"


class Settings(BaseModel):
    INSTRUMENTS: list[str] = Field(default_factory=lambda: [DEFAULT_INSTRUMENT], min_length=1)
    VENDOR_HOST: str = Field(default="forexpros.com", min_length=1)
    URL_SCHEME: Literal["wss", "ws"] = "wss"
    TZ_ID: str = "8"
    HEARTBEAT_SEC: float = Field(default=3.2, gt=0)
    CONNECT_TIMEOUT_SEC: float = Field(default=10.0, gt=0)
    RECONNECT_MAX_RETRIES: int = Field(default=5, ge=1)
    RECONNECT_BACKOFF_BASE_SEC: float = Field(default=1.0, gt=0)
    RECONNECT_BACKOFF_CAP_SEC: float = Field(default=30.0, gt=0)
    STALE_AFTER_SEC: int = Field(default=10, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        raw_instruments = os.getenv(f"{ENV_PREFIX}INSTRUMENTS", DEFAULT_INSTRUMENT)
        instruments = [s.strip() for s in raw_instruments.split(",") if s.strip()]
        if not instruments:
            instruments = [DEFAULT_INSTRUMENT]

        values: dict[str, object] = {"INSTRUMENTS": instruments}
        for name in cls.model_fields:
            if name == "INSTRUMENTS":
                continue
            raw = os.getenv(f"{ENV_PREFIX}{name}")
            if raw is not None:
                values[name] = raw.strip()
        return cls.model_validate(values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
