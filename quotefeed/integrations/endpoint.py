from __future__ import annotations

import random
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_VENDOR_HOST = "forexpros.com"
HOST_POOL_SIZE = 100


class EndpointDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    scheme: str = "wss"
    host: str = DEFAULT_VENDOR_HOST
    host_index: int = Field(ge=0, lt=HOST_POOL_SIZE)
    server_token: int = Field(ge=0, le=0xFFF)
    session_token: int = Field(ge=0, le=0xFFFFFFFF)

    @property
    def url(self) -> str:
        return (
            f"{self.scheme}://stream2{self.host_index:02d}.{self.host}"
            f"/echo/{self.server_token:03x}/{self.session_token:08x}/websocket"
        )


def next_endpoint(
    *,
    host: str = DEFAULT_VENDOR_HOST,
    scheme: str = "wss",
    rng: Any = None,
) -> EndpointDescriptor:
    """Pick a random streaming host and path tokens (coarse load spreading)."""
    source = rng or random
    return EndpointDescriptor(
        scheme=scheme,
        host=host,
        host_index=source.randrange(HOST_POOL_SIZE),
        server_token=source.randrange(0x1000),
        session_token=source.getrandbits(32),
    )
