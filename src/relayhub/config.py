"""Relayhub configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

_ENV_PREFIX = "RELAYHUB_"


class RelayConfig(BaseModel):
    """Settings for a relay server process."""

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    broadcast_key: str = Field(default="messaging", min_length=1)
    owner_param: str = Field(default="user_id", min_length=1)
    websocket_path: str = "/websocket"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> RelayConfig:
        """Build a config from ``RELAYHUB_*`` environment variables."""
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(_ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        return cls(**values)
