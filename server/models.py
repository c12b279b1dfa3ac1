"""Message envelopes and request/response models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class InboundEnvelope(BaseModel):
    """Directed message sent by a client over its websocket."""

    model_config = ConfigDict(extra="ignore")

    message: str
    recipient: str = Field(min_length=1)


class OutboundEnvelope(BaseModel):
    """Message delivered to a client. ``from`` is absent for broadcasts."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    sender: str | None = Field(default=None, alias="from")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class BroadcastRequest(BaseModel):
    message: str


class BroadcastResponse(BaseModel):
    delivered: int
    failed: int


class HealthResponse(BaseModel):
    status: str
    version: str
    owners: int
    keys: int
    buckets: int
    connections: int
