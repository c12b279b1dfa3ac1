"""Directed relay between connections sharing a key."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Hashable

from pydantic import ValidationError

from relayhub.registry import ConnectionRegistry
from server.models import InboundEnvelope, OutboundEnvelope

log = logging.getLogger(__name__)


def make_relay_handler(
    registry: ConnectionRegistry,
    owner: Hashable,
    key: Hashable,
) -> Callable[[str | bytes], Awaitable[None]]:
    """Build the ``on_data`` callback for a connection owned by *owner*.

    Each inbound ``{"message", "recipient"}`` payload is forwarded to the
    recipient's connections under the same *key* as ``{"message", "from"}``.
    """

    async def on_data(data: str | bytes) -> None:
        try:
            envelope = InboundEnvelope.model_validate_json(data)
        except ValidationError as exc:
            log.info("Dropping malformed payload from %s on %s: %s", owner, key, exc.errors())
            return
        outbound = OutboundEnvelope(message=envelope.message, sender=str(owner))
        report = await registry.send(envelope.recipient, key, outbound.to_json(), strict=False)
        if not report.ok:
            log.warning(
                "Relay %s -> %s on %s: %d of %d deliveries failed",
                owner,
                envelope.recipient,
                key,
                len(report.failed),
                len(report),
            )

    return on_data
