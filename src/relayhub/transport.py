"""Transport protocol the registry sends through."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from relayhub.exceptions import ConnectionClosed

__all__ = ["Connection", "ConnectionClosed"]


@runtime_checkable
class Connection(Protocol):
    """A bidirectional, message-oriented connection.

    The registry only holds a reference; opening and closing the underlying
    socket belongs to whoever accepted it.
    """

    async def send(self, payload: Any, **options: Any) -> None:
        """Write *payload*. Raise on failure."""
        ...

    async def receive(self) -> Any:
        """Wait for the next inbound payload. Raise ``ConnectionClosed`` at end of stream."""
        ...
