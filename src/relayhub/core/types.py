"""Core types for the connection registry."""

from __future__ import annotations

import inspect
import itertools
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relayhub.exceptions import ConnectionClosed, DeliveryError

if TYPE_CHECKING:
    from relayhub.registry import ConnectionRegistry
    from relayhub.transport import Connection

OnData = Callable[[Any], Any]

_registration_ids = itertools.count(1)


@dataclass(eq=False)
class Registration:
    """One live connection bound to an ``(owner, key)`` bucket.

    A registration never moves between buckets and is never reinserted once
    removed; a reconnecting client gets a fresh one from ``register``.
    """

    owner: Hashable
    key: Hashable
    connection: Connection
    on_data: OnData | None = None
    id: int = field(default_factory=lambda: next(_registration_ids))
    removed: bool = field(default=False, init=False)
    registry: ConnectionRegistry | None = field(default=None, repr=False)

    async def dispatch(self, payload: Any) -> None:
        """Hand an inbound *payload* to ``on_data``. Handler errors propagate."""
        if self.on_data is None:
            return
        result = self.on_data(payload)
        if inspect.isawaitable(result):
            await result

    def close(self) -> bool:
        """Close event: drop this registration. Returns True on the removing call only."""
        return self._detach()

    def fail(self, exc: BaseException | None = None) -> bool:
        """Error event: drop this registration; the connection is not used again."""
        return self._detach()

    def _detach(self) -> bool:
        if self.registry is None:
            return False
        return self.registry.remove(self.owner, self.key, self.id)

    async def listen(self) -> None:
        """Pump inbound payloads into ``dispatch`` until the connection ends.

        ``ConnectionClosed`` from the transport ends the loop quietly; any
        other exception (including one raised by ``on_data``) removes the
        registration and is re-raised to the caller.
        """
        try:
            while True:
                payload = await self.connection.receive()
                await self.dispatch(payload)
        except ConnectionClosed:
            self.close()
        except BaseException as exc:
            self.fail(exc)
            raise


@dataclass
class Delivery:
    """Outcome of one per-connection write."""

    registration_id: int
    owner: Hashable
    key: Hashable
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SendReport:
    """Per-target outcome of a ``send`` or ``send_all`` call."""

    deliveries: list[Delivery] = field(default_factory=list)

    @property
    def delivered(self) -> list[Delivery]:
        return [d for d in self.deliveries if d.ok]

    @property
    def failed(self) -> list[Delivery]:
        return [d for d in self.deliveries if not d.ok]

    @property
    def ok(self) -> bool:
        return all(d.ok for d in self.deliveries)

    def __len__(self) -> int:
        return len(self.deliveries)

    def raise_for_failures(self) -> None:
        """Raise ``DeliveryError`` if any target failed."""
        if self.ok:
            return
        error = DeliveryError(self)
        raise error from error.first

    @classmethod
    def merge(cls, reports: Iterable[SendReport]) -> SendReport:
        merged = cls()
        for report in reports:
            merged.deliveries.extend(report.deliveries)
        return merged
