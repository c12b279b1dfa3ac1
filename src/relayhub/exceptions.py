"""Relayhub exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relayhub.core.types import SendReport


class RegistryError(Exception):
    """Base exception for all Relayhub errors."""


class InvalidIdentity(RegistryError, ValueError):
    """Raised when an owner or key is empty or ``None``."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is falsey")


class DeliveryError(RegistryError):
    """Raised when one or more targets of a send failed.

    Targets that succeeded already hold the payload; ``report`` lists every
    target and ``first`` is the earliest failure in fan-out order.
    """

    def __init__(self, report: SendReport):
        self.report = report
        self.first = report.failed[0].error if report.failed else None
        super().__init__(
            f"Delivery failed for {len(report.failed)} of {len(report.deliveries)} connection(s)"
        )


class ConnectionClosed(RegistryError):
    """Raised by a transport's ``receive()`` when the peer closed the connection."""

    def __init__(self, code: int | None = None, reason: str = ""):
        self.code = code
        self.reason = reason
        super().__init__(f"Connection closed (code={code})")
