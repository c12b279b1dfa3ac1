"""Relayhub core types."""

from relayhub.core.types import Delivery, Registration, SendReport

__all__ = ["Delivery", "Registration", "SendReport"]
