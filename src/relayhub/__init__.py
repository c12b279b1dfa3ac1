"""Relayhub: owner/key indexed registry for live message connections."""

from relayhub.config import RelayConfig
from relayhub.core.types import Delivery, Registration, SendReport
from relayhub.registry import ConnectionRegistry

__version__ = "0.1.0"
__all__ = ["ConnectionRegistry", "RelayConfig", "Registration", "Delivery", "SendReport"]
