"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .driver_consumer import DriverConsumer
from .eta_consumer import ETAConsumer

__all__ = [
    "BaseConsumer",
    "DriverConsumer",
    "ETAConsumer",
]
