from __future__ import annotations

from .base import SessionTransport
from .events import CONNECTION_UPDATE, MESSAGES_UPDATE, MESSAGES_UPSERT, EventEmitter, EventHandler
from .telegram import TelegramTransport

__all__ = [
    "SessionTransport",
    "EventEmitter",
    "EventHandler",
    "TelegramTransport",
    "CONNECTION_UPDATE",
    "MESSAGES_UPDATE",
    "MESSAGES_UPSERT",
]
