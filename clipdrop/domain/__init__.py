from __future__ import annotations

from .errors import AppError, DeliveryError, FetchError, MetadataError, TransportError, ValidationError
from .models import (
    Content,
    ConnectionState,
    ConnectionUpdate,
    Disconnect,
    DisconnectReason,
    MessageKey,
    MessageStatus,
    MessageUpdate,
    TextContent,
    UpsertEvent,
    UpsertType,
    VideoContent,
    WireMessage,
)

__all__ = [
    "Content",
    "AppError",
    "ValidationError",
    "FetchError",
    "MetadataError",
    "DeliveryError",
    "TransportError",
    "ConnectionState",
    "ConnectionUpdate",
    "Disconnect",
    "DisconnectReason",
    "MessageKey",
    "MessageStatus",
    "MessageUpdate",
    "TextContent",
    "UpsertEvent",
    "UpsertType",
    "VideoContent",
    "WireMessage",
]
