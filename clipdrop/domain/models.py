from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from pathlib import Path
from typing import Union


class UpsertType(str, Enum):
    NOTIFY = "notify"
    APPEND = "append"


class MessageStatus(IntEnum):
    ERROR = 0
    PENDING = 1
    SERVER_ACK = 2
    DELIVERY_ACK = 3
    READ = 4
    PLAYED = 5


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


class DisconnectReason(IntEnum):
    CONNECTION_LOST = 408
    LOGGED_OUT = 401
    RESTART_REQUIRED = 515


@dataclass(frozen=True, slots=True)
class MessageKey:
    id: str
    remote_jid: str
    from_me: bool = False


@dataclass(frozen=True, slots=True)
class WireMessage:
    """
    Transport-neutral view of one chat message.
    `text` is None for media without caption, stickers, service messages.
    """
    key: MessageKey
    text: str | None = None
    push_name: str | None = None


@dataclass(frozen=True, slots=True)
class UpsertEvent:
    messages: list[WireMessage]
    type: UpsertType


@dataclass(frozen=True, slots=True)
class MessageUpdate:
    key: MessageKey
    status: MessageStatus | None = None


@dataclass(frozen=True, slots=True)
class Disconnect:
    status_code: int | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class ConnectionUpdate:
    connection: ConnectionState | None = None
    last_disconnect: Disconnect | None = None
    qr: str | None = None


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str


@dataclass(frozen=True, slots=True)
class VideoContent:
    path: Path
    caption: str
    file_name: str


Content = Union[TextContent, VideoContent]
