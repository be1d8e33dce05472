from __future__ import annotations

from typing import Protocol, runtime_checkable

from clipdrop.domain.models import Content, WireMessage
from .events import EventHandler


@runtime_checkable
class SessionTransport(Protocol):
    """
    What the core needs from a messaging session.

    Channels: "messages.upsert" (UpsertEvent), "messages.update"
    (list[MessageUpdate]), "connection.update" (ConnectionUpdate).
    """

    def on(self, event: str, handler: EventHandler) -> None: ...
    def off(self, event: str, handler: EventHandler) -> None: ...

    async def send_message(
        self,
        recipient: str,
        content: Content,
        *,
        quoted: WireMessage | None = None,
    ) -> WireMessage: ...

    async def start(self) -> None: ...
    async def stop(self) -> None: ...
