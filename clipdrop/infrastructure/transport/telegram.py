from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from aiogram import Bot, Dispatcher, Router
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramUnauthorizedError
from aiogram.types import FSInputFile, Message, ReplyParameters, User
from loguru import logger

from clipdrop.domain.errors import TransportError
from clipdrop.domain.models import (
    ConnectionState,
    ConnectionUpdate,
    Content,
    Disconnect,
    DisconnectReason,
    MessageKey,
    UpsertEvent,
    UpsertType,
    VideoContent,
    WireMessage,
)
from .events import CONNECTION_UPDATE, MESSAGES_UPSERT, EventEmitter, EventHandler


class TelegramTransport:
    """
    Telegram bot session exposed through the transport event channels.

    Telegram has no delivery receipts for bots; a sent message counts as
    re-observed once the Bot API has accepted the upload, so every successful
    send is echoed on "messages.upsert" with type APPEND.
    """

    def __init__(self, *, bot: Bot, auth_dir: Path, events: EventEmitter | None = None) -> None:
        self._bot = bot
        self._auth_dir = auth_dir
        self._events = events or EventEmitter()
        self._me: User | None = None
        self._polling: asyncio.Task[None] | None = None

        self._router = Router(name="inbound")
        self._router.message.register(self._on_message)
        self._dp = Dispatcher()
        self._dp.include_router(self._router)

    def on(self, event: str, handler: EventHandler) -> None:
        self._events.on(event, handler)

    def off(self, event: str, handler: EventHandler) -> None:
        self._events.off(event, handler)

    async def start(self) -> None:
        if self._polling is not None and not self._polling.done():
            return

        self._events.emit(CONNECTION_UPDATE, ConnectionUpdate(connection=ConnectionState.CONNECTING))
        try:
            me = await self._bot.get_me()
        except TelegramUnauthorizedError as exc:
            self._emit_close(DisconnectReason.LOGGED_OUT, exc)
            return
        except Exception as exc:
            self._emit_close(DisconnectReason.CONNECTION_LOST, exc)
            return

        self._me = me
        await self._save_session(me)
        self._events.emit(CONNECTION_UPDATE, ConnectionUpdate(connection=ConnectionState.OPEN))
        self._polling = asyncio.create_task(self._poll(), name="telegram-polling")

    async def stop(self) -> None:
        if self._polling is not None:
            self._polling.cancel()
            await asyncio.gather(self._polling, return_exceptions=True)
            self._polling = None
        await self._bot.session.close()

    async def send_message(
        self,
        recipient: str,
        content: Content,
        *,
        quoted: WireMessage | None = None,
    ) -> WireMessage:
        chat_id = int(recipient)
        reply = None
        if quoted is not None:
            reply = ReplyParameters(message_id=int(quoted.key.id), allow_sending_without_reply=True)

        if isinstance(content, VideoContent):
            sent = await self._bot.send_video(
                chat_id=chat_id,
                video=FSInputFile(path=str(content.path), filename=content.file_name),
                caption=content.caption,
                parse_mode=ParseMode.MARKDOWN,
                supports_streaming=True,
                reply_parameters=reply,
            )
        else:
            sent = await self._bot.send_message(chat_id=chat_id, text=content.text, reply_parameters=reply)

        wire = WireMessage(
            key=MessageKey(id=str(sent.message_id), remote_jid=str(sent.chat.id), from_me=True),
            text=sent.caption or sent.text,
        )
        # the caller learns the key before the echo is dispatched
        asyncio.get_running_loop().call_soon(
            self._events.emit,
            MESSAGES_UPSERT,
            UpsertEvent(messages=[wire], type=UpsertType.APPEND),
        )
        return wire

    async def _on_message(self, message: Message) -> None:
        self._events.emit(
            MESSAGES_UPSERT,
            UpsertEvent(messages=[self._to_wire(message)], type=UpsertType.NOTIFY),
        )

    def _to_wire(self, message: Message) -> WireMessage:
        sender = message.from_user
        from_me = self._me is not None and sender is not None and sender.id == self._me.id
        return WireMessage(
            key=MessageKey(id=str(message.message_id), remote_jid=str(message.chat.id), from_me=from_me),
            text=message.text or message.caption,
            push_name=sender.full_name if sender is not None else None,
        )

    async def _poll(self) -> None:
        try:
            await self._dp.start_polling(self._bot, handle_signals=False, close_bot_session=False)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("polling crashed")
            self._emit_close(DisconnectReason.CONNECTION_LOST, exc)

    def _emit_close(self, reason: DisconnectReason, exc: BaseException) -> None:
        self._events.emit(
            CONNECTION_UPDATE,
            ConnectionUpdate(
                connection=ConnectionState.CLOSE,
                last_disconnect=Disconnect(status_code=int(reason), error=exc),
            ),
        )

    async def _save_session(self, me: User) -> None:
        data = json.dumps(
            {"id": me.id, "username": me.username, "saved_at": int(time.time())},
            ensure_ascii=False,
        )
        path = self._auth_dir / "session.json"
        try:
            await asyncio.to_thread(path.write_text, data, "utf-8")
        except OSError as exc:
            raise TransportError(f"Cannot save session to {path}: {exc}") from exc
