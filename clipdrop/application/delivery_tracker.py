from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Coroutine, Set

from loguru import logger

from clipdrop.constants import MSG_CAPTION
from clipdrop.domain.errors import DeliveryError
from clipdrop.domain.models import MessageKey, MessageStatus, MessageUpdate, UpsertEvent, VideoContent, WireMessage
from clipdrop.infrastructure.storage import VideoStorage
from clipdrop.infrastructure.transport import MESSAGES_UPDATE, MESSAGES_UPSERT, SessionTransport


class DeliveryState(str, Enum):
    SENDING = "sending"
    AWAITING_DELIVERY = "awaiting_delivery"
    DELIVERED = "delivered"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CLEANED = "cleaned"


_LEAVES_ACTIVE = (DeliveryState.SENDING, DeliveryState.AWAITING_DELIVERY)
_TERMINAL = (DeliveryState.DELIVERED, DeliveryState.TIMED_OUT, DeliveryState.FAILED)


class PendingDelivery:
    """
    One outgoing video and the two transient listeners watching for it.

    Listeners are attached before the send so no echo can be missed; events
    seen before the message key is known are ignored. Every transition is a
    compare-and-set on `state`, so duplicate events, both listeners firing,
    and the failsafe timer can race freely.
    """

    def __init__(
        self,
        *,
        transport: SessionTransport,
        recipient: str,
        file_path: Path,
        on_delivered: Callable[["PendingDelivery"], None],
    ) -> None:
        self.recipient = recipient
        self.file_path = file_path
        self._transport = transport
        self._on_delivered = on_delivered
        self._state = DeliveryState.SENDING
        self._sent_key: MessageKey | None = None
        self._attached = False

    @property
    def state(self) -> DeliveryState:
        return self._state

    @property
    def sent_key(self) -> MessageKey | None:
        return self._sent_key

    @property
    def listening(self) -> bool:
        return self._attached

    def attach(self) -> None:
        if self._attached:
            return
        self._transport.on(MESSAGES_UPDATE, self._handle_update)
        self._transport.on(MESSAGES_UPSERT, self._handle_upsert)
        self._attached = True

    def detach(self) -> bool:
        if not self._attached:
            return False
        self._attached = False
        self._transport.off(MESSAGES_UPDATE, self._handle_update)
        self._transport.off(MESSAGES_UPSERT, self._handle_upsert)
        return True

    def mark_sent(self, key: MessageKey) -> None:
        if self._state is not DeliveryState.SENDING:
            return
        self._sent_key = key
        self._state = DeliveryState.AWAITING_DELIVERY

    def mark_failed(self) -> bool:
        if self._state is not DeliveryState.SENDING:
            return False
        self._state = DeliveryState.FAILED
        self.detach()
        return True

    def mark_delivered(self) -> bool:
        if self._state is not DeliveryState.AWAITING_DELIVERY:
            return False
        self._state = DeliveryState.DELIVERED
        self.detach()
        self._on_delivered(self)
        return True

    def mark_timed_out(self) -> bool:
        if self._state not in _LEAVES_ACTIVE:
            return False
        self._state = DeliveryState.TIMED_OUT
        self.detach()
        return True

    def mark_cleaned(self) -> None:
        if self._state in _TERMINAL:
            self._state = DeliveryState.CLEANED

    def _matches(self, key: MessageKey) -> bool:
        sent = self._sent_key
        return sent is not None and key.id == sent.id and key.remote_jid == self.recipient

    def _handle_update(self, updates: list[MessageUpdate]) -> None:
        if self._sent_key is None:
            return
        for update in updates:
            if (
                self._matches(update.key)
                and update.status is not None
                and update.status >= MessageStatus.DELIVERY_ACK
            ):
                self.mark_delivered()
                return

    def _handle_upsert(self, event: UpsertEvent) -> None:
        if self._sent_key is None:
            return
        if any(self._matches(m.key) for m in event.messages):
            self.mark_delivered()


class DeliveryTracker:
    """
    Sends a fetched video and removes its file once the session confirms it,
    or after the failsafe delay, whichever comes first.
    """

    def __init__(
        self,
        *,
        transport: SessionTransport,
        storage: VideoStorage,
        delivery_delete_delay_sec: float,
        failsafe_delete_delay_sec: float,
    ) -> None:
        self._transport = transport
        self._storage = storage
        self._delivery_delay = delivery_delete_delay_sec
        self._failsafe_delay = failsafe_delete_delay_sec
        self._timers: Set[asyncio.Task[Any]] = set()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    async def start(self) -> None:
        return

    async def stop(self) -> None:
        for task in list(self._timers):
            task.cancel()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

    async def send_video(self, recipient: str, title: str, *, quoted: WireMessage | None = None) -> PendingDelivery:
        path = self._storage.path_from_title(title)
        delivery = PendingDelivery(
            transport=self._transport,
            recipient=recipient,
            file_path=path,
            on_delivered=self._on_delivered,
        )
        delivery.attach()

        try:
            sent = await self._transport.send_message(
                recipient,
                VideoContent(path=path, caption=MSG_CAPTION.format(title=title), file_name=path.name),
                quoted=quoted,
            )
        except Exception as exc:
            delivery.mark_failed()
            raise DeliveryError(f"Error sending video: {exc}") from exc
        else:
            delivery.mark_sent(sent.key)
        finally:
            self._schedule(self._failsafe(delivery), name=f"failsafe:{path.name}")

        return delivery

    def _on_delivered(self, delivery: PendingDelivery) -> None:
        logger.debug("delivery confirmed: {}", delivery.sent_key)
        self._schedule(self._delete_after_delivery(delivery), name=f"delivered:{delivery.file_path.name}")

    async def _delete_after_delivery(self, delivery: PendingDelivery) -> None:
        # the transport may still be reading the file right after the signal
        await self._storage.delete_file(
            delivery.file_path,
            delay=self._delivery_delay,
            reason="Deleting video after delivery:",
        )
        delivery.mark_cleaned()

    async def _failsafe(self, delivery: PendingDelivery) -> None:
        await asyncio.sleep(self._failsafe_delay)
        if delivery.mark_timed_out():
            logger.warning("no delivery signal for {}, cleaning up", delivery.file_path.name)
        await self._storage.delete_file(delivery.file_path, reason="Failsafe delete after timeout:")
        delivery.mark_cleaned()

    def _schedule(self, coro: Coroutine[Any, Any, Any], *, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
