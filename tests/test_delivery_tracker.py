import asyncio

import pytest

from conftest import FakeTransport
from clipdrop.application.delivery_tracker import DeliveryState, DeliveryTracker
from clipdrop.domain.errors import DeliveryError
from clipdrop.domain.models import (
    MessageKey,
    MessageStatus,
    MessageUpdate,
    UpsertEvent,
    UpsertType,
    VideoContent,
    WireMessage,
)
from clipdrop.infrastructure.transport import MESSAGES_UPDATE, MESSAGES_UPSERT

TITLE = "clip_1_1"
RECIPIENT = "42"


def make_tracker(transport, storage, *, delivery=0.01, failsafe=0.2):
    return DeliveryTracker(
        transport=transport,
        storage=storage,
        delivery_delete_delay_sec=delivery,
        failsafe_delete_delay_sec=failsafe,
    )


def write_video(storage, title=TITLE):
    path = storage.path_from_title(title)
    path.write_bytes(b"video")
    return path


def listeners(transport):
    return transport.events.listener_count(MESSAGES_UPDATE) + transport.events.listener_count(MESSAGES_UPSERT)


@pytest.mark.asyncio
async def test_echo_confirms_delivery_and_deletes_file(storage):
    transport = FakeTransport(echo="async")
    tracker = make_tracker(transport, storage)
    path = write_video(storage)

    delivery = await tracker.send_video(RECIPIENT, TITLE)
    assert delivery.state is DeliveryState.AWAITING_DELIVERY
    assert delivery.sent_key == transport.sent[0].message.key

    await asyncio.sleep(0)
    assert delivery.state is DeliveryState.DELIVERED
    assert listeners(transport) == 0
    assert path.exists()

    await asyncio.sleep(0.05)
    assert not path.exists()
    assert delivery.state is DeliveryState.CLEANED

    await tracker.stop()
    assert tracker.pending_timers == 0


@pytest.mark.asyncio
async def test_sends_video_with_caption_and_quote(storage):
    transport = FakeTransport(echo=None)
    tracker = make_tracker(transport, storage)
    path = write_video(storage)
    quoted = WireMessage(key=MessageKey(id="7", remote_jid=RECIPIENT), text="link")

    await tracker.send_video(RECIPIENT, TITLE, quoted=quoted)

    record = transport.sent[0]
    assert record.recipient == RECIPIENT
    assert record.quoted is quoted
    assert record.content == VideoContent(path=path, caption=f"⬇️ TikTok downloaded: {TITLE}", file_name=path.name)
    await tracker.stop()


@pytest.mark.asyncio
async def test_status_update_confirms_delivery(storage):
    transport = FakeTransport(echo=None)
    tracker = make_tracker(transport, storage)
    path = write_video(storage)
    delivery = await tracker.send_video(RECIPIENT, TITLE)
    key = delivery.sent_key

    transport.events.emit(MESSAGES_UPDATE, [MessageUpdate(key=key, status=MessageStatus.SERVER_ACK)])
    assert delivery.state is DeliveryState.AWAITING_DELIVERY

    transport.events.emit(MESSAGES_UPDATE, [MessageUpdate(key=key, status=MessageStatus.READ)])
    assert delivery.state is DeliveryState.DELIVERED

    await asyncio.sleep(0.05)
    assert not path.exists()
    await tracker.stop()


@pytest.mark.asyncio
async def test_ignores_events_for_other_messages(storage):
    transport = FakeTransport(echo=None)
    tracker = make_tracker(transport, storage)
    write_video(storage)
    delivery = await tracker.send_video(RECIPIENT, TITLE)
    key = delivery.sent_key

    other_id = MessageKey(id="other", remote_jid=RECIPIENT, from_me=True)
    other_chat = MessageKey(id=key.id, remote_jid="13", from_me=True)
    transport.events.emit(MESSAGES_UPDATE, [MessageUpdate(key=other_id, status=MessageStatus.DELIVERY_ACK)])
    transport.events.emit(
        MESSAGES_UPSERT,
        UpsertEvent(messages=[WireMessage(key=other_chat)], type=UpsertType.APPEND),
    )

    assert delivery.state is DeliveryState.AWAITING_DELIVERY
    assert delivery.listening
    await tracker.stop()


@pytest.mark.asyncio
async def test_duplicate_signals_clean_up_once(storage):
    transport = FakeTransport(echo=None)
    tracker = make_tracker(transport, storage)
    write_video(storage)
    delivery = await tracker.send_video(RECIPIENT, TITLE)
    key = delivery.sent_key
    confirmations = []
    original = tracker._on_delivered

    def counting_callback(d):
        confirmations.append(d)
        original(d)

    delivery._on_delivered = counting_callback

    update = [MessageUpdate(key=key, status=MessageStatus.DELIVERY_ACK)]
    echo = UpsertEvent(messages=[WireMessage(key=key)], type=UpsertType.APPEND)
    transport.events.emit(MESSAGES_UPDATE, update)
    transport.events.emit(MESSAGES_UPSERT, echo)
    transport.events.emit(MESSAGES_UPDATE, update)

    assert len(confirmations) == 1
    assert sorted(transport.off_calls) == [MESSAGES_UPDATE, MESSAGES_UPSERT]
    assert delivery.detach() is False
    await tracker.stop()


@pytest.mark.asyncio
async def test_echo_before_key_is_known_is_ignored_then_failsafe_cleans(storage):
    transport = FakeTransport(echo="sync")
    tracker = make_tracker(transport, storage, failsafe=0.05)
    path = write_video(storage)

    delivery = await tracker.send_video(RECIPIENT, TITLE)
    assert delivery.state is DeliveryState.AWAITING_DELIVERY

    await asyncio.sleep(0.1)
    assert delivery.state is DeliveryState.CLEANED
    assert not delivery.listening
    assert not path.exists()
    assert tracker.pending_timers == 0


@pytest.mark.asyncio
async def test_failsafe_after_delivery_is_harmless(storage):
    transport = FakeTransport(echo="async")
    tracker = make_tracker(transport, storage, delivery=0.01, failsafe=0.05)
    path = write_video(storage)

    delivery = await tracker.send_video(RECIPIENT, TITLE)
    await asyncio.sleep(0.1)

    assert delivery.state is DeliveryState.CLEANED
    assert not path.exists()
    assert transport.off_calls.count(MESSAGES_UPDATE) == 1
    assert tracker.pending_timers == 0


@pytest.mark.asyncio
async def test_send_failure_raises_and_still_cleans(storage):
    transport = FakeTransport()
    transport.fail_video = ConnectionError("socket closed")
    tracker = make_tracker(transport, storage, failsafe=0.05)
    path = write_video(storage)

    with pytest.raises(DeliveryError, match="socket closed"):
        await tracker.send_video(RECIPIENT, TITLE)

    assert listeners(transport) == 0
    await asyncio.sleep(0.1)
    assert not path.exists()


@pytest.mark.asyncio
async def test_stop_cancels_pending_timers(storage):
    transport = FakeTransport(echo=None)
    tracker = make_tracker(transport, storage, failsafe=10)
    path = write_video(storage)

    await tracker.send_video(RECIPIENT, TITLE)
    assert tracker.pending_timers == 1

    await tracker.stop()
    assert tracker.pending_timers == 0
    assert path.exists()
