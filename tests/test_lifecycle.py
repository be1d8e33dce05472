import pytest

from conftest import FakeTransport
from clipdrop.config import Settings
from clipdrop.di import Container, DIError
from clipdrop.domain.errors import TransportError
from clipdrop.domain.models import ConnectionState, ConnectionUpdate, Disconnect, DisconnectReason
from clipdrop.infrastructure.transport import CONNECTION_UPDATE, MESSAGES_UPSERT
from clipdrop.lifecycle import AppLifecycle, LifecycleError


@pytest.mark.asyncio
async def test_startup_wires_and_shutdown_unwires(settings):
    transport = FakeTransport()
    lifecycle = AppLifecycle(container=Container.build(settings), transport=transport)

    await lifecycle.startup()

    assert transport.started == 1
    assert settings.videos_dir.is_dir()
    assert settings.auth_dir.is_dir()
    assert transport.events.listener_count(MESSAGES_UPSERT) == 1
    assert transport.events.listener_count(CONNECTION_UPDATE) == 1

    await lifecycle.shutdown()

    assert transport.stopped == 1
    assert transport.events.listener_count(MESSAGES_UPSERT) == 0
    assert transport.events.listener_count(CONNECTION_UPDATE) == 0


@pytest.mark.asyncio
async def test_transport_starts_last_and_stops_first(settings):
    order = []

    class RecordingTransport(FakeTransport):
        async def start(self):
            order.append(("start", self.events.listener_count(MESSAGES_UPSERT)))

        async def stop(self):
            order.append(("stop", self.events.listener_count(MESSAGES_UPSERT)))

    lifecycle = AppLifecycle(container=Container.build(settings), transport=RecordingTransport())
    await lifecycle.startup()
    await lifecycle.shutdown()

    # the router is subscribed before the session starts and after it stops
    assert order == [("start", 1), ("stop", 1)]


@pytest.mark.asyncio
async def test_startup_twice_is_an_error(settings):
    lifecycle = AppLifecycle(container=Container.build(settings), transport=FakeTransport())
    await lifecycle.startup()
    with pytest.raises(LifecycleError):
        await lifecycle.startup()
    await lifecycle.shutdown()


@pytest.mark.asyncio
async def test_unwritable_videos_dir_fails_startup(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    settings = Settings(BOT_TOKEN="1:abc", VIDEOS_DIR=str(blocker / "videos"), AUTH_DIR=str(tmp_path / "auth"))
    transport = FakeTransport()
    lifecycle = AppLifecycle(container=Container.build(settings), transport=transport)

    with pytest.raises(LifecycleError):
        await lifecycle.startup()
    assert transport.started == 0


@pytest.mark.asyncio
async def test_shutdown_without_startup_is_noop(settings):
    transport = FakeTransport()
    await AppLifecycle(container=Container.build(settings), transport=transport).shutdown()
    assert transport.stopped == 0


@pytest.mark.asyncio
async def test_logged_out_session_triggers_give_up(settings):
    transport = FakeTransport()
    gave_up = []
    lifecycle = AppLifecycle(
        container=Container.build(settings),
        transport=transport,
        on_give_up=lambda: gave_up.append(True),
    )
    await lifecycle.startup()

    transport.events.emit(
        CONNECTION_UPDATE,
        ConnectionUpdate(
            connection=ConnectionState.CLOSE,
            last_disconnect=Disconnect(status_code=int(DisconnectReason.LOGGED_OUT)),
        ),
    )

    assert gave_up == [True]
    await lifecycle.shutdown()


def test_container_rejects_duplicates_and_unknown_names(settings):
    container = Container.build(settings)
    container.register("a", object())
    with pytest.raises(DIError):
        container.register("a", object())
    with pytest.raises(DIError):
        container.get("missing")
    with pytest.raises(DIError):
        container.register(" ", object())


@pytest.mark.asyncio
async def test_shutdown_after_failed_start_stops_what_was_started(settings):
    class FailingTransport(FakeTransport):
        async def start(self):
            raise TransportError("cannot save session")

    transport = FailingTransport()
    container = Container.build(settings)
    lifecycle = AppLifecycle(container=container, transport=transport)

    with pytest.raises(LifecycleError):
        await lifecycle.startup()
    await lifecycle.shutdown()

    assert container.get("file_sweeper")._task is None
    assert transport.events.listener_count(CONNECTION_UPDATE) == 0
    assert transport.events.listener_count(MESSAGES_UPSERT) == 0
    assert transport.stopped == 1
