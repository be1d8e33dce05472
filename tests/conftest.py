"""Shared test fixtures and fakes."""
import asyncio
from dataclasses import dataclass
from pathlib import Path

import pytest

from clipdrop.config import Settings
from clipdrop.domain.models import (
    Content,
    MessageKey,
    TextContent,
    UpsertEvent,
    UpsertType,
    VideoContent,
    WireMessage,
)
from clipdrop.infrastructure.storage import VideoStorage
from clipdrop.infrastructure.transport import MESSAGES_UPSERT, EventEmitter
from clipdrop.infrastructure.yt import YdlProcessResult


@dataclass
class SentRecord:
    recipient: str
    content: Content
    quoted: WireMessage | None
    message: WireMessage


class FakeTransport:
    """In-memory session transport.

    echo: "async" emits the APPEND echo on the next loop iteration (like the
    Telegram adapter), "sync" emits it before send_message returns, None
    never echoes.
    """

    def __init__(self, echo="async"):
        self.events = EventEmitter()
        self.echo = echo
        self.sent = []
        self.off_calls = []
        self.fail_video = None
        self.fail_text = None
        self.started = 0
        self.stopped = 0
        self._next_id = 100

    def on(self, event, handler):
        self.events.on(event, handler)

    def off(self, event, handler):
        self.off_calls.append(event)
        self.events.off(event, handler)

    async def send_message(self, recipient, content, *, quoted=None):
        if isinstance(content, VideoContent) and self.fail_video is not None:
            raise self.fail_video
        if isinstance(content, TextContent) and self.fail_text is not None:
            raise self.fail_text

        self._next_id += 1
        text = content.text if isinstance(content, TextContent) else content.caption
        wire = WireMessage(key=MessageKey(id=str(self._next_id), remote_jid=recipient, from_me=True), text=text)
        self.sent.append(SentRecord(recipient=recipient, content=content, quoted=quoted, message=wire))

        echo = UpsertEvent(messages=[wire], type=UpsertType.APPEND)
        if self.echo == "sync":
            self.events.emit(MESSAGES_UPSERT, echo)
        elif self.echo == "async":
            asyncio.get_running_loop().call_soon(self.events.emit, MESSAGES_UPSERT, echo)
        return wire

    async def start(self):
        self.started += 1

    async def stop(self):
        self.stopped += 1

    @property
    def texts(self):
        return [r.content.text for r in self.sent if isinstance(r.content, TextContent)]

    @property
    def videos(self):
        return [r for r in self.sent if isinstance(r.content, VideoContent)]


class FakeCli:
    """Stands in for YtDlpCli without spawning processes."""

    def __init__(self, title="Some title\n", stderr="", available=True, write_file=True, delay=0.0):
        self.title = title
        self.stderr = stderr
        self.available = available
        self.write_file = write_file
        self.delay = delay
        self.downloads = []
        self.title_calls = 0

    async def is_available(self):
        return self.available

    async def print_title(self, url):
        self.title_calls += 1
        await asyncio.sleep(self.delay)
        return YdlProcessResult(returncode=0, stdout=self.title, stderr=self.stderr)

    async def download(self, url, out_path):
        await asyncio.sleep(self.delay)
        self.downloads.append((url, Path(out_path)))
        if self.write_file:
            Path(out_path).write_bytes(b"\x00\x00\x00\x18ftypmp42")


@pytest.fixture
def storage(tmp_path):
    s = VideoStorage(videos_dir=tmp_path / "videos", auth_dir=tmp_path / "auth_info")
    s.ensure_directories()
    return s


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        BOT_TOKEN="123456:TEST-token",
        VIDEOS_DIR=str(tmp_path / "videos"),
        AUTH_DIR=str(tmp_path / "auth_info"),
        DELIVERY_DELETE_DELAY_SEC=0.01,
        FAILSAFE_DELETE_DELAY_SEC=0.2,
    )


def make_message(text, *, remote="42", msg_id="1", from_me=False):
    return WireMessage(key=MessageKey(id=msg_id, remote_jid=remote, from_me=from_me), text=text)
