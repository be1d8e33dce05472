from __future__ import annotations

from functools import partial

from loguru import logger

from clipdrop.application.delivery_tracker import DeliveryTracker
from clipdrop.application.video_fetcher import VideoFetcher
from clipdrop.constants import (
    MSG_DOWNLOAD_ERROR,
    MSG_DOWNLOADING,
    MSG_PROCESSING_ERROR,
    MSG_RATE_LIMITED,
    MSG_SEND_ERROR,
)
from clipdrop.domain.errors import DeliveryError
from clipdrop.domain.models import TextContent, UpsertEvent, UpsertType, WireMessage
from clipdrop.infrastructure.rate_limiter import RateLimiter
from clipdrop.infrastructure.task_queue import TaskQueue
from clipdrop.infrastructure.transport import MESSAGES_UPSERT, SessionTransport
from clipdrop.infrastructure.url_tools import extract_platform_url, mentions_platform


class MessageRouter:
    """
    One inbound message -> rate limit -> queued fetch -> tracked send.

    Runs as an event callback with nobody awaiting it, so nothing may escape:
    every failure ends as a short reply in the chat.
    """

    def __init__(
        self,
        *,
        transport: SessionTransport,
        rate_limiter: RateLimiter,
        queue: TaskQueue,
        fetcher: VideoFetcher,
        tracker: DeliveryTracker,
        platform_domain: str,
        ignore_own_messages: bool = False,
    ) -> None:
        self._transport = transport
        self._limiter = rate_limiter
        self._queue = queue
        self._fetcher = fetcher
        self._tracker = tracker
        self._domain = platform_domain
        self._ignore_own = ignore_own_messages

    async def start(self) -> None:
        self._transport.on(MESSAGES_UPSERT, self.handle_upsert)

    async def stop(self) -> None:
        self._transport.off(MESSAGES_UPSERT, self.handle_upsert)

    async def handle_upsert(self, event: UpsertEvent) -> None:
        if event.type is not UpsertType.NOTIFY:
            return
        for msg in event.messages:
            await self.handle_message(msg)

    def should_ignore(self, msg: WireMessage) -> bool:
        if self._ignore_own and msg.key.from_me:
            return True
        if not msg.text:
            return True
        return not mentions_platform(msg.text, self._domain)

    async def handle_message(self, msg: WireMessage) -> None:
        remote = msg.key.remote_jid
        if not remote or self.should_ignore(msg):
            return

        try:
            if self._limiter.is_rate_limited(remote):
                logger.info("rate limited: {}", remote)
                await self._reply(remote, MSG_RATE_LIMITED, msg)
                return

            url = extract_platform_url(msg.text, self._domain)

            # counts even if the download later fails
            self._limiter.record_request(remote)
            await self._reply(remote, MSG_DOWNLOADING.format(url=url), msg)

            try:
                title = await self._queue.add(partial(self._fetcher.fetch_video, url))
            except Exception as exc:
                logger.error("Error downloading video {}: {}", url, exc)
                await self._reply(remote, MSG_DOWNLOAD_ERROR, msg)
                return

            try:
                await self._tracker.send_video(remote, title, quoted=msg)
            except DeliveryError as exc:
                logger.error("Error sending video to {}: {}", remote, exc)
                await self._reply(remote, MSG_SEND_ERROR, msg)
        except Exception:
            logger.exception("Error processing message from {}", remote)
            await self._safe_reply(remote, MSG_PROCESSING_ERROR, msg)

    async def _reply(self, remote: str, text: str, quoted: WireMessage) -> None:
        await self._transport.send_message(remote, TextContent(text=text), quoted=quoted)

    async def _safe_reply(self, remote: str, text: str, quoted: WireMessage) -> None:
        try:
            await self._reply(remote, text, quoted)
        except Exception as exc:
            logger.error("Failed to send error message to {}: {}", remote, exc)
