from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger

from clipdrop.application.reconnect import ReconnectPolicy
from clipdrop.domain.models import ConnectionState, ConnectionUpdate, DisconnectReason
from clipdrop.infrastructure.transport import CONNECTION_UPDATE, SessionTransport


class ConnectionSupervisor:
    """
    Reacts to "connection.update": restarts the session with backoff after a
    drop, gives up when logged out or when the policy runs out of attempts.
    """

    def __init__(
        self,
        *,
        transport: SessionTransport,
        policy: ReconnectPolicy,
        on_give_up: Callable[[], None] | None = None,
    ) -> None:
        self._transport = transport
        self._policy = policy
        self._on_give_up = on_give_up
        self._restart_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._transport.on(CONNECTION_UPDATE, self.handle_update)

    async def stop(self) -> None:
        self._transport.off(CONNECTION_UPDATE, self.handle_update)
        if self._restart_task is not None:
            self._restart_task.cancel()
            await asyncio.gather(self._restart_task, return_exceptions=True)
            self._restart_task = None

    def handle_update(self, update: ConnectionUpdate) -> None:
        if update.qr:
            logger.info("Login code received, scan it with the session app: {}", update.qr)

        if update.connection is ConnectionState.OPEN:
            self._policy.reset()
            logger.info("Connection established. Send a video link to start downloading.")
            return

        if update.connection is ConnectionState.CONNECTING:
            logger.info("Connecting…")
            return

        if update.connection is not ConnectionState.CLOSE:
            return

        disconnect = update.last_disconnect
        status = disconnect.status_code if disconnect is not None else None
        error = disconnect.error if disconnect is not None else None
        logger.warning("Connection closed with status {}: {!r}", status, error)

        if status == DisconnectReason.LOGGED_OUT:
            logger.error("Session logged out. Not reconnecting.")
            self._give_up()
            return

        delay = self._policy.next_delay()
        if delay is None:
            logger.error("Maximum reconnection attempts reached. Stopping.")
            self._give_up()
            return

        logger.info(
            "Reconnecting in {:.1f}s (attempt {}/{})",
            delay,
            self._policy.attempts,
            self._policy.max_attempts,
        )
        self._restart_task = asyncio.create_task(self._restart(delay), name="session-restart")

    async def _restart(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self._transport.start()
        except Exception:
            logger.exception("Error restarting session")

    def _give_up(self) -> None:
        if self._on_give_up is not None:
            self._on_give_up()
