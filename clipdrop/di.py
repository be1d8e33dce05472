from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from aiogram import Bot
from loguru import logger

from .application.connection import ConnectionSupervisor
from .application.delivery_tracker import DeliveryTracker
from .application.message_router import MessageRouter
from .application.reconnect import ReconnectPolicy
from .application.video_fetcher import VideoFetcher
from .config import Settings, get_settings
from .infrastructure.rate_limiter import RateLimiter
from .infrastructure.storage import VideoStorage
from .infrastructure.sweeper import FileSweeper
from .infrastructure.task_queue import TaskQueue
from .infrastructure.transport import SessionTransport, TelegramTransport
from .infrastructure.yt import YtDlpCli


class DIError(RuntimeError):
    pass


@runtime_checkable
class AsyncStartStop(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


@dataclass(slots=True)
class Container:
    settings: Settings
    _components: dict[str, Any]

    @classmethod
    def build(cls, settings: Settings | None = None) -> "Container":
        return cls(settings=settings or get_settings(), _components={})

    def register(self, name: str, component: Any) -> None:
        if not name or not name.strip():
            raise DIError("Component name must be non-empty")
        if name in self._components:
            raise DIError(f"Component already registered: {name}")
        self._components[name] = component

    def get(self, name: str) -> Any:
        try:
            return self._components[name]
        except KeyError as exc:
            raise DIError(f"Unknown component: {name}") from exc

    def all_components(self) -> list[tuple[str, Any]]:
        return list(self._components.items())


def build_graph(
    container: Container,
    *,
    transport: SessionTransport | None = None,
    on_give_up: Callable[[], None] | None = None,
) -> None:
    """
    Build the whole dependency graph.
    Any init error must crash at startup.

    Registration order is start order: the transport goes last so every
    subscriber is in place before the first event arrives.
    """

    s = container.settings

    storage = VideoStorage(videos_dir=s.videos_dir, auth_dir=s.auth_dir)

    if transport is None:
        transport = TelegramTransport(bot=Bot(token=s.bot_token), auth_dir=s.auth_dir)

    rate_limiter = RateLimiter(max_requests=s.rate_limit_max_requests, window_sec=s.rate_limit_window_sec)
    queue = TaskQueue(max_concurrent=s.max_concurrent_downloads)

    fetcher = VideoFetcher(
        cli=YtDlpCli(executable=s.ytdlp_path),
        storage=storage,
        allowed_domains=s.allowed_domains,
        default_title=s.default_video_title,
    )
    tracker = DeliveryTracker(
        transport=transport,
        storage=storage,
        delivery_delete_delay_sec=s.delivery_delete_delay_sec,
        failsafe_delete_delay_sec=s.failsafe_delete_delay_sec,
    )
    router = MessageRouter(
        transport=transport,
        rate_limiter=rate_limiter,
        queue=queue,
        fetcher=fetcher,
        tracker=tracker,
        platform_domain=s.platform_domain,
        ignore_own_messages=s.ignore_own_messages,
    )
    sweeper = FileSweeper(
        storage=storage,
        interval_sec=s.sweep_interval_sec,
        max_age_sec=s.sweep_max_age_sec,
    )
    supervisor = ConnectionSupervisor(
        transport=transport,
        policy=ReconnectPolicy(
            base_delay=s.reconnect_base_delay_sec,
            max_delay=s.reconnect_max_delay_sec,
            max_attempts=s.reconnect_max_attempts,
        ),
        on_give_up=on_give_up,
    )

    container.register("storage", storage)
    container.register("rate_limiter", rate_limiter)
    container.register("task_queue", queue)
    container.register("video_fetcher", fetcher)
    container.register("delivery_tracker", tracker)
    container.register("message_router", router)
    container.register("file_sweeper", sweeper)
    container.register("connection_supervisor", supervisor)
    container.register("transport", transport)

    logger.debug("DI graph built: {}", [name for name, _ in container.all_components()])
