from __future__ import annotations

import asyncio
import signal
import sys
from types import FrameType
from typing import Callable

import uvloop
from loguru import logger

from .config import SettingsError, get_settings
from .constants import APP_NAME
from .di import Container
from .lifecycle import AppLifecycle, LifecycleError
from .logging_setup import setup_logging


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: Callable[[], None]) -> None:
    def _handler(signum: int, _frame: FrameType | None) -> None:
        logger.info("signal received: {}", signum)
        stop()

    for s in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(s, stop)
        except NotImplementedError:
            # Fallback for platforms where add_signal_handler is not supported
            signal.signal(s, _handler)


async def amain() -> None:
    settings = get_settings()
    setup_logging(level=settings.log_level)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _stop() -> None:
        stop_event.set()

    _install_signal_handlers(loop, _stop)

    container = Container.build(settings)
    lifecycle = AppLifecycle(container=container, on_give_up=_stop)

    logger.info("Starting {} bot…", APP_NAME)
    try:
        await lifecycle.startup()
        logger.info("Videos directory: {}", settings.videos_dir)
        logger.info("Auth info directory: {}", settings.auth_dir)
        logger.info(
            "Rate limit: {} requests per {:g} seconds",
            settings.rate_limit_max_requests,
            settings.rate_limit_window_sec,
        )
        await stop_event.wait()
        logger.info("stop requested; exiting without draining downloads")
    finally:
        await lifecycle.shutdown()


def main() -> None:
    uvloop.install()
    try:
        asyncio.run(amain())
    except (SettingsError, LifecycleError) as exc:
        logger.critical("Failed to initialize bot: {}", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
