from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from .di import AsyncStartStop, Container
from .di import build_graph as build_di_graph
from .infrastructure.storage import StorageError, VideoStorage
from .infrastructure.transport import SessionTransport


class LifecycleError(RuntimeError):
    pass


@dataclass(slots=True)
class AppLifecycle:
    container: Container
    transport: SessionTransport | None = None
    on_give_up: Callable[[], None] | None = None
    _started: bool = field(default=False, init=False)
    _start_order: list[str] = field(default_factory=list, init=False)

    async def startup(self) -> None:
        if self._started:
            raise LifecycleError("startup() called twice")

        logger.info("startup: begin")

        # DI graph must be built during startup (crash here if anything is wrong)
        build_di_graph(self.container, transport=self.transport, on_give_up=self.on_give_up)
        await self._preflight()

        await self._start_components()
        self._started = True
        logger.info("startup: done")

    async def shutdown(self) -> None:
        # a failed startup still leaves the components it did start in _start_order
        if not self._started and not self._start_order:
            logger.info("shutdown: skipped (not started)")
            return

        logger.info("shutdown: begin")
        await self._stop_components()
        self._started = False
        logger.info("shutdown: done")

    async def _preflight(self) -> None:
        storage: VideoStorage = self.container.get("storage")
        try:
            storage.ensure_directories()
        except StorageError as exc:
            raise LifecycleError(str(exc)) from exc

    async def _start_components(self) -> None:
        for name, component in self.container.all_components():
            if isinstance(component, AsyncStartStop):
                logger.info("component.start: {}", name)
                # registered first: a half-started component still gets stop()
                self._start_order.append(name)
                try:
                    await component.start()
                except Exception as exc:
                    raise LifecycleError(f"Component failed to start: {name}") from exc

    async def _stop_components(self) -> None:
        for name in reversed(self._start_order):
            component: Any = self.container.get(name)
            if isinstance(component, AsyncStartStop):
                logger.info("component.stop: {}", name)
                try:
                    await component.stop()
                except Exception:
                    logger.exception("component.stop failed: {}", name)

        await asyncio.sleep(0)
        self._start_order.clear()
