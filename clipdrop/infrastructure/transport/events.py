from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

from loguru import logger


EventHandler = Callable[[Any], Any]

MESSAGES_UPSERT = "messages.upsert"
MESSAGES_UPDATE = "messages.update"
CONNECTION_UPDATE = "connection.update"


class EventEmitter:
    """
    Named-channel publish/subscribe hub.

    Handlers run in registration order on a snapshot of the listener list, so
    a handler may unsubscribe itself (or a sibling) while an event is being
    dispatched. Coroutine handlers are scheduled as tasks; their failures are
    logged, never raised into `emit`.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task[Any]] = set()

    def on(self, event: str, handler: EventHandler) -> None:
        self._listeners[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._listeners.get(event, ())):
            try:
                result = handler(payload)
            except Exception:
                logger.exception("listener for {} failed", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("async listener failed")
