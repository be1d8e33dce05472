from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Generic, Set, TypeVar

from loguru import logger


T = TypeVar("T")
Job = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class _QueueEntry(Generic[T]):
    job: Job[T]
    future: asyncio.Future[T]


class TaskQueue:
    """
    Bounded-concurrency admission control for download jobs.

    At most `max_concurrent` jobs run at once; the rest wait in FIFO order.
    A job settling (either way) is the only thing that starts the next one.
    """

    def __init__(self, *, max_concurrent: int = 2) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._max = max_concurrent
        self._active = 0
        self._pending: Deque[_QueueEntry[Any]] = deque()
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def add(self, job: Job[T]) -> T:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        entry = _QueueEntry(job=job, future=future)

        # check and increment stay in one synchronous segment
        if self._active < self._max:
            self._start(entry)
        else:
            self._pending.append(entry)
            logger.debug("job queued: active={} pending={}", self._active, len(self._pending))

        return await future

    async def start(self) -> None:
        return

    async def stop(self) -> None:
        while self._pending:
            self._pending.popleft().future.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    def _start(self, entry: _QueueEntry[Any]) -> None:
        self._active += 1
        task = asyncio.create_task(self._run(entry), name="task-queue-job")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, entry: _QueueEntry[Any]) -> None:
        try:
            result = await entry.job()
        except asyncio.CancelledError:
            if not entry.future.done():
                entry.future.cancel()
            raise
        except Exception as exc:
            # abandoned futures (caller gone) just drop the outcome
            if not entry.future.done():
                entry.future.set_exception(exc)
        else:
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._active -= 1
            self._process_next()

    def _process_next(self) -> None:
        while self._pending and self._active < self._max:
            entry = self._pending.popleft()
            if entry.future.done():
                # caller stopped waiting before the job got a slot
                continue
            self._start(entry)
