from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from clipdrop.domain.errors import FetchError


@dataclass(frozen=True)
class YdlProcessSpec:
    """
    Immutable spec for running yt-dlp as subprocess.
    Arguments are passed as a vector, never through a shell.
    """
    executable: str
    args: Sequence[str]


@dataclass(frozen=True)
class YdlProcessResult:
    returncode: int
    stdout: str
    stderr: str


class YdlProcessRunner:
    """
    Runs yt-dlp as an asyncio subprocess and allows controlled termination.
    """

    def __init__(self, spec: YdlProcessSpec) -> None:
        self._spec = spec
        self._process: asyncio.subprocess.Process | None = None

    async def start(self) -> None:
        if self._process is not None:
            raise RuntimeError("yt-dlp process already started")

        logger.debug("Starting yt-dlp subprocess: {}", list(self._spec.args))
        try:
            self._process = await asyncio.create_subprocess_exec(
                self._spec.executable,
                *self._spec.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise FetchError(f"Cannot run {self._spec.executable}: {exc}") from exc

    async def wait(self) -> YdlProcessResult:
        if self._process is None:
            raise RuntimeError("yt-dlp process not started")

        stdout, stderr = await self._process.communicate()
        return YdlProcessResult(
            returncode=self._process.returncode if self._process.returncode is not None else -1,
            stdout=stdout.decode(errors="ignore"),
            stderr=stderr.decode(errors="ignore"),
        )

    async def run(self) -> YdlProcessResult:
        await self.start()
        try:
            return await self.wait()
        except asyncio.CancelledError:
            await self.terminate()
            raise

    async def terminate(self, timeout: float = 5.0) -> None:
        if self._process is None:
            return

        if self._process.returncode is not None:
            return

        logger.info("Terminating yt-dlp subprocess")
        self._process.terminate()

        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("yt-dlp did not terminate in time, killing")
            self._process.kill()
            await self._process.wait()
