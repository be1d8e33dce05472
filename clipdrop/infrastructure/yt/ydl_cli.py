from __future__ import annotations

from pathlib import Path

from loguru import logger

from clipdrop.domain.errors import FetchError
from .ydl_process import YdlProcessResult, YdlProcessRunner, YdlProcessSpec


class YtDlpCli:
    """
    The two yt-dlp invocations the fetcher needs, plus an availability probe.
    Non-zero exit is always an error; stderr policy is left to the caller.
    """

    def __init__(self, *, executable: str = "yt-dlp") -> None:
        self._executable = executable
        self._available = False

    async def _run(self, *args: str) -> YdlProcessResult:
        runner = YdlProcessRunner(YdlProcessSpec(executable=self._executable, args=args))
        return await runner.run()

    async def is_available(self) -> bool:
        if self._available:
            return True
        try:
            result = await self._run("--version")
        except FetchError:
            return False
        self._available = result.returncode == 0
        if self._available:
            logger.info("{} version {}", self._executable, result.stdout.strip())
        return self._available

    async def print_title(self, url: str) -> YdlProcessResult:
        result = await self._run("--print", "title", "--no-warnings", url)
        if result.returncode != 0:
            raise FetchError(f"yt-dlp exited with code {result.returncode}: {result.stderr.strip()}")
        return result

    async def download(self, url: str, out_path: Path) -> None:
        result = await self._run("-o", str(out_path), "--no-progress", url)
        if result.returncode != 0:
            logger.error("yt-dlp failed: {}", result.stderr.strip())
            raise FetchError(f"yt-dlp exited with code {result.returncode}: {result.stderr.strip()}")
