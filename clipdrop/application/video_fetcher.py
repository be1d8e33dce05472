from __future__ import annotations

import random
import re
import time
from typing import Callable, Iterable, Set

from loguru import logger

from clipdrop.domain.errors import FetchError, MetadataError
from clipdrop.infrastructure.storage import VideoStorage
from clipdrop.infrastructure.url_tools import validate_url
from clipdrop.infrastructure.yt import YtDlpCli


_MARKDOWN_RX = re.compile(r"[*_\[\]`]")

# room for "_<13-digit ms>_<3 digits>.mp4" under the usual 255-byte name limit
MAX_TITLE_BYTES = 200


def sanitize_title(title: str, default: str) -> str:
    """
    Backslash-escape markdown-sensitive characters; empty falls back to `default`.
    Raw backslashes are dropped so none can dangle in front of the suffix.
    """
    escaped = _MARKDOWN_RX.sub(lambda m: "\\" + m.group(0), title.replace("\\", "").strip())
    return escaped or default


def truncate_title(title: str, max_bytes: int = MAX_TITLE_BYTES) -> str:
    """Cut an escaped title to `max_bytes` of UTF-8 without splitting a character or an escape."""
    raw = title.encode("utf-8")
    if len(raw) <= max_bytes:
        return title
    cut = raw[:max_bytes].decode("utf-8", errors="ignore")
    # sanitize_title leaves backslashes only as escapes, so a trailing one lost its target
    if cut.endswith("\\"):
        cut = cut[:-1]
    return cut.rstrip()


def append_unique_suffix(title: str, *, timestamp_ms: int, discriminator: int) -> str:
    if not title:
        raise ValueError("title must not be empty")
    return f"{title}_{timestamp_ms}_{discriminator}"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class VideoFetcher:
    """
    URL -> unique title, with the video stored at storage.path_from_title(title).

    Two yt-dlp runs: `--print title` for metadata, then the download itself.
    Titles reserved by in-flight fetches are never handed out twice.
    """

    def __init__(
        self,
        *,
        cli: YtDlpCli,
        storage: VideoStorage,
        allowed_domains: Iterable[str],
        default_title: str,
        clock_ms: Callable[[], int] = _now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._cli = cli
        self._storage = storage
        self._allowed_domains = tuple(allowed_domains)
        self._default_title = default_title
        self._clock_ms = clock_ms
        self._rng = rng or random.Random()
        self._reserved: Set[str] = set()

    async def fetch_video(self, url: str) -> str:
        if not await self._cli.is_available():
            raise FetchError("yt-dlp is not installed. Please install it to download videos.")

        validate_url(url, self._allowed_domains)

        try:
            raw_title = await self._read_title(url)
            title = truncate_title(sanitize_title(raw_title, self._default_title)) or self._default_title
            unique_title = self._reserve_title(title)
            try:
                out_path = self._storage.path_from_title(unique_title)
                logger.info("Downloading video to: {}", out_path)
                await self._cli.download(url, out_path)

                if not out_path.exists():
                    raise FetchError(f"Download failed - output file not created at {out_path}")
            finally:
                self._reserved.discard(unique_title)
            return unique_title
        except MetadataError:
            raise
        except Exception as exc:
            raise FetchError(f"Error downloading video: {exc}") from exc

    async def _read_title(self, url: str) -> str:
        try:
            result = await self._cli.print_title(url)
        except FetchError as exc:
            raise MetadataError(f"Error parsing video info: {exc}") from exc

        if result.stderr.strip():
            raise MetadataError(f"Error getting video metadata: {result.stderr.strip()}")
        title = result.stdout.strip()
        if not title:
            raise MetadataError("No output from yt-dlp")
        return title

    def _reserve_title(self, title: str) -> str:
        while True:
            candidate = append_unique_suffix(
                title,
                timestamp_ms=self._clock_ms(),
                discriminator=self._rng.randint(0, 999),
            )
            if candidate in self._reserved or self._storage.path_from_title(candidate).exists():
                continue
            self._reserved.add(candidate)
            return candidate
