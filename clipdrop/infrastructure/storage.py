from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path

from loguru import logger


_UNSAFE_FILENAME_RX = re.compile(r'[/\\:*?"<>|]')


class StorageError(RuntimeError):
    pass


def file_name_from_title(title: str) -> str:
    return f"{_UNSAFE_FILENAME_RX.sub('_', title)}.mp4"


class VideoStorage:
    """
    Owns the videos directory: title -> path mapping and file removal.
    """

    def __init__(self, *, videos_dir: Path, auth_dir: Path) -> None:
        self._videos_dir = videos_dir
        self._auth_dir = auth_dir

    @property
    def videos_dir(self) -> Path:
        return self._videos_dir

    @property
    def auth_dir(self) -> Path:
        return self._auth_dir

    def ensure_directories(self) -> None:
        for path in (self._videos_dir, self._auth_dir):
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Cannot create directory: {path}") from exc

    def path_from_title(self, title: str) -> Path:
        return self._videos_dir / file_name_from_title(title)

    async def delete_file(self, path: Path, *, delay: float = 0, reason: str = "") -> bool:
        """
        Remove `path` after `delay` seconds.
        Returns True when the file is gone (including "was never there"),
        False when the OS refused to delete it.
        """
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.error("{} error deleting file {}: {}", reason, path, exc)
            return False
        logger.info("{} deleted {}", reason, path)
        return True

    def delete_older_than(self, max_age_sec: float, *, now: float | None = None) -> list[Path]:
        if not self._videos_dir.exists():
            return []
        cutoff = (time.time() if now is None else now) - max_age_sec
        removed: list[Path] = []
        for path in self._videos_dir.iterdir():
            try:
                if not path.is_file() or path.stat().st_mtime >= cutoff:
                    continue
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error("error deleting old file {}: {}", path, exc)
                continue
            logger.info("deleted old file: {}", path.name)
            removed.append(path)
        return removed
