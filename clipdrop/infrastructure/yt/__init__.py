from __future__ import annotations

from .ydl_cli import YtDlpCli
from .ydl_process import YdlProcessResult, YdlProcessRunner, YdlProcessSpec

__all__ = ["YtDlpCli", "YdlProcessResult", "YdlProcessRunner", "YdlProcessSpec"]
