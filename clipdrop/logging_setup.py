from __future__ import annotations

import logging
import sys

from loguru import logger


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(*, level: str) -> None:
    level = level.upper()

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level if level != "TRACE" else "DEBUG")

    # aiogram logs every polled update at INFO
    for name in ("aiogram", "asyncio"):
        logging.getLogger(name).setLevel(logging.root.level)
    logging.getLogger("aiogram.event").setLevel(logging.WARNING)

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>",
        backtrace=True,
        diagnose=False,
    )

    logger.info("Logging configured")
