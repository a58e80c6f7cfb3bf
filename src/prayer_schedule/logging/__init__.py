from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from prayer_schedule.config.models import LoggingSettings

LOG_FORMAT = "[%(asctime)s][%(levelname)s][%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at DEBUG for day-to-day use.
_NOISY_LOGGERS = ("aiohttp", "asyncio")


def _resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def _build_file_handler(settings: LoggingSettings, level: int, formatter: logging.Formatter) -> logging.Handler:
    file_path = Path(settings.file.path.strip())
    file_path.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(file_path),
        when="midnight",
        interval=1,
        backupCount=settings.file.rotation.backup_count,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def init_logging(settings: LoggingSettings) -> None:
    """
    Initialize application logging.

    Stream output always; a daily rotated file as well when settings.file.path is set.
    Calling it again replaces the handlers installed by the previous call.
    """
    level = _resolve_level(settings.level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    if not settings.file.path.strip():
        return
    try:
        root_logger.addHandler(_build_file_handler(settings, level, formatter))
    except OSError:
        root_logger.error(
            "File logging handler failed to initialize path=%s",
            settings.file.path,
            exc_info=True,
        )


__all__ = ["init_logging"]
