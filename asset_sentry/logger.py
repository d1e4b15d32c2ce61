# === FILE: asset_sentry/logger.py ===
"""Logging setup for **AssetSentry** scans.

Every module logs through the one named logger (``"AssetSentry"``), either via
``logging.getLogger(LOGGER_NAME)`` or the ready instance::

    from asset_sentry.logger import logger
    logger.info("[1/5] Starting asset download...")

Console output goes to the ``sys.stdout`` current at configuration time;
the CLI reconfigures on every invocation.
A log file, when given, rotates at 5 MiB and keeps three backups.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Iterable, Union

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "AssetSentry"

#: библиотеки, которые на INFO шумят про каждый запрос
NOISY_LIBRARIES: Final[tuple[str, ...]] = ("aiohttp.access", "aiohttp.client", "asyncio")

_LevelT = Union[int, str]


def _stdout_handler(formatter: logging.Formatter) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    return handler


def _file_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path), maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    return handler


def quiet_libraries(level: _LevelT, names: Iterable[str] = NOISY_LIBRARIES) -> None:
    """Поднимает порог сторонних логгеров до WARNING, если сам сканер не в DEBUG."""
    numeric = logging.getLevelName(level) if isinstance(level, str) else level
    threshold = logging.DEBUG if numeric == logging.DEBUG else logging.WARNING
    for name in names:
        logging.getLogger(name).setLevel(threshold)


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """(Re)configure the scanner logger.

    Parameters
    ----------
    level
        Numeric or textual level (``"DEBUG"`` also unmutes aiohttp/asyncio).
    log_file
        Optional path of a rotating log file; its directory is created.
    log_format
        Format string shared by console and file output.
    replace_handlers
        *True* drops handlers from a previous call, *False* appends.
    """
    lg = logging.getLogger(LOGGER_NAME)
    lg.setLevel(level)
    if replace_handlers:
        for handler in list(lg.handlers):
            lg.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(log_format)
    lg.addHandler(_stdout_handler(formatter))
    if log_file is not None:
        lg.addHandler(_file_handler(Path(log_file), formatter))

    lg.propagate = False
    quiet_libraries(level)
    return lg


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Shortcut used by the CLI: replace handlers and return the logger."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


logger: logging.Logger = init_logging()

__all__ = ["logger", "configure", "init_logging", "quiet_libraries", "LOGGER_NAME", "DEFAULT_FORMAT"]
