"""Root logging setup for the Capture Hub process.

The hub logs to stdout and, unless disabled in the ``logging`` config section,
to a size-rotated file. Setup runs twice during startup: once with defaults
so configuration errors are visible, then again with the loaded settings.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Union

if TYPE_CHECKING:
    from .config_manager import LoggingConfig

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 3

# aiohttp logs one access line per static asset request
DEFAULT_SUPPRESSED_LOGGERS = ("aiohttp.access",)

_configured = False


def coerce_level(level: Union[int, str]) -> int:
    """Numeric level for an int or a name such as ``"info"``."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level '{level}'")
    return value


def _console_handler() -> logging.Handler:
    return logging.StreamHandler(sys.stdout)


def _file_handler(path: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def _clear_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        with contextlib.suppress(OSError, ValueError):
            handler.close()


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    suppressed_loggers: Iterable[str] = DEFAULT_SUPPRESSED_LOGGERS,
) -> None:
    """Install the console and file handlers on the root logger.

    A second call without ``force`` only adjusts the level.
    """
    global _configured
    numeric_level = coerce_level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    if _configured and not force:
        return

    _clear_handlers(root)

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(_console_handler())
    if log_file:
        handlers.append(_file_handler(Path(log_file), max_bytes, backup_count))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if not handlers:
        # file-only logging was requested without a file: keep errors on stderr
        fallback = logging.StreamHandler(sys.stderr)
        fallback.setLevel(logging.ERROR)
        fallback.setFormatter(formatter)
        root.addHandler(fallback)

    for name in suppressed_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def apply_logging_config(config: "LoggingConfig", *, console: bool = True) -> None:
    """Rebuild handlers from the ``logging`` config section."""
    configure_logging(config.level, force=True, console=console, log_file=config.file)


__all__ = [
    "LOG_DATEFMT",
    "LOG_FORMAT",
    "apply_logging_config",
    "coerce_level",
    "configure_logging",
]
