"""Logging setup shared by the CLI and the desktop shell."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from ..services.settings import settings_dir

__all__ = ["setup_logging", "get_log_path"]

_LOG_DIR_ENV = "MARGINALIA_LOG_DIR"
_LOG_FILENAME = "marginalia.log"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_CONFIGURED = False
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    console_level: int | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Configure root logging and return the log file path.

    The rotating file handler records ``level`` and above. The console handler
    writes to stderr (stdout carries CLI output) at ``console_level``, which
    defaults to ``level``. Repeated calls are no-ops unless ``force`` is set.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(fmt=_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers: list[logging.Handler] = [file_handler]
    root_level = level

    if console:
        stream_level = level if console_level is None else console_level
        console_handler = logging.StreamHandler()
        console_handler.setLevel(stream_level)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(console_handler)
        root_level = min(root_level, stream_level)

    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_third_party(root_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get(_LOG_DIR_ENV)
    return Path(log_dir or env_override or (settings_dir() / "logs")).expanduser()


def _quiet_third_party(root_level: int) -> None:
    # Transport chatter stays at WARNING even when marginalia itself logs DEBUG.
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
