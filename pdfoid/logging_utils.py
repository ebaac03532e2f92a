"""Logging configuration helpers for the CLI, the web app and engine debug traces."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

DEBUG_KINDS = ("find", "replace_all", "replace_one")

_ENV_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def resolve_level(debug: bool = False) -> int:
    """``LOG_LEVEL`` wins when set to a known level name; otherwise DEBUG or INFO."""
    env_level = os.environ.get("LOG_LEVEL", "").strip().upper()
    if env_level in _ENV_LEVELS:
        return _ENV_LEVELS[env_level]
    return logging.DEBUG if debug else logging.INFO


def configure_logging(verbose: bool = False) -> None:
    """Console logging for command-line use; ``LOG_LEVEL`` overrides ``verbose``."""
    logging.basicConfig(level=resolve_level(verbose), format="%(levelname)s:%(name)s:%(message)s")


def configure_web_logging(
    log_path: str | Path = "logs/pdfoid_web.log",
    debug: bool = False,
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> logging.Logger:
    """Rotating file + console logging for the web app.

    ``debug`` mirrors ``EngineSettings.debug`` so the capped engine traces reach the
    log file; ``LOG_LEVEL`` still takes precedence.
    """
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    level = resolve_level(debug)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    resolved = str(path.resolve())
    file_handlers = [h for h in root_logger.handlers if isinstance(h, RotatingFileHandler)]
    console_handlers = [
        h for h in root_logger.handlers if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not any(getattr(h, "baseFilename", "") == resolved for h in file_handlers):
        file_handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handlers.append(file_handler)
        root_logger.addHandler(file_handler)
    if not console_handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handlers.append(console_handler)
        root_logger.addHandler(console_handler)
    # reconfiguring with another level applies to handlers from earlier calls too
    for handler in file_handlers + console_handlers:
        handler.setLevel(level)

    logger = logging.getLogger("pdfoid.web")
    logger.info("Web logging configured. log_path=%s level=%s", path, logging.getLevelName(level))
    return logger


class DebugLog:
    """Opt-in debug traces, capped per kind so a large document cannot flood the log."""

    def __init__(self, logger: logging.Logger, enabled: bool = False, limit: int = 20) -> None:
        self._logger = logger
        self.enabled = enabled
        self.limit = limit
        self._counts = {kind: 0 for kind in DEBUG_KINDS}

    def __call__(self, kind: str, message: str, data: Any = None) -> None:
        if not self.enabled:
            return
        count = self._counts.get(kind, 0)
        if count >= self.limit:
            return
        self._counts[kind] = count + 1
        self._logger.debug("[%s] %s %s", kind, message, data if data is not None else "")

    def reset(self) -> None:
        self._counts = {kind: 0 for kind in DEBUG_KINDS}
