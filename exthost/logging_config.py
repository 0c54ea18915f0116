"""Logging for the extension host process: rotating file, optional console.

Failures that belong to one extension are logged under ``exthost.ext.<name>``
so a single extension's trouble can be filtered out of the host log.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Any

EXTENSION_LOGGER_PREFIX = "exthost.ext"

# Chatty at INFO (one line per request or per file change); raised to WARNING unless DEBUG.
_QUIET_LOGGERS = ("httpx", "openai", "watchfiles")


def extension_logger(name: str) -> logging.Logger:
    """Logger for everything the host reports about one extension."""
    return logging.getLogger(f"{EXTENSION_LOGGER_PREFIX}.{name}")


def _handlers(project_root: Path, cfg: dict[str, Any]) -> list[logging.Handler]:
    log_path = project_root / cfg.get("file", "sandbox/logs/exthost.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=int(cfg.get("max_bytes", 10 * 1024 * 1024)),
            backupCount=int(cfg.get("backup_count", 3)),
            encoding="utf-8",
        )
    ]
    if cfg.get("log_to_console", False):
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logging(project_root: Path, settings: dict[str, Any]) -> None:
    """Replace the root logger's handlers according to settings["logging"]."""
    cfg = settings.get("logging", {})
    level = logging.getLevelName(str(cfg.get("level", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()
    for h in _handlers(project_root, cfg):
        h.setLevel(level)
        h.setFormatter(formatter)
        root.addHandler(h)
    quiet_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
