from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from uvicorn.config import LOGGING_CONFIG

_ROOT_LOGGER = "readalong"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the package namespace."""
    if not name:
        return logging.getLogger(_ROOT_LOGGER)
    if name == _ROOT_LOGGER or name.startswith(_ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


def set_debug_logging(enabled: bool) -> None:
    logging.getLogger(_ROOT_LOGGER).setLevel(logging.DEBUG if enabled else logging.INFO)


def configure_console_logging(debug: bool = False, console: Console | None = None) -> None:
    """Attach a rich handler to the package logger (idempotent)."""
    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in logger.handlers:
        if isinstance(handler, RichHandler):
            break
    else:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    set_debug_logging(debug)


def build_uvicorn_log_config(debug: bool = False) -> dict[str, Any]:
    """Return a uvicorn logging config whose handlers render through rich."""
    config = deepcopy(LOGGING_CONFIG)
    handlers = config.setdefault("handlers", {})
    for name in ("default", "access"):
        handlers[name] = {
            "()": "rich.logging.RichHandler",
            "show_path": False,
            "markup": False,
        }
    level = "DEBUG" if debug else "INFO"
    loggers = config.setdefault("loggers", {})
    for logger_config in loggers.values():
        if isinstance(logger_config, dict) and "level" in logger_config:
            logger_config["level"] = level
    loggers[_ROOT_LOGGER] = {"handlers": ["default"], "level": level, "propagate": False}
    return config


__all__ = [
    "get_logger",
    "set_debug_logging",
    "configure_console_logging",
    "build_uvicorn_log_config",
]
