"""Logging utilities for detection sessions."""

from __future__ import annotations

import atexit
import importlib
import importlib.util
import logging
import logging.handlers
from pathlib import Path
import queue
from typing import Any

LOGGER_NAME = "zonewatch"


def _rich_available() -> bool:
    return importlib.util.find_spec("rich") is not None


if _rich_available():
    rich_logging = importlib.import_module("rich.logging")
    rich_console = importlib.import_module("rich.console")
    rich_text = importlib.import_module("rich.text")
    RichHandler = rich_logging.RichHandler
    Console = rich_console.Console
    Text = rich_text.Text
    console = Console(stderr=True)
else:
    RichHandler = None
    Console = None
    Text = None
    console = None


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if RichHandler is not None:
        if not any(isinstance(h, RichHandler) for h in logger.handlers):
            handler = RichHandler(rich_tracebacks=True, console=console)
            formatter = logging.Formatter("%(message)s", datefmt="[%X]")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
    else:
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    logger.propagate = False
    return logger


logger = setup_logging()

_queue_listener: logging.handlers.QueueListener | None = None
_queue_handlers: list[logging.Handler] = []
_file_log_path: Path | None = None
_atexit_registered = False


def set_level(level_name: str) -> int:
    """Set the package logger level from a name such as ``"DEBUG"``."""

    level = logging.getLevelName(str(level_name).upper())
    if not isinstance(level, int):
        logger.warning("Unknown log level %r; keeping %s", level_name, logging.getLevelName(logger.level))
        return logger.level
    logger.setLevel(level)
    return level


def _shutdown_file_logging() -> None:
    global _queue_listener

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


def _remove_queue_handlers() -> None:
    for handler in _queue_handlers:
        if handler in logger.handlers:
            logger.removeHandler(handler)
    _queue_handlers.clear()


def enable_file_logging(log_path: Path) -> None:
    """Enable background file logging to the supplied log path."""

    global _queue_listener, _file_log_path, _atexit_registered

    log_path = Path(log_path).expanduser()
    if _file_log_path == log_path and _queue_listener is not None:
        return

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None

    _remove_queue_handlers()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    file_handler.setFormatter(formatter)

    log_queue: queue.SimpleQueue[logging.LogRecord] = queue.SimpleQueue()
    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(logging.DEBUG)

    logger.addHandler(queue_handler)
    _queue_handlers.append(queue_handler)

    _queue_listener = logging.handlers.QueueListener(
        log_queue,
        file_handler,
        respect_handler_level=True,
    )
    _queue_listener.start()

    _file_log_path = log_path

    if not _atexit_registered:
        atexit.register(_shutdown_file_logging)
        _atexit_registered = True


def disable_file_logging() -> None:
    """Stop background file logging if it is running."""

    global _file_log_path

    _shutdown_file_logging()
    _remove_queue_handlers()
    _file_log_path = None


def configure_from_config(config: dict[str, Any]) -> None:
    """Apply the ``logging`` section of a loaded configuration."""

    logging_cfg = config.get("logging") or {}
    set_level(str(logging_cfg.get("level", "INFO")))
    log_file = logging_cfg.get("file")
    if log_file:
        enable_file_logging(Path(str(log_file)))


def _format_text(message: str, style: str) -> Any:
    if Text is None:
        return message
    return Text(message, style=style)


def log_error(message: str) -> None:
    logger.error(_format_text(message, style="bold red"))


def log_info(message: str, style: str = "bold white") -> None:
    logger.info(_format_text(message, style=style))


def log_warning(message: str) -> None:
    logger.warning(_format_text(message, style="bold yellow"))
