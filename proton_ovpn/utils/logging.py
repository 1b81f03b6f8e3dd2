"""Logging utilities."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_DIR = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "proton-ovpn"
LOG_DIR.mkdir(parents=True, exist_ok=True)

ROOT_LOGGER = "proton_ovpn"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _file_handler(path: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def get_logger(name: str, log_file: Path | None = None) -> logging.Logger:
    """Return ``proton_ovpn.<name>`` with a rotating file handler attached once.

    ``log_file`` is used when it can be opened; a system path such as
    ``/var/log/...`` falls back to :data:`LOG_DIR` for unprivileged users.
    """

    logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    logger.setLevel(logging.DEBUG)
    if any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers):
        return logger
    fallback = LOG_DIR / f"{name}.log"
    try:
        handler = _file_handler(log_file or fallback)
    except OSError:
        handler = _file_handler(fallback)
        logger.addHandler(handler)
        logger.warning("Cannot write %s, logging to %s instead", log_file, fallback)
        return logger
    logger.addHandler(handler)
    return logger


def configure_console(verbose: bool = False, console: Console | None = None) -> None:
    """Mirror package log records to the terminal."""

    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=console or Console(stderr=True), show_path=False, show_time=verbose)
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.addHandler(handler)
