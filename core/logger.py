# core/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_LOG_FILE = "/data/outlet_monitor.log"

_configured = False


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _level_from_env() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def build_handlers(level: int) -> List[logging.Handler]:
    """
    Handlers selected by LOG_TO_STDOUT / LOG_TO_FILE. A log file that cannot be
    opened is reported on stderr and left out; the monitor keeps running.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = []

    if _env_flag("LOG_TO_STDOUT"):
        handlers.append(logging.StreamHandler(sys.stdout))

    if _env_flag("LOG_TO_FILE"):
        path = os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    path,
                    maxBytes=int(os.getenv("LOG_MAX_BYTES", str(2 * 1024 * 1024))),
                    backupCount=int(os.getenv("LOG_BACKUPS", "3")),
                )
            )
        except OSError as e:
            print(f"outlet-monitor: file logging disabled ({path}): {e}", file=sys.stderr)

    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
    return handlers


def setup_logging():
    global _configured
    if _configured:
        return
    _configured = True

    level = _level_from_env()
    root = logging.getLogger()
    root.setLevel(level)

    # An embedding app (or pytest) that already set up handlers keeps them
    if root.handlers:
        return
    for h in build_handlers(level):
        root.addHandler(h)


def get_logger(name: str | None = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
