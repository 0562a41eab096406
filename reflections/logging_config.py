"""
Logging setup for reflections.

Library chatter is muted by default; the store keeps its own rotating
operations log whatever the console verbosity.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "reflections"
OPS_LOG_NAME = "reflections-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# HTTP and SDK loggers that chatter at INFO
_LIBRARY_LOGGERS = ("httpx", "httpcore", "urllib3", "google_genai", "openai", "anthropic")


def _set_library_level(level: int) -> None:
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def configure_quiet_mode(quiet: bool = True):
    """
    Mute per-request HTTP lines, SDK chatter and library warnings.

    Args:
        quiet: If False, leave logging and warnings untouched.
    """
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    _set_library_level(logging.ERROR)


def _stderr_handler_installed(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send everything at DEBUG to stderr (``--verbose``)."""
    warnings.filterwarnings("default")
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _stderr_handler_installed(root):
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S",
        ))
        root.addHandler(console)
    logging.getLogger(APP_LOGGER).setLevel(logging.DEBUG)
    _set_library_level(logging.INFO)


def configure_ops_log(store_path) -> logging.Handler:
    """
    Attach the store's operations log to the ``reflections`` logger.

    INFO and above go to ``<store>/reflections-ops.log``, rotated at 1MB
    with 3 backups. The caller removes it with remove_ops_log().
    """
    path = Path(store_path) / OPS_LOG_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(path), maxBytes=OPS_LOG_MAX_BYTES, backupCount=OPS_LOG_BACKUPS)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S",
    ))

    app = logging.getLogger(APP_LOGGER)
    app.addHandler(handler)
    if app.level == logging.NOTSET or app.level > logging.INFO:
        app.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: logging.Handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    logging.getLogger(APP_LOGGER).removeHandler(handler)
    handler.close()
