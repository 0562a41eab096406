"""
Error types and error logging for reflections.

Unexpected errors are logged with full tracebacks; users see one clean line.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ValidationError(ValueError):
    """Invalid user input. Nothing was persisted."""


class AuthError(Exception):
    """Sign-up / sign-in failure, or an operation that needs a signed-in user."""


class StoreClosedError(RuntimeError):
    """The document store was used after close()."""


class GenerationError(Exception):
    """
    A foreground generative call failed (network, no output, malformed reply).

    The message is safe to show to the user; the cause is chained.
    """


class CallableError(Exception):
    """
    Error returned by a callable entry point.

    Attributes:
        code: One of "unauthenticated", "invalid-argument", "internal"
        message: Human-readable detail
    """

    CODES = ("unauthenticated", "invalid-argument", "internal")

    def __init__(self, code: str, message: str = ""):
        if code not in self.CODES:
            raise ValueError(f"Unknown callable error code: {code}")
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


ERROR_LOG_NAME = "reflections-errors.log"


def error_log_path(store_path: Optional[Path] = None) -> Path:
    """The error log for a store: --store, else REFLECTIONS_STORE_PATH, else ~/.reflections."""
    if store_path is None:
        env = os.environ.get("REFLECTIONS_STORE_PATH")
        store_path = Path(env) if env else Path.home() / ".reflections"
    return Path(store_path) / ERROR_LOG_NAME


def log_exception(exc: BaseException, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Append the exception's full traceback to the error log.

    The file is created owner-only (0600). Failure to write is ignored so
    the caller can still report the original error.

    Returns:
        Path to the error log file
    """
    path = error_log_path(store_path)
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    entry = "\n".join([
        "",
        "=" * 60,
        header,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    ])
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(entry)
    except OSError:
        pass  # Error log unwritable; the caller still reports the error
    return path
