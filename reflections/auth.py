"""
Local email/password authentication.

Accounts live in ``<store>/auth.db`` (separate from the document store so
that the two persisted collections stay the only user-visible data). The
signed-in session is remembered in ``<store>/session.json`` so that
successive CLI invocations act as the same user.

Auth-state listeners are called with the new AuthUser (or None) on every
sign-in and sign-out.
"""

import hashlib
import json
import logging
import os
import re
import secrets
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import AuthError
from .types import utc_now

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class AuthUser:
    """Stable user id plus email."""
    uid: str
    email: str


AuthListener = Callable[[Optional[AuthUser]], None]


def _hash_password(password: str, salt: bytes) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS).hex()


class LocalAuth:
    """SQLite-backed accounts with a file-persisted session."""

    def __init__(self, store_path: Path):
        self._dir = Path(store_path)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._session_path = self._dir / "session.json"
        self._lock = threading.Lock()
        self._listeners: list[AuthListener] = []
        self._conn = sqlite3.connect(str(self._dir / "auth.db"), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                uid TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                salt TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.commit()
        self._current = self._load_session()

    # -------------------------------------------------------------------------
    # Session file
    # -------------------------------------------------------------------------

    def _load_session(self) -> Optional[AuthUser]:
        if not self._session_path.exists():
            return None
        try:
            data = json.loads(self._session_path.read_text(encoding="utf-8"))
            uid, email = data["uid"], data["email"]
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Ignoring unreadable session file: %s", e)
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT uid FROM accounts WHERE uid = ?", (uid,)
            ).fetchone()
        return AuthUser(uid=uid, email=email) if row else None

    def _save_session(self, user: Optional[AuthUser]) -> None:
        if user is None:
            self._session_path.unlink(missing_ok=True)
            return
        fd = os.open(self._session_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"uid": user.uid, "email": user.email}, f)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    def require_user(self) -> AuthUser:
        """The signed-in user, or AuthError."""
        if self._current is None:
            raise AuthError("Not signed in. Run 'reflections login' first.")
        return self._current

    def sign_up(self, email: str, password: str) -> AuthUser:
        """Create an account and sign in as it."""
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise AuthError(f"Invalid email address: {email}")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        salt = secrets.token_bytes(16)
        user = AuthUser(uid=uuid.uuid4().hex, email=email)
        try:
            with self._lock:
                self._conn.execute("""
                    INSERT INTO accounts (uid, email, password_hash, salt, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (user.uid, email, _hash_password(password, salt), salt.hex(), utc_now()))
                self._conn.commit()
        except sqlite3.IntegrityError:
            raise AuthError(f"An account already exists for {email}") from None
        logger.info("Account created for %s", email)
        self._set_current(user)
        return user

    def sign_in(self, email: str, password: str) -> AuthUser:
        email = email.strip().lower()
        with self._lock:
            row = self._conn.execute(
                "SELECT uid, password_hash, salt FROM accounts WHERE email = ?", (email,)
            ).fetchone()
        if row is None or not secrets.compare_digest(
            _hash_password(password, bytes.fromhex(row["salt"])), row["password_hash"]
        ):
            raise AuthError("Invalid email or password")
        user = AuthUser(uid=row["uid"], email=email)
        self._set_current(user)
        return user

    def sign_out(self) -> None:
        self._set_current(None)

    def _set_current(self, user: Optional[AuthUser]) -> None:
        self._current = user
        self._save_session(user)
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception as e:
                logger.warning("Auth listener failed: %s", e)

    def on_auth_state_changed(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener; it is called now with the current user.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)
        listener(self._current)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
