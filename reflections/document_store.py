"""
Document store using SQLite.

Holds the two persisted collections:
- ``reflections``: one row per record, keyed by a generated id, with owner
- ``users``: one row per account, keyed by user id

Record and profile bodies are JSON documents. Writes merge top-level fields
into the stored document rather than replacing it.

The store also provides live queries: listeners subscribed to an owner's
record set (or a user's profile) receive the full current snapshot once on
subscribe and again after every write that touches it. Delivery is
synchronous, on the writing thread, after the write has committed.
"""

import json
import logging
import sqlite3
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import StoreClosedError
from .types import Reflection, UserProfile, utc_now

logger = logging.getLogger(__name__)

RecordListener = Callable[[list[Reflection]], None]
ProfileListener = Callable[[UserProfile], None]

# Record columns that never change after creation
IMMUTABLE_FIELDS = frozenset({"id", "owner", "created_at", "source_url"})


class Subscription:
    """Handle returned by subscribe_*; call unsubscribe() to stop delivery."""

    def __init__(self, remove: Callable[[], None]):
        self._remove = remove
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._remove()


class DocumentStore:
    """
    SQLite-backed store for reflection records and user profiles.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = store_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._listeners: dict[tuple[str, str], list] = defaultdict(list)
        self._listeners_lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS reflections (
                id TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                doc_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_reflections_owner_created
            ON reflections(owner, created_at)
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                uid TEXT PRIMARY KEY,
                doc_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    @contextmanager
    def _connection(self):
        """Hold the lock and yield the open connection."""
        with self._lock:
            if self._conn is None:
                raise StoreClosedError(f"Document store is closed: {self._db_path}")
            yield self._conn

    # -------------------------------------------------------------------------
    # Reflections: writes
    # -------------------------------------------------------------------------

    def create_reflection(
        self,
        owner: str,
        doc: dict[str, Any],
        *,
        created_at: Optional[str] = None,
    ) -> Reflection:
        """
        Insert a new record and return it with its generated id.

        Args:
            owner: User id of the owner
            doc: Record body (see Reflection.to_doc)
            created_at: Override the store timestamp (imports, tests)
        """
        rec_id = uuid.uuid4().hex
        now = utc_now()
        created = created_at or now
        body = {k: v for k, v in doc.items() if k not in IMMUTABLE_FIELDS}
        body["source_url"] = doc.get("source_url")
        with self._connection() as conn:
            conn.execute("""
                INSERT INTO reflections (id, owner, doc_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (rec_id, owner, json.dumps(body, ensure_ascii=False), created, now))
            conn.commit()
        self._notify_reflections(owner)
        return Reflection.from_doc(rec_id, owner, created, now, body)

    def merge_reflection(self, id: str, fields: dict[str, Any]) -> bool:
        """
        Merge top-level fields into an existing record.

        Immutable fields (owner, created_at, source_url) are ignored.
        No concurrency check: the last write wins.

        Returns:
            True if the record existed and was updated
        """
        fields = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}
        with self._connection() as conn:
            row = conn.execute(
                "SELECT owner, doc_json FROM reflections WHERE id = ?", (id,)
            ).fetchone()
            if row is None:
                return False
            owner = row["owner"]
            body = json.loads(row["doc_json"])
            body.update(fields)
            conn.execute("""
                UPDATE reflections SET doc_json = ?, updated_at = ?
                WHERE id = ?
            """, (json.dumps(body, ensure_ascii=False), utc_now(), id))
            conn.commit()
        self._notify_reflections(owner)
        return True

    def delete_reflection(self, id: str) -> bool:
        """Hard-delete a record. Returns True if it existed."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT owner FROM reflections WHERE id = ?", (id,)
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM reflections WHERE id = ?", (id,))
            conn.commit()
        self._notify_reflections(row["owner"])
        return True

    # -------------------------------------------------------------------------
    # Reflections: reads
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_reflection(row: sqlite3.Row) -> Reflection:
        return Reflection.from_doc(
            row["id"], row["owner"], row["created_at"], row["updated_at"],
            json.loads(row["doc_json"]),
        )

    def get_reflection(self, id: str) -> Optional[Reflection]:
        """Get a record by id, or None."""
        with self._connection() as conn:
            row = conn.execute("""
                SELECT id, owner, doc_json, created_at, updated_at
                FROM reflections WHERE id = ?
            """, (id,)).fetchone()
        return self._row_to_reflection(row) if row else None

    def list_reflections(
        self,
        owner: str,
        *,
        since: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Reflection]:
        """
        List an owner's records, newest first.

        Args:
            owner: User id
            since: Only records created at or after this UTC timestamp
            limit: Maximum number to return (None for all)
        """
        sql = """
            SELECT id, owner, doc_json, created_at, updated_at
            FROM reflections WHERE owner = ?
        """
        params: list[Any] = [owner]
        if since:
            sql += " AND created_at >= ?"
            params.append(since)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_reflection(r) for r in rows]

    def count_reflections(self, owner: str) -> int:
        """Aggregate count of an owner's records."""
        with self._connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM reflections WHERE owner = ?", (owner,)
            ).fetchone()[0]

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_profile(self, uid: str) -> Optional[UserProfile]:
        """Get a user profile, or None if it was never written."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT doc_json FROM users WHERE uid = ?", (uid,)
            ).fetchone()
        if row is None:
            return None
        return UserProfile.from_doc(uid, json.loads(row["doc_json"]))

    def merge_profile(self, uid: str, fields: dict[str, Any]) -> UserProfile:
        """
        Merge top-level fields into a profile, creating it if needed.

        A field set to None is stored as null (used to clear flags).
        """
        now = utc_now()
        with self._connection() as conn:
            row = conn.execute(
                "SELECT doc_json FROM users WHERE uid = ?", (uid,)
            ).fetchone()
            body = json.loads(row["doc_json"]) if row else {}
            body.update(fields)
            body_json = json.dumps(body, ensure_ascii=False)
            if row is None:
                conn.execute("""
                    INSERT INTO users (uid, doc_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (uid, body_json, now, now))
            else:
                conn.execute("""
                    UPDATE users SET doc_json = ?, updated_at = ? WHERE uid = ?
                """, (body_json, now, uid))
            conn.commit()
        profile = UserProfile.from_doc(uid, body)
        self._notify_profile(uid, profile)
        return profile

    # -------------------------------------------------------------------------
    # Live queries
    # -------------------------------------------------------------------------

    def subscribe_reflections(self, owner: str, listener: RecordListener) -> Subscription:
        """
        Subscribe to an owner's full record set (newest first).

        The listener is called immediately with the current set, then after
        every create, merge or delete of one of the owner's records.
        """
        key = ("reflections", owner)
        with self._listeners_lock:
            self._listeners[key].append(listener)
        listener(self.list_reflections(owner))
        return Subscription(lambda: self._remove_listener(key, listener))

    def subscribe_profile(self, uid: str, listener: ProfileListener) -> Subscription:
        """
        Subscribe to a user's profile.

        The listener is called immediately if the profile exists, then after
        every merge.
        """
        key = ("users", uid)
        with self._listeners_lock:
            self._listeners[key].append(listener)
        profile = self.get_profile(uid)
        if profile is not None:
            listener(profile)
        return Subscription(lambda: self._remove_listener(key, listener))

    def _remove_listener(self, key: tuple[str, str], listener) -> None:
        with self._listeners_lock:
            try:
                self._listeners[key].remove(listener)
            except ValueError:
                pass

    def _snapshot_listeners(self, key: tuple[str, str]) -> list:
        with self._listeners_lock:
            return list(self._listeners.get(key, ()))

    def _notify_reflections(self, owner: str) -> None:
        listeners = self._snapshot_listeners(("reflections", owner))
        if not listeners:
            return
        snapshot = self.list_reflections(owner)
        for listener in listeners:
            try:
                listener(list(snapshot))
            except Exception as e:
                logger.warning("Record listener failed for %s: %s", owner, e)

    def _notify_profile(self, uid: str, profile: UserProfile) -> None:
        for listener in self._snapshot_listeners(("users", uid)):
            try:
                listener(profile)
            except Exception as e:
                logger.warning("Profile listener failed for %s: %s", uid, e)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection once in-progress calls finish."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
