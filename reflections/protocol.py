"""
Protocol definitions for the storage collaborators.

- DocumentStoreProtocol: records + profiles + live queries
  (SQLite locally; any document database with the same operations)
- ObjectStorageProtocol: blob upload and download URLs
  (filesystem locally)
"""

from typing import Any, Optional, Protocol, runtime_checkable

from .document_store import ProfileListener, RecordListener, Subscription
from .types import Reflection, UserProfile


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """Storage for the ``reflections`` and ``users`` collections."""

    def create_reflection(
        self,
        owner: str,
        doc: dict[str, Any],
        *,
        created_at: Optional[str] = None,
    ) -> Reflection: ...

    def merge_reflection(self, id: str, fields: dict[str, Any]) -> bool: ...

    def delete_reflection(self, id: str) -> bool: ...

    def get_reflection(self, id: str) -> Optional[Reflection]: ...

    def list_reflections(
        self,
        owner: str,
        *,
        since: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Reflection]: ...

    def count_reflections(self, owner: str) -> int: ...

    def get_profile(self, uid: str) -> Optional[UserProfile]: ...

    def merge_profile(self, uid: str, fields: dict[str, Any]) -> UserProfile: ...

    def subscribe_reflections(self, owner: str, listener: RecordListener) -> Subscription: ...

    def subscribe_profile(self, uid: str, listener: ProfileListener) -> Subscription: ...

    def close(self) -> None: ...


@runtime_checkable
class ObjectStorageProtocol(Protocol):
    """Blob storage addressed by path."""

    def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Store bytes at path; return the download URL."""
        ...

    def download_url(self, path: str) -> str: ...
