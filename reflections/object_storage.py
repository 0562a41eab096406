"""
Filesystem object storage.

Uploads land under ``<store>/blobs/<path>`` and are addressed by file://
URLs, which the file blob provider can fetch back for enrichment.
"""

import logging
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class LocalObjectStorage:
    """Stores blobs as files below a root directory."""

    def __init__(self, root: Path):
        self._root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Invalid storage path: {path!r}")
        return self._root.joinpath(*rel.parts)

    def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Write bytes to path (overwriting) and return its download URL."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Stored %d bytes at %s (%s)", len(data), path, content_type or "unknown")
        return target.as_uri()

    def download_url(self, path: str) -> str:
        target = self._resolve(path)
        if not target.exists():
            raise FileNotFoundError(f"No blob at {path}")
        return target.as_uri()
