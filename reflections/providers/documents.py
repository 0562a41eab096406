"""
Blob providers and document text extraction.

Enrichment needs the bytes behind a record's ``content`` URL: file:// for
the local object storage, http(s):// for anything hosted elsewhere.
``extract_document_text`` turns an uploaded resume into plain text.
"""

import ipaddress
import logging
import socket
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlparse

from ..errors import ValidationError
from .base import BlobProvider, ImageBlob, get_registry

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 20_000_000

# Captures are PNG; manual uploads may be any of these
IMAGE_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

# Hostnames refused without resolving (cloud metadata endpoints)
_BLOCKED_HOSTS = frozenset({"metadata.google.internal"})


class FileBlobProvider:
    """Reads blobs addressed by file:// URI or absolute path."""

    def __init__(self, max_size: int | None = None):
        self.max_size = max_size or DEFAULT_MAX_BYTES

    def supports(self, uri: str) -> bool:
        return uri.startswith(("file://", "/"))

    @staticmethod
    def _to_path(uri: str) -> Path:
        if uri.startswith("file://"):
            return Path(unquote(urlparse(uri).path))
        return Path(uri)

    def fetch(self, uri: str) -> ImageBlob:
        path = self._to_path(uri).resolve()
        if not path.exists():
            raise IOError(f"File not found: {path}")
        if not path.is_file():
            raise IOError(f"Not a file: {path}")
        size = path.stat().st_size
        if size > self.max_size:
            raise IOError(f"File too large: {size:,} bytes (limit: {self.max_size:,} bytes)")
        return ImageBlob(
            uri=uri,
            data=path.read_bytes(),
            mime_type=IMAGE_TYPES.get(path.suffix.lower(), "image/png"),
        )


def _is_private_address(addr) -> bool:
    return (addr.is_private or addr.is_loopback or addr.is_link_local
            or addr.is_reserved or addr.is_unspecified or addr.is_multicast)


def targets_private_network(uri: str) -> bool:
    """
    True if the URL's host is, or resolves to, a non-public address.

    Unresolvable hosts are let through; the request itself fails later.
    """
    host = urlparse(uri).hostname
    if not host or host in _BLOCKED_HOSTS:
        return True
    try:
        return _is_private_address(ipaddress.ip_address(host))
    except ValueError:
        pass  # a name, not a literal address
    try:
        infos = socket.getaddrinfo(host, None)
    except socket.gaierror:
        return False
    return any(_is_private_address(ipaddress.ip_address(info[4][0])) for info in infos)


class HttpBlobProvider:
    """
    Downloads blobs over HTTP(S), streaming with a size cap.

    Args:
        timeout: Read timeout in seconds
        max_size: Largest accepted body in bytes
        allow_private: Permit loopback/private hosts (local storage emulators)
    """

    def __init__(self, timeout: int = 30, max_size: int = DEFAULT_MAX_BYTES, allow_private: bool = False):
        self.timeout = timeout
        self.max_size = max_size
        self.allow_private = allow_private

    def supports(self, uri: str) -> bool:
        return uri.startswith(("http://", "https://"))

    def fetch(self, uri: str) -> ImageBlob:
        import requests

        from .. import __version__

        if not self.allow_private and targets_private_network(uri):
            raise IOError(f"Blocked request to private/internal address: {uri}")

        try:
            response = requests.get(
                uri,
                stream=True,
                timeout=(10, self.timeout),
                headers={"User-Agent": f"reflections/{__version__}"},
            )
            with response:
                response.raise_for_status()
                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > self.max_size:
                    raise IOError(f"Content too large: {declared} bytes")

                body = bytearray()
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    body.extend(chunk)
                    if len(body) > self.max_size:
                        raise IOError(f"Content too large: more than {self.max_size} bytes")

                mime_type = response.headers.get("content-type", "").split(";")[0].strip()
                return ImageBlob(uri=uri, data=bytes(body), mime_type=mime_type or "image/png")
        except requests.RequestException as e:
            raise IOError(f"Failed to fetch {uri}: {e}") from e


class CompositeBlobProvider:
    """
    Routes each URI to the first provider that supports it.

    The default provider: file first, then HTTP.
    """

    def __init__(self, providers: list[BlobProvider] | None = None, allow_private: bool = False):
        if providers is None:
            providers = [FileBlobProvider(), HttpBlobProvider(allow_private=allow_private)]
        self._providers = list(providers)

    def supports(self, uri: str) -> bool:
        return any(p.supports(uri) for p in self._providers)

    def fetch(self, uri: str) -> ImageBlob:
        provider = next((p for p in self._providers if p.supports(uri)), None)
        if provider is None:
            raise ValueError(f"No provider supports URI: {uri}")
        return provider.fetch(uri)

    def add_provider(self, provider: BlobProvider) -> None:
        """Add a provider ahead of the existing ones."""
        self._providers.insert(0, provider)


# -----------------------------------------------------------------------------
# Resume text extraction
# -----------------------------------------------------------------------------

def _pdf_text(path: Path) -> str:
    from pypdf import PdfReader

    pages = (page.extract_text() for page in PdfReader(path).pages)
    return "\n".join(text for text in pages if text and text.strip())


def _docx_text(path: Path) -> str:
    from docx import Document

    doc = Document(path)
    lines = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
    # Resumes often lay out skills and dates in tables
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return "\n".join(lines)


def _plain_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


_EXTRACTORS: dict[str, Callable[[Path], str]] = {
    ".pdf": _pdf_text,
    ".docx": _docx_text,
    ".txt": _plain_text,
}

RESUME_EXTENSIONS = tuple(_EXTRACTORS)


def extract_document_text(path: Path) -> str:
    """
    Extract plain text from a resume file.

    Supports .pdf (pypdf), .docx (python-docx) and .txt.

    Raises:
        ValidationError: Unsupported extension, unreadable file, or no text
    """
    path = Path(path)
    suffix = path.suffix.lower()
    extractor = _EXTRACTORS.get(suffix)
    if extractor is None:
        raise ValidationError(f"Unsupported file type: {suffix or path.name}. Upload PDF, DOCX, or TXT.")
    if not path.is_file():
        raise ValidationError(f"File not found: {path}")

    try:
        text = extractor(path).strip()
    except Exception as e:
        logger.warning("Text extraction failed for %s: %s", path.name, e)
        raise ValidationError(f"Could not read {path.name}: {e}") from e
    if not text:
        raise ValidationError(f"Could not extract text from {path.name}")
    return text


_registry = get_registry()
_registry.register_blob("file", FileBlobProvider)
_registry.register_blob("http", HttpBlobProvider)
_registry.register_blob("composite", CompositeBlobProvider)
