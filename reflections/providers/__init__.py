"""
Provider interfaces for reflections services.

Each provider type defines a protocol that concrete implementations follow:
- Generation (enrichment, persona, radar, coaching, chat)
- Blob fetching (image bytes for enrichment)
- Email delivery and video search (weekly radar)

Concrete generation and blob providers are auto-registered when this module
is imported.
"""

from .base import (
    BlobProvider,
    EmailSender,
    GenerationProvider,
    ImageBlob,
    ProviderRegistry,
    VideoSearch,
    get_registry,
)

# Import concrete providers to trigger registration
from . import documents
from . import llm

__all__ = [
    # Protocols
    "GenerationProvider",
    "BlobProvider",
    "EmailSender",
    "VideoSearch",
    # Data types
    "ImageBlob",
    # Registry
    "ProviderRegistry",
    "get_registry",
]
