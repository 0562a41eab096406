"""
Provider interfaces.

Structural protocols (typing.Protocol) for the external services the
pipeline talks to, plus the name-based registry the config resolves through.
"""

import base64
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


# -----------------------------------------------------------------------------
# Blob Fetching
# -----------------------------------------------------------------------------

@dataclass
class ImageBlob:
    """
    Fetched image bytes ready to submit to a generative model.

    Attributes:
        uri: Original URI that was fetched
        data: Raw bytes
        mime_type: MIME type (defaults to image/png, the capture format)
    """
    uri: str
    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        """Base64 text encoding, for APIs that take images inline as strings."""
        return base64.b64encode(self.data).decode("ascii")


@runtime_checkable
class BlobProvider(Protocol):
    """
    Fetches image bytes from a URI.

    Implementations handle specific URI schemes (file://, https://).
    """

    def supports(self, uri: str) -> bool:
        """Check if this provider can handle the given URI."""
        ...

    def fetch(self, uri: str) -> ImageBlob:
        """
        Fetch the blob at the URI.

        Raises:
            IOError: If the blob cannot be fetched
            ValueError: If the URI is not supported
        """
        ...


# -----------------------------------------------------------------------------
# Generative Content
# -----------------------------------------------------------------------------

@runtime_checkable
class GenerationProvider(Protocol):
    """
    Sends a prompt (optionally with one image) to a generative model.

    Example implementation:
        class OpenAIGeneration:
            def generate(self, prompt, *, system=None, image=None):
                response = self._client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                )
                return response.choices[0].message.content
    """

    def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        image: ImageBlob | None = None,
    ) -> str | None:
        """
        Generate text.

        Args:
            prompt: User prompt
            system: Optional system instruction
            image: Optional image to send alongside the prompt

        Returns:
            Generated text, or None for providers without a model
            (e.g. passthrough). Network and API errors propagate.
        """
        ...


# -----------------------------------------------------------------------------
# Delivery
# -----------------------------------------------------------------------------

@runtime_checkable
class EmailSender(Protocol):
    """Delivers one HTML email; returns the provider's delivery id."""

    def send(self, *, sender: str, to: str, subject: str, html: str) -> str:
        ...


@runtime_checkable
class VideoSearch(Protocol):
    """Finds the top video for a keyword, or None when nothing matches."""

    def search(self, keyword: str) -> dict | None:
        """Return ``{"title", "thumbnail", "url"}`` for the best match."""
        ...


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

GENERATION = "generation"
BLOB = "blob"


class ProviderRegistry:
    """
    Provider classes by kind and name.

    The store config names a provider (``[generation] name = "gemini"``)
    and its params; the registry turns that into an instance. Concrete
    modules register their classes when imported, and the registry imports
    them on first lookup.

    Example:
        provider = get_registry().create_generation("gemini", {"model": "gemini-2.5-flash"})
    """

    def __init__(self):
        self._classes: dict[str, dict[str, type]] = {GENERATION: {}, BLOB: {}}
        self._loaded = False

    def _load_builtin(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        from . import documents  # noqa: F401
        from . import llm  # noqa: F401

    def register_generation(self, name: str, provider_class: type) -> None:
        self._classes[GENERATION][name] = provider_class

    def register_blob(self, name: str, provider_class: type) -> None:
        self._classes[BLOB][name] = provider_class

    def _create(self, kind: str, name: str, params: dict | None):
        """
        Raises:
            ValueError: No provider registered under that name
            RuntimeError: The class could not be constructed (often a missing SDK)
        """
        self._load_builtin()
        classes = self._classes[kind]
        if name not in classes:
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {', '.join(classes) or 'none'}."
            )
        try:
            return classes[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}. Install its optional dependency."
            ) from e
        except Exception as e:
            raise RuntimeError(f"Failed to create {kind} provider '{name}': {e}") from e

    def create_generation(self, name: str, params: dict | None = None) -> GenerationProvider:
        return self._create(GENERATION, name, params)

    def create_blob(self, name: str, params: dict | None = None) -> BlobProvider:
        return self._create(BLOB, name, params)

    def list_generation_providers(self) -> list[str]:
        self._load_builtin()
        return list(self._classes[GENERATION])

    def list_blob_providers(self) -> list[str]:
        self._load_builtin()
        return list(self._classes[BLOB])


_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """The process-wide registry."""
    return _registry
