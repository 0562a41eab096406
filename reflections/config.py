"""
Store configuration.

Each store directory holds a ``reflections.toml``:

    [store]        version, created
    [generation]   name = "gemini" | "openai" | "anthropic" | "ollama" | "passthrough", plus params
    [document]     name = "composite" | "file" | "http", plus params
    [radar]        sender, email_api_key_env, video_api_key_env
    [pipeline]     workers, persona_debounce_seconds

API keys are never written to the file; the radar section names the
environment variables they are read from.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w


CONFIG_FILENAME = "reflections.toml"
CONFIG_VERSION = 1

DEFAULT_SENDER = "Reflections Radar <radar@reflectionsmatch.com>"

# (env var, provider) in priority order
_GENERATION_KEYS = (
    ("GEMINI_API_KEY", "gemini"),
    ("GOOGLE_API_KEY", "gemini"),
    ("OPENAI_API_KEY", "openai"),
    ("ANTHROPIC_API_KEY", "anthropic"),
)


@dataclass
class ProviderConfig:
    """A registry name plus the keyword arguments its class is built with."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_section(cls, section: dict[str, Any], default: str) -> "ProviderConfig":
        params = dict(section)
        return cls(name=params.pop("name", default), params=params)

    def to_section(self) -> dict[str, Any]:
        return {"name": self.name, **self.params}


@dataclass
class RadarConfig:
    """Delivery settings for the weekly radar."""
    sender: str = DEFAULT_SENDER
    email_api_key_env: str = "RESEND_API_KEY"
    video_api_key_env: str = "YOUTUBE_API_KEY"

    @property
    def email_api_key(self) -> str | None:
        return os.environ.get(self.email_api_key_env) or None

    @property
    def video_api_key(self) -> str | None:
        return os.environ.get(self.video_api_key_env) or None

    @classmethod
    def from_section(cls, section: dict[str, Any]) -> "RadarConfig":
        defaults = cls()
        return cls(
            sender=section.get("sender", defaults.sender),
            email_api_key_env=section.get("email_api_key_env", defaults.email_api_key_env),
            video_api_key_env=section.get("video_api_key_env", defaults.video_api_key_env),
        )

    def to_section(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "email_api_key_env": self.email_api_key_env,
            "video_api_key_env": self.video_api_key_env,
        }


@dataclass
class PipelineConfig:
    """Enrichment worker pool and persona debounce."""
    workers: int = 4
    persona_debounce_seconds: float = 2.0

    @classmethod
    def from_section(cls, section: dict[str, Any]) -> "PipelineConfig":
        """
        Raises:
            ValueError: workers below 1 or a negative debounce
        """
        defaults = cls()
        workers = int(section.get("workers", defaults.workers))
        debounce = float(section.get("persona_debounce_seconds", defaults.persona_debounce_seconds))
        if workers < 1:
            raise ValueError(f"pipeline.workers must be at least 1, got {workers}")
        if debounce < 0:
            raise ValueError(f"pipeline.persona_debounce_seconds must not be negative, got {debounce}")
        return cls(workers=workers, persona_debounce_seconds=debounce)

    def to_section(self) -> dict[str, Any]:
        return {"workers": self.workers, "persona_debounce_seconds": self.persona_debounce_seconds}


@dataclass
class StoreConfig:
    """Everything read from (or written to) one store's config file."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    generation: ProviderConfig = field(default_factory=lambda: ProviderConfig("passthrough"))
    document: ProviderConfig = field(default_factory=lambda: ProviderConfig("composite"))
    radar: RadarConfig = field(default_factory=RadarConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def db_path(self) -> Path:
        return self.path / "reflections.db"

    @property
    def blob_path(self) -> Path:
        return self.path / "blobs"

    def exists(self) -> bool:
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """
    Resolve the store directory.

    Priority: REFLECTIONS_STORE_PATH, then ~/.reflections
    (the CLI's --store option is applied before this is consulted).
    """
    env_path = os.environ.get("REFLECTIONS_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".reflections"


def detect_default_providers() -> dict[str, ProviderConfig]:
    """
    Pick providers from the environment.

    Generation uses the first provider whose API key is set (Gemini, then
    OpenAI, then Anthropic) and falls back to passthrough, with which
    enrichment never succeeds. Blob fetching is always composite.
    """
    generation = next(
        (name for var, name in _GENERATION_KEYS if os.environ.get(var)),
        "passthrough",
    )
    return {
        "generation": ProviderConfig(generation),
        "document": ProviderConfig("composite"),
    }


def create_default_config(store_path: Path) -> StoreConfig:
    providers = detect_default_providers()
    return StoreConfig(path=store_path, generation=providers["generation"], document=providers["document"])


def load_config(store_path: Path) -> StoreConfig:
    """
    Read a store's config file.

    Raises:
        FileNotFoundError: No config file in the store
        ValueError: Written by a newer version, or invalid pipeline settings
    """
    config_path = Path(store_path) / CONFIG_FILENAME
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")
    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    return StoreConfig(
        path=Path(store_path),
        version=version,
        created=store.get("created", ""),
        generation=ProviderConfig.from_section(data.get("generation", {}), "passthrough"),
        document=ProviderConfig.from_section(data.get("document", {}), "composite"),
        radar=RadarConfig.from_section(data.get("radar", {})),
        pipeline=PipelineConfig.from_section(data.get("pipeline", {})),
    )


def save_config(config: StoreConfig) -> None:
    """Write the config file, creating the store directory if needed."""
    config.path.mkdir(parents=True, exist_ok=True)
    data = {
        "store": {"version": config.version, "created": config.created},
        "generation": config.generation.to_section(),
        "document": config.document.to_section(),
        "radar": config.radar.to_section(),
        "pipeline": config.pipeline.to_section(),
    }
    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """Load the store's config, writing auto-detected defaults on first use."""
    if (Path(store_path) / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = create_default_config(Path(store_path))
    save_config(config)
    return config
