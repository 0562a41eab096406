"""
Reflections

Capture screenshots, files and notes as you read; enrich them with a
generative model into summaries and tags; and reflect on them through
search, trending tags, a synthesized professional persona, weekly radar
briefings and goal coaching.

Quick Start:
    from reflections import Reflections

    rf = Reflections()  # uses ~/.reflections/
    rf.sign_in("me@example.com", "secret")
    record, milestone = rf.capture(png_bytes, note="Nice chart")
    rf.enrich_pending()
    print(rf.trending())

CLI Usage:
    reflections capture screenshot.png --note "worth remembering"
    reflections find "python"
    reflections --json radar

Environment Variables:
    REFLECTIONS_STORE_PATH   - Override default store location
    REFLECTIONS_VERBOSE      - Set to 1 for debug logging
    GEMINI_API_KEY           - Gemini generation (also OPENAI_API_KEY, ANTHROPIC_API_KEY)
    YOUTUBE_API_KEY          - Video search for the weekly radar
    RESEND_API_KEY           - Email delivery for the weekly radar

The store is initialized automatically on first use. Configuration is persisted
in a TOML file within the store directory.
"""

__version__ = "0.1.0"

from .api import Reflections
from .types import (
    ExternalProfile,
    Persona,
    Provenance,
    PursuitStatus,
    Reflection,
    UserProfile,
)

__all__ = [
    "Reflections",
    "Reflection",
    "UserProfile",
    "ExternalProfile",
    "Persona",
    "Provenance",
    "PursuitStatus",
]
