"""
External profile sync and resume import.

The browser extension scrapes a professional-network profile page; this
module turns the page text into the ``external_profile`` stored on the user
and sets the tagline from the headline.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from .providers.documents import extract_document_text
from .types import ExternalProfile, UserProfile, utc_now

logger = logging.getLogger(__name__)

ABOUT_CHARS = 2000
EXPERIENCE_CHARS = 4000


def find_section(text: str, heading: str, length: int) -> str:
    """
    Text following a heading line, bounded to ``length`` characters.

    The heading must be followed by optional spaces and a newline; matching
    is case-insensitive. Returns "" if the heading is absent.
    """
    match = re.search(rf"{re.escape(heading)}[ \t]*\r?\n", text, re.IGNORECASE)
    if not match:
        return ""
    start = match.end()
    return text[start:start + length]


def parse_profile_text(
    page_text: str,
    *,
    name: str = "",
    headline: str = "",
    about: str = "",
    profile_url: str = "",
) -> ExternalProfile:
    """Build an external profile from scraped page text plus page metadata."""
    about_text = find_section(page_text, "About", ABOUT_CHARS)
    experience_text = find_section(page_text, "Experience", EXPERIENCE_CHARS)
    deep_text = (
        f"About Section:\n{about_text}\n\n"
        f"Experience Section:\n{experience_text}\n\n"
        "(Extracted from LinkedIn)"
    )
    return ExternalProfile(
        name=name,
        headline=headline,
        about=about or about_text.strip(),
        deep_text=deep_text,
        profile_url=profile_url,
        scraped_at=utc_now(),
    )


def sync_external_profile(store, uid: str, profile: ExternalProfile) -> UserProfile:
    """Store the external profile and use its headline as the tagline."""
    fields = {"external_profile": profile.to_doc()}
    if profile.headline:
        fields["tagline"] = profile.headline
    logger.info("External profile synced for %s", uid)
    return store.merge_profile(uid, fields)


def import_resume(store, uid: str, path: Path) -> str:
    """
    Extract resume text and store it on the profile.

    Raises:
        ValidationError: Unsupported type or no text; nothing is stored
    """
    text = extract_document_text(Path(path))
    store.merge_profile(uid, {"resume_text": text})
    logger.info("Resume imported for %s (%d chars)", uid, len(text))
    return text


def resume_preview(profile: Optional[UserProfile], chars: int = 200) -> str:
    if profile is None or not profile.resume_text:
        return ""
    text = profile.resume_text
    return text if len(text) <= chars else text[:chars] + "..."
