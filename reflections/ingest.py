"""
Record creation: capture, manual upload, text notes.

Every creation goes through create_record(), which applies the milestone
policy: the owner's count is read immediately before the write, and if the
new record brings it to a threshold the flag is set on the profile.
"""

import logging
import re
import time
from pathlib import Path
from typing import Any, Optional

from .errors import ValidationError
from .milestones import milestone_for_count
from .types import Provenance, Reflection

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _millis() -> int:
    return int(time.time() * 1000)


def create_record(store, owner: str, doc: dict[str, Any]) -> tuple[Reflection, Optional[int]]:
    """
    Create a record and apply the milestone policy.

    Concurrent creations by the same owner can miss a threshold; an account
    is single-writer in practice.

    Returns:
        (created record, threshold reached or None)
    """
    count_before = store.count_reflections(owner)
    record = store.create_reflection(owner, doc)
    milestone = milestone_for_count(count_before)
    if milestone is not None:
        store.merge_profile(owner, {"milestone_flag": milestone})
        logger.info("Milestone %d reached by %s", milestone, owner)
    return record, milestone


def capture(
    store,
    storage,
    owner: str,
    image: bytes,
    *,
    note: str = "",
    source_url: Optional[str] = None,
) -> tuple[Reflection, Optional[int]]:
    """
    Store a screenshot and create an unanalyzed ``captured`` record.

    Enrichment happens later, when the trigger sees the record.
    """
    if not image:
        raise ValidationError("Capture has no image data")
    url = storage.upload(f"captures/{owner}/{_millis()}.png", image, "image/png")
    return create_record(store, owner, {
        "content": url,
        "user_note": note,
        "source_url": source_url,
        "enrichment": None,
        "provenance": Provenance.CAPTURED.value,
    })


def manual_upload(
    store,
    storage,
    owner: str,
    path: Path,
    *,
    note: str = "",
    title: Optional[str] = None,
) -> tuple[Reflection, Optional[int]]:
    """
    Upload an image file and create an unanalyzed ``manual-upload`` record.

    Errors surface to the caller; nothing is created if the upload fails.
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"File not found: {path}")
    data = path.read_bytes()
    if not data:
        raise ValidationError(f"File is empty: {path.name}")
    safe_name = _UNSAFE_NAME.sub("_", path.name)
    url = storage.upload(f"manual_uploads/{owner}/{_millis()}_{safe_name}", data)
    return create_record(store, owner, {
        "content": url,
        "user_note": note,
        "enrichment": None,
        "provenance": Provenance.MANUAL_UPLOAD.value,
        "title": title,
    })


def text_note(store, owner: str, note: str) -> tuple[Reflection, Optional[int]]:
    """A record with no content; never selected for enrichment."""
    if not note or not note.strip():
        raise ValidationError("Note is empty")
    return create_record(store, owner, {
        "content": None,
        "user_note": note.strip(),
        "enrichment": None,
        "provenance": Provenance.CAPTURED.value,
    })
