"""
Pure processing functions for reflections.

These functions encapsulate the "compute" portion of enrichment and persona
synthesis: building prompts, calling the generation provider, and parsing
the untrusted model reply. They do no store reads or writes.

Each process_* function returns a ProcessorResult that the caller applies
to the store, or raises; callers on background paths log and abandon.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from .types import Enrichment, ExternalProfile, Persona, Reflection

logger = logging.getLogger(__name__)


ENRICHMENT_PROMPT = (
    'Analyze this image. Return a valid JSON object with a "summary" '
    '(max 2 sentences) and "tags" (array of 3 keywords). '
    'Do not include markdown code block syntax around the JSON.'
)

# Prompt budgets for external professional data
RESUME_PERSONA_CHARS = 5000

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass
class ProcessorResult:
    """Result of processing a task.  Caller applies to store."""

    task_type: str  # "enrich" | "persona"
    enrichment: Enrichment | None = None
    persona: Persona | None = None
    record_count: int = 0  # persona: records the analysis was based on


# --- Untrusted model output ---

def extract_json(text: str | None) -> Any:
    """
    Parse JSON from a model reply.

    Removes a markdown code fence (```json ... ```) if present, trims
    whitespace and parses. Fails closed.

    Raises:
        ValueError: Empty reply or not valid JSON after cleanup
    """
    if text is None:
        raise ValueError("Empty model reply")

    cleaned = text.strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        cleaned = match.group(1).strip()
    elif cleaned.startswith("```"):
        # Unterminated fence
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        cleaned = cleaned.strip()

    if not cleaned:
        raise ValueError("Empty model reply")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ValueError(f"Model reply is not valid JSON: {e}") from e


def parse_enrichment(text: str | None) -> Enrichment:
    """
    Parse an enrichment reply into summary + tags.

    Tag count is not enforced; whatever list the model returns is kept.

    Raises:
        ValueError: Not JSON, not an object, or no summary
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Enrichment reply is not a JSON object")
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Enrichment reply has no summary")
    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    if not isinstance(tags, list):
        raise ValueError("Enrichment tags are not a list")
    return Enrichment(summary=summary.strip(), tags=[str(t) for t in tags])


def parse_persona(text: str | None) -> Persona:
    """
    Parse a persona reply into traits + summary.

    Raises:
        ValueError: Not JSON, not an object, or missing fields
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Persona reply is not a JSON object")
    traits = data.get("traits")
    summary = data.get("summary")
    if not isinstance(traits, list) or not traits:
        raise ValueError("Persona reply has no traits")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("Persona reply has no summary")
    return Persona(traits=[str(t).strip() for t in traits], summary=summary.strip())


# --- Enrichment ---

def build_enrichment_prompt(note: str | None = None) -> str:
    """The fixed instruction, with the owner's note appended as context."""
    if note and note.strip():
        return f'{ENRICHMENT_PROMPT}\nUser\'s note: "{note.strip()}"'
    return ENRICHMENT_PROMPT


def process_enrich(
    image,
    *,
    note: str | None = None,
    generation_provider,
) -> ProcessorResult:
    """Enrich one image.  Pure function, no store access.

    Raises:
        ValueError: Provider produced no output or an unparseable reply
    """
    reply = generation_provider.generate(build_enrichment_prompt(note), image=image)
    if reply is None:
        raise ValueError(f"{type(generation_provider).__name__} produced no output")
    return ProcessorResult(task_type="enrich", enrichment=parse_enrichment(reply))


# --- Persona synthesis ---

def external_profile_text(profile: ExternalProfile | None) -> str:
    """Deep text if the sync captured it, else headline + about."""
    if profile is None:
        return ""
    if profile.deep_text:
        return profile.deep_text
    return "\n".join(p for p in (profile.headline, profile.about) if p)


def build_persona_prompt(
    records: list[Reflection],
    *,
    display_name: str = "",
    resume_text: str | None = None,
    external: ExternalProfile | None = None,
) -> str:
    """One combined prompt over every record plus professional context."""
    lines = ["USER REFLECTIONS:"]
    for rec in records:
        if rec.summary:
            lines.append(f"Summary: {rec.summary}")
        if rec.tags:
            lines.append(f"Tags: {', '.join(rec.tags)}")
        lines.append("---")
    reflections_text = "\n".join(lines)

    resume = (resume_text or "")[:RESUME_PERSONA_CHARS]
    linkedin = external_profile_text(external)

    return f"""SYSTEM CONTEXT:
You are analyzing the user '{display_name or "User"}'.

SOURCE A: PROFESSIONAL DATA (LinkedIn / Resume)
{linkedin or "No LinkedIn data found."}
{resume or "No Resume data found."}

SOURCE B: PERSONAL REFLECTIONS (Notes)
{reflections_text}

TASK:
Create a 'Reflection Analysis' that blends their professional expertise with their personal curiosities.
Return a valid JSON object with:
1. "traits" (Extract 5-7 distinct 'Archetypes' or 'Skills' as short 2-3 word tags, e.g. 'AR/VR Strategist', 'Music Historian', 'Health Bio-hacker'. Do NOT write full sentences.),
2. "summary" (Write a rich, nuanced biography of approx. 150-200 words. Weave the professional expertise with the personal passions to create a holistic picture. Avoid generic corporate speak. Address the user as 'You'.)
Do NOT refer to 'the user' in the third person. Do NOT wrap in markdown code blocks."""


def process_persona(
    records: list[Reflection],
    *,
    display_name: str = "",
    resume_text: str | None = None,
    external: ExternalProfile | None = None,
    generation_provider,
) -> ProcessorResult:
    """Synthesize a persona from all records.  Pure function, no store access.

    Raises:
        ValueError: Provider produced no output or an unparseable reply
    """
    prompt = build_persona_prompt(
        records, display_name=display_name, resume_text=resume_text, external=external,
    )
    reply = generation_provider.generate(prompt)
    if reply is None:
        raise ValueError(f"{type(generation_provider).__name__} produced no output")
    return ProcessorResult(
        task_type="persona",
        persona=parse_persona(reply),
        record_count=len(records),
    )
