"""
Weekly radar, growth suggestions and pursuits.

The weekly radar reads the last seven days of records, asks the model for
three briefing cards plus video search keywords, looks up one video for each
of the top two keywords, stores the briefing on the profile and emails it.

Growth suggestions are three cards the user can save as pursuits: records
with ``radar-suggestion`` provenance and a status.
"""

import html
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .config import DEFAULT_SENDER
from .errors import GenerationError, ValidationError
from .ingest import create_record
from .processors import extract_json, external_profile_text
from .types import (
    Provenance,
    Pursuit,
    PursuitStatus,
    Reflection,
    UserProfile,
    local_date,
    utc_now,
)

logger = logging.getLogger(__name__)

RADAR_WINDOW_DAYS = 7
RADAR_VIDEO_KEYWORDS = 2
RADAR_CARD_KEYS = ("deep_dive", "wildcard", "spark")
GROWTH_CARD_TYPES = ("Deep Dive", "Wildcard", "Spark")
RECENT_SUMMARIES = 5
RESUME_SUGGESTION_CHARS = 1000

EMAIL_SUBJECT = "Your Reflections Radar Briefing"
SUGGESTIONS_FAILED_MESSAGE = "Failed to generate suggestions. Try again."


def _since(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%S")


def traits_text(profile: Optional[UserProfile]) -> str:
    if profile is not None and profile.persona and profile.persona.traits:
        return json.dumps(profile.persona.traits)
    return "General User"


# -----------------------------------------------------------------------------
# Weekly radar
# -----------------------------------------------------------------------------

def build_radar_prompt(records: list[Reflection], traits: str) -> str:
    entries = "\n\n".join(
        f"Date: {local_date(r.created_at)}\nNotes: {r.user_note}\nSummary: {r.summary}"
        for r in records
    )
    return f"""You are an advanced AI providing a weekly strategic briefing called "Reflections Radar".
User Traits: {traits}

Reflections from past week:
{entries}

Task:
1. Generate 3 distinct Radar Cards:
   - Deep Dive: A strategic analysis of the week's dominant theme.
   - Wildcard: An unexpected connection or latent pattern.
   - Spark: A creative idea or action for next week.
2. Extract 3 Search Keywords for YouTube discovery based on high-interest topics.
3. For each keyword, provide a 1-sentence "reason" explaining why this topic matters to the user based on their traits.

Output valid JSON:
{{
  "deep_dive": {{"title": "...", "content": "..."}},
  "wildcard": {{"title": "...", "content": "..."}},
  "spark": {{"title": "...", "content": "..."}},
  "youtube": [{{"keyword": "...", "reason": "..."}}]
}}"""


def parse_radar(text: Optional[str]) -> dict[str, Any]:
    """
    Parse the radar reply into ``{"cards": {...}, "youtube": [...]}``.

    Raises:
        ValueError: Not JSON or a card is missing
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Radar reply is not a JSON object")
    aliases = {"deep_dive": ("deep_dive", "deepDive"), "wildcard": ("wildcard",), "spark": ("spark",)}
    cards = {}
    for key in RADAR_CARD_KEYS:
        card = next((data[a] for a in aliases[key] if isinstance(data.get(a), dict)), None)
        if card is None:
            raise ValueError(f"Radar reply has no {key} card")
        cards[key] = {"title": str(card.get("title", "")), "content": str(card.get("content", ""))}

    keywords = []
    for item in data.get("youtube") or []:
        if isinstance(item, dict) and item.get("keyword"):
            keywords.append({"keyword": str(item["keyword"]), "reason": str(item.get("reason", ""))})
    return {"cards": cards, "youtube": keywords[:3]}


def render_radar_email(cards: dict[str, dict], videos: list[dict]) -> str:
    """HTML body for the briefing email."""
    e = html.escape
    parts = ['<div style="font-family: sans-serif; max-width: 600px; margin: auto;">',
             '<h1 style="color: #4F46E5;">Reflections Radar</h1>']
    for key in RADAR_CARD_KEYS:
        card = cards[key]
        parts.append(
            f'<h2 style="border-bottom: 2px solid #E5E7EB; padding-bottom: 10px;">{e(card["title"])}</h2>'
            f'<p style="line-height: 1.6;">{e(card["content"])}</p>'
        )
    if videos:
        parts.append('<h3 style="margin-top: 30px; color: #6B7280;">Global Pulse Discovery</h3>')
        for v in videos:
            parts.append(
                '<div style="margin-bottom: 30px; border: 1px solid #F3F4F6; padding: 15px;">'
                f'<a href="{e(v["url"])}"><img src="{e(v["thumbnail"])}" width="100%"/></a>'
                f'<p style="font-weight: bold;">{e(v["title"])}</p>'
                f'<p style="font-size: 0.9em; color: #4B5563;"><i>AI Insight: {e(v.get("reason", ""))}</i></p>'
                '</div>'
            )
    parts.append("</div>")
    return "\n".join(parts)


class WeeklyRadar:
    """
    Runs the weekly radar for one user.

    Args:
        store: Document store
        generation_provider: Model for card synthesis
        video_search: Optional VideoSearch; None means no videos
        email_sender: Optional EmailSender; None means no email
        sender: From address for the briefing email
    """

    def __init__(
        self,
        store,
        generation_provider,
        *,
        video_search=None,
        email_sender=None,
        sender: str = DEFAULT_SENDER,
    ):
        self._store = store
        self._generation = generation_provider
        self._video = video_search
        self._email = email_sender
        self._sender = sender

    def _find_videos(self, keywords: list[dict]) -> list[dict]:
        if self._video is None:
            logger.warning("Video search not configured; radar has no videos")
            return []
        videos = []
        for item in keywords[:RADAR_VIDEO_KEYWORDS]:
            try:
                found = self._video.search(item["keyword"])
            except Exception as e:
                logger.warning("Video search failed for %r: %s", item["keyword"], e)
                continue
            if found:
                videos.append({**found, "reason": item["reason"]})
        return videos

    def run(self, uid: str, email: Optional[str] = None) -> dict[str, Any]:
        """
        Build, store and deliver one briefing.

        Returns:
            ``{"status": "no-data", ...}`` if the week is empty, else
            ``{"status": "success", "radar_id": ..., "data": ...}``

        Raises:
            GenerationError: The model call or its reply failed
        """
        records = self._store.list_reflections(uid, since=_since(RADAR_WINDOW_DAYS))
        if not records:
            return {"status": "no-data", "message": "Not enough reflections (need at least 1)."}

        profile = self._store.get_profile(uid)
        prompt = build_radar_prompt(records, traits_text(profile))
        try:
            radar = parse_radar(self._generation.generate(prompt))
        except Exception as e:
            logger.warning("Radar synthesis failed for %s: %s", uid, e)
            raise GenerationError(f"Radar synthesis failed: {e}") from e

        videos = self._find_videos(radar["youtube"])
        radar_id = uuid.uuid4().hex
        entry = {
            "id": radar_id,
            "created_at": utc_now(),
            "cards": radar["cards"],
            "keywords": radar["youtube"],
            "videos": videos,
            "type": "weekly_radar",
        }
        self._store.merge_profile(uid, {"last_radar": entry})
        logger.info("Radar %s stored for %s (%d videos)", radar_id, uid, len(videos))

        if self._email is not None and email:
            try:
                self._email.send(
                    sender=self._sender,
                    to=email,
                    subject=EMAIL_SUBJECT,
                    html=render_radar_email(radar["cards"], videos),
                )
            except Exception as e:
                logger.error("Radar email to %s failed: %s", email, e)
        elif self._email is not None:
            logger.warning("No email address for %s; radar not sent", uid)

        return {"status": "success", "radar_id": radar_id, "data": entry}


# -----------------------------------------------------------------------------
# Growth suggestions
# -----------------------------------------------------------------------------

def build_growth_prompt(profile: Optional[UserProfile], recent: list[Reflection]) -> str:
    linkedin = external_profile_text(profile.external_profile) if profile else ""
    resume = (profile.resume_text or "") if profile else ""
    resume = resume[:RESUME_SUGGESTION_CHARS] + "..." if resume else "N/A"
    activity = "\n".join(f"- {r.summary}" for r in recent if r.summary)
    traits = traits_text(profile) if profile and profile.persona else "N/A"
    return f"""Act as a Visionary Career & Creativity Coach.

USER PROFILE:
LinkedIn: {linkedin or "N/A"}
Resume: {resume}

CORE TRAITS:
{traits}

RECENT INTERESTS:
Recent Reflection Topics:
{activity}

TASK:
Generate 3 distinct 'Growth Cards' for this user to explore this week.
1. 'Deep Dive': A specific technical skill, methodology, or professional topic they should master to level up.
2. 'Wildcard': A surprising, creative intersection of their hobbies/interests.
3. 'Spark': A deep philosophical question or mental model challenge related to their work/life.

RETURN JSON ARRAY (No markdown):
[
  {{"type": "Deep Dive", "title": "Short Punchy Title", "description": "2 sentences explaining WHY and HOW to start.", "action_item": "A concrete first step"}},
  ... (Wildcard, Spark)
]"""


def parse_growth_cards(text: Optional[str]) -> list[dict[str, str]]:
    """
    Parse the suggestions reply into a list of cards.

    Raises:
        ValueError: Not a JSON array, or no usable card
    """
    data = extract_json(text)
    if isinstance(data, dict):
        data = data.get("cards") or data.get("suggestions")
    if not isinstance(data, list):
        raise ValueError("Suggestions reply is not a JSON array")
    cards = []
    for item in data:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        cards.append({
            "type": str(item.get("type", "")),
            "title": str(item["title"]),
            "description": str(item.get("description", "")),
            "action_item": str(item.get("action_item") or item.get("actionItem") or ""),
        })
    if not cards:
        raise ValueError("Suggestions reply has no cards")
    return cards


def generate_suggestions(store, generation_provider, uid: str) -> list[dict[str, str]]:
    """
    Generate growth cards and store them on the profile.

    Raises:
        GenerationError: The model call or its reply failed
    """
    profile = store.get_profile(uid)
    recent = store.list_reflections(uid, limit=RECENT_SUMMARIES)
    try:
        cards = parse_growth_cards(generation_provider.generate(build_growth_prompt(profile, recent)))
    except Exception as e:
        logger.warning("Growth suggestions failed for %s: %s", uid, e)
        raise GenerationError(SUGGESTIONS_FAILED_MESSAGE) from e
    store.merge_profile(uid, {"radar_suggestions": cards, "last_radar_at": utc_now()})
    return cards


# -----------------------------------------------------------------------------
# Pursuits
# -----------------------------------------------------------------------------

def active_pursuits(store, uid: str) -> list[Reflection]:
    """The user's radar-suggestion records, newest first."""
    return [
        r for r in store.list_reflections(uid)
        if r.provenance == Provenance.RADAR_SUGGESTION
    ]


def save_pursuit(store, uid: str, card: dict[str, str]) -> Optional[Reflection]:
    """
    Save a growth card as a pursuit.

    Returns:
        The new record, or None if a pursuit with the same title exists
    """
    title = (card.get("title") or "").strip()
    if not title:
        raise ValidationError("Card has no title")
    if any((p.title or p.summary) == title for p in active_pursuits(store, uid)):
        logger.info("Pursuit %r already saved for %s", title, uid)
        return None

    card_type = card.get("type", "")
    pursuit = Pursuit(
        radar_type=card_type,
        description=card.get("description", ""),
        action_item=card.get("action_item") or card.get("actionItem", ""),
    )
    record, _ = create_record(store, uid, {
        "content": None,
        "user_note": "",
        "enrichment": {"summary": title, "tags": ["Radar", card_type]},
        "provenance": Provenance.RADAR_SUGGESTION.value,
        "status": PursuitStatus.NOT_STARTED.value,
        "title": title,
        "pursuit": pursuit.to_doc(),
    })
    return record


def get_pursuit(store, uid: str, pursuit_id: str) -> Reflection:
    """
    Look up one of the user's pursuits.

    Raises:
        ValidationError: No such pursuit for this user
    """
    record = store.get_reflection(pursuit_id)
    if (record is None or record.owner != uid
            or record.provenance != Provenance.RADAR_SUGGESTION):
        raise ValidationError(f"No pursuit {pursuit_id}")
    return record


def update_pursuit(
    store,
    uid: str,
    pursuit_id: str,
    *,
    note: Optional[str] = None,
    status: Optional[str] = None,
) -> Reflection:
    """
    Change a pursuit's note and/or status.

    Raises:
        ValidationError: Unknown pursuit or status
    """
    get_pursuit(store, uid, pursuit_id)
    fields: dict[str, Any] = {}
    if note is not None:
        fields["user_note"] = note
    if status is not None:
        try:
            fields["status"] = PursuitStatus.parse(status).value
        except ValueError as e:
            raise ValidationError(str(e)) from e
    if fields:
        store.merge_reflection(pursuit_id, fields)
    return store.get_reflection(pursuit_id)
