"""
Data types for reflections.

Records and profiles are stored as JSON documents; these dataclasses are the
in-memory view of them. ``to_doc()``/``from_doc()`` convert between the two
so that the storage layer never needs to know about field defaults.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Handles both the canonical format (no suffix) and formats that
    include microseconds, 'Z', or '+00:00' suffixes.
    """
    ts = ts.replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def local_date(utc_iso: str) -> str:
    """Convert a UTC ISO timestamp to a local-timezone date string (YYYY-MM-DD).

    Returns empty string for empty input.
    """
    if not utc_iso:
        return ""
    try:
        dt = parse_utc_timestamp(utc_iso)
        return dt.astimezone().strftime("%Y-%m-%d")
    except (ValueError, OverflowError):
        return utc_iso[:10] if len(utc_iso) >= 10 else utc_iso


class Provenance(str, Enum):
    """Where a record came from. Governs rendering and aggregation rules."""
    CAPTURED = "captured"
    MANUAL_UPLOAD = "manual-upload"
    RADAR_SUGGESTION = "radar-suggestion"


class PursuitStatus(str, Enum):
    """Lifecycle of a radar-suggestion record."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    STUCK = "stuck"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: str) -> "PursuitStatus":
        """Accept both 'in-progress' and display forms like 'In Progress'."""
        normalized = value.strip().lower().replace(" ", "-").replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown status {value!r} (allowed: {allowed})") from None


@dataclass
class Enrichment:
    """AI-derived analysis attached to a record."""
    summary: str
    tags: list[str] = field(default_factory=list)

    def to_doc(self) -> dict[str, Any]:
        return {"summary": self.summary, "tags": list(self.tags)}

    @classmethod
    def from_doc(cls, doc: Optional[dict]) -> Optional["Enrichment"]:
        if not doc:
            return None
        tags = doc.get("tags") or []
        if not isinstance(tags, list):
            tags = [tags]
        return cls(summary=str(doc.get("summary") or ""), tags=[str(t) for t in tags])


@dataclass
class Pursuit:
    """Goal-tracking details carried by a radar-suggestion record."""
    radar_type: str = ""
    description: str = ""
    action_item: str = ""
    roadmap: Optional[dict] = None
    updates: list[dict] = field(default_factory=list)

    def to_doc(self) -> dict[str, Any]:
        return {
            "radar_type": self.radar_type,
            "description": self.description,
            "action_item": self.action_item,
            "roadmap": self.roadmap,
            "updates": list(self.updates),
        }

    @classmethod
    def from_doc(cls, doc: Optional[dict]) -> Optional["Pursuit"]:
        if not doc:
            return None
        return cls(
            radar_type=doc.get("radar_type", ""),
            description=doc.get("description", ""),
            action_item=doc.get("action_item", ""),
            roadmap=doc.get("roadmap"),
            updates=list(doc.get("updates") or []),
        )


@dataclass
class Reflection:
    """
    One captured or saved unit of user content.

    Attributes:
        id: Opaque identifier assigned by the store
        owner: User id (immutable)
        created_at: Store-assigned UTC timestamp (immutable)
        content: Image reference (URL into object storage) or None
        user_note: Free text written by the owner
        source_url: Page the content was captured from (immutable)
        enrichment: AI summary + tags; None means "not yet enriched"
        provenance: How the record was created
        status: Pursuit status (radar-suggestion records only)
    """
    id: str
    owner: str
    created_at: str = ""
    content: Optional[str] = None
    user_note: str = ""
    source_url: Optional[str] = None
    enrichment: Optional[Enrichment] = None
    provenance: Provenance = Provenance.CAPTURED
    status: Optional[PursuitStatus] = None
    title: Optional[str] = None
    pursuit: Optional[Pursuit] = None
    updated_at: str = ""

    @property
    def summary(self) -> str:
        return self.enrichment.summary if self.enrichment else ""

    @property
    def tags(self) -> list[str]:
        return self.enrichment.tags if self.enrichment else []

    @property
    def is_enriched(self) -> bool:
        return self.enrichment is not None

    def to_doc(self) -> dict[str, Any]:
        """Serialize to a storable dict (id, owner and created_at are columns)."""
        return {
            "content": self.content,
            "user_note": self.user_note,
            "source_url": self.source_url,
            "enrichment": self.enrichment.to_doc() if self.enrichment else None,
            "provenance": self.provenance.value,
            "status": self.status.value if self.status else None,
            "title": self.title,
            "pursuit": self.pursuit.to_doc() if self.pursuit else None,
        }

    @classmethod
    def from_doc(
        cls, id: str, owner: str, created_at: str, updated_at: str, doc: dict,
    ) -> "Reflection":
        status = doc.get("status")
        return cls(
            id=id,
            owner=owner,
            created_at=created_at,
            updated_at=updated_at,
            content=doc.get("content"),
            user_note=doc.get("user_note") or "",
            source_url=doc.get("source_url"),
            enrichment=Enrichment.from_doc(doc.get("enrichment")),
            provenance=Provenance(doc.get("provenance") or Provenance.CAPTURED.value),
            status=PursuitStatus(status) if status else None,
            title=doc.get("title"),
            pursuit=Pursuit.from_doc(doc.get("pursuit")),
        )


@dataclass
class ExternalProfile:
    """Professional-network profile imported by the sync collaborator."""
    name: str = ""
    headline: str = ""
    about: str = ""
    deep_text: str = ""
    profile_url: str = ""
    scraped_at: str = ""

    def to_doc(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "headline": self.headline,
            "about": self.about,
            "deep_text": self.deep_text,
            "profile_url": self.profile_url,
            "scraped_at": self.scraped_at,
        }

    @classmethod
    def from_doc(cls, doc: Optional[dict]) -> Optional["ExternalProfile"]:
        if not doc:
            return None
        return cls(**{k: str(doc.get(k) or "") for k in cls.__dataclass_fields__})


@dataclass
class Persona:
    """Holistic trait/summary profile produced by persona synthesis."""
    traits: list[str] = field(default_factory=list)
    summary: str = ""

    def to_doc(self) -> dict[str, Any]:
        return {"traits": list(self.traits), "summary": self.summary}

    @classmethod
    def from_doc(cls, doc: Optional[dict]) -> Optional["Persona"]:
        if not doc:
            return None
        traits = doc.get("traits") or []
        return cls(traits=[str(t) for t in traits], summary=str(doc.get("summary") or ""))


@dataclass
class UserProfile:
    """
    One per account. Fields are merged on write, never replaced wholesale.
    """
    uid: str
    display_name: str = ""
    tagline: str = ""
    email: str = ""
    external_profile: Optional[ExternalProfile] = None
    resume_text: Optional[str] = None
    persona: Optional[Persona] = None
    last_analyzed_at: Optional[str] = None
    last_analysis_count: int = 0
    milestone_flag: Optional[int] = None
    interests: list[str] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)
    radar_suggestions: list[dict] = field(default_factory=list)
    last_radar_at: Optional[str] = None
    last_radar: Optional[dict] = None

    @classmethod
    def from_doc(cls, uid: str, doc: dict) -> "UserProfile":
        return cls(
            uid=uid,
            display_name=doc.get("display_name") or "",
            tagline=doc.get("tagline") or "",
            email=doc.get("email") or "",
            external_profile=ExternalProfile.from_doc(doc.get("external_profile")),
            resume_text=doc.get("resume_text"),
            persona=Persona.from_doc(doc.get("persona")),
            last_analyzed_at=doc.get("last_analyzed_at"),
            last_analysis_count=int(doc.get("last_analysis_count") or 0),
            milestone_flag=doc.get("milestone_flag"),
            interests=list(doc.get("interests") or []),
            preferences=dict(doc.get("preferences") or {}),
            radar_suggestions=list(doc.get("radar_suggestions") or []),
            last_radar_at=doc.get("last_radar_at"),
            last_radar=doc.get("last_radar"),
        )
