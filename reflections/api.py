"""
Core API for reflections.

The Reflections facade ties the collaborators together for one store:
- capture()/upload()/note(): ingest → (background) enrichment
- find()/trending(): derived views over the current record set
- analyze_persona(), run_radar(), suggest(), coach(), ask(): generative features
- open_session(): live dashboard session (observer)
"""

import logging
import threading
from pathlib import Path
from typing import Any, Optional

from .auth import AuthUser, LocalAuth
from .chat import ask as ask_question
from .coaching import GoalCoach, coach_pursuit, plan_pursuit
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .dashboard import DashboardSession
from .document_store import DocumentStore
from .errors import ValidationError
from .functions import CallableAuth, CallableFunctions, CallableRequest
from .ingest import capture as ingest_capture
from .ingest import manual_upload, text_note
from .milestones import Level, level_for_count
from .object_storage import LocalObjectStorage
from .persona import PersonaAutoTrigger, PersonaSynthesizer
from .profile_sync import import_resume, parse_profile_text, sync_external_profile
from .protocol import DocumentStoreProtocol, ObjectStorageProtocol
from .providers.base import get_registry
from .radar import (
    WeeklyRadar,
    active_pursuits,
    generate_suggestions,
    save_pursuit,
    update_pursuit,
)
from .trigger import EnrichmentTrigger
from .types import Persona, Reflection, UserProfile
from .views import search_reflections, trending_tags

logger = logging.getLogger(__name__)


class Reflections:
    """
    Reflection store for the signed-in user.

    Example:
        rf = Reflections()
        rf.sign_in("me@example.com", "secret")
        record, milestone = rf.capture(png_bytes, note="Nice chart")
        rf.enrich_pending()
        print(rf.trending())
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        document_store: Optional[DocumentStoreProtocol] = None,
        object_storage: Optional[ObjectStorageProtocol] = None,
        auth: Optional[LocalAuth] = None,
        generation_provider=None,
        blob_provider=None,
        video_search=None,
        email_sender=None,
        enrich_executor=None,
        timer_factory=None,
    ) -> None:
        """
        Open (or create) a reflection store.

        Args:
            store_path: Store directory. Uses REFLECTIONS_STORE_PATH or
                ~/.reflections if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery)
            document_store: Injected document store
            object_storage: Injected object storage
            auth: Injected auth provider
            generation_provider: Injected model (skips registry creation)
            blob_provider: Injected blob fetcher
            video_search: Injected video search for the weekly radar
            email_sender: Injected email sender for the weekly radar
            enrich_executor: Executor for enrichment (tests pass a synchronous one)
            timer_factory: Timer factory for the persona debouncer
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._store_path)

        # --- Collaborators (injected or default local adapters) ---
        self._store: DocumentStoreProtocol = document_store or DocumentStore(self._config.db_path)
        self._storage: ObjectStorageProtocol = object_storage or LocalObjectStorage(self._config.blob_path)
        self._auth = auth or LocalAuth(self._store_path)
        self._blob_provider = blob_provider or get_registry().create_blob(
            self._config.document.name,
            self._config.document.params,
        )

        # Lazy-loaded (created on first use so read-only commands need no API keys)
        self._generation_provider = generation_provider
        self._video_search = video_search
        self._email_sender = email_sender
        self._trigger: Optional[EnrichmentTrigger] = None
        self._enrich_executor = enrich_executor
        self._timer_factory = timer_factory
        self._provider_init_lock = threading.Lock()
        self._sessions: list[DashboardSession] = []

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store(self):
        return self._store

    def _get_generation_provider(self):
        """Get generation provider, creating it lazily on first use."""
        with self._provider_init_lock:
            if self._generation_provider is None:
                self._generation_provider = get_registry().create_generation(
                    self._config.generation.name,
                    self._config.generation.params,
                )
            return self._generation_provider

    def _get_trigger(self) -> EnrichmentTrigger:
        generation = self._get_generation_provider()
        with self._provider_init_lock:
            if self._trigger is None:
                self._trigger = EnrichmentTrigger(
                    self._store,
                    self._blob_provider,
                    generation,
                    workers=self._config.pipeline.workers,
                    executor=self._enrich_executor,
                )
            return self._trigger

    def _get_video_search(self):
        if self._video_search is None:
            key = self._config.radar.video_api_key
            if key:
                from .providers.video import YouTubeVideoSearch
                self._video_search = YouTubeVideoSearch(key)
        return self._video_search

    def _get_email_sender(self):
        if self._email_sender is None:
            key = self._config.radar.email_api_key
            if key:
                from .providers.email import ResendEmailSender
                self._email_sender = ResendEmailSender(key)
        return self._email_sender

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._auth.current_user

    def _uid(self) -> str:
        return self._auth.require_user().uid

    def _ensure_profile(self, user: AuthUser) -> None:
        """Profiles are created implicitly on first sign-in."""
        if self._store.get_profile(user.uid) is None:
            self._store.merge_profile(user.uid, {"email": user.email})

    def sign_up(self, email: str, password: str, display_name: str = "") -> AuthUser:
        user = self._auth.sign_up(email, password)
        self._ensure_profile(user)
        if display_name:
            self._store.merge_profile(user.uid, {"display_name": display_name})
        return user

    def sign_in(self, email: str, password: str) -> AuthUser:
        user = self._auth.sign_in(email, password)
        self._ensure_profile(user)
        return user

    def sign_out(self) -> None:
        self._auth.sign_out()

    def on_auth_state_changed(self, listener):
        return self._auth.on_auth_state_changed(listener)

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def get_profile(self) -> UserProfile:
        uid = self._uid()
        return self._store.get_profile(uid) or UserProfile(uid=uid)

    def update_profile(
        self,
        *,
        display_name: Optional[str] = None,
        tagline: Optional[str] = None,
        weekly_radar: Optional[bool] = None,
    ) -> UserProfile:
        uid = self._uid()
        fields: dict[str, Any] = {}
        if display_name is not None:
            fields["display_name"] = display_name
        if tagline is not None:
            fields["tagline"] = tagline
        if weekly_radar is not None:
            prefs = self.get_profile().preferences
            fields["preferences"] = {**prefs, "weekly_radar": weekly_radar}
        return self._store.merge_profile(uid, fields)

    def import_resume(self, path: str | Path) -> str:
        return import_resume(self._store, self._uid(), Path(path))

    def sync_profile(
        self,
        page_text: str,
        *,
        name: str = "",
        headline: str = "",
        about: str = "",
        profile_url: str = "",
    ) -> UserProfile:
        profile = parse_profile_text(
            page_text, name=name, headline=headline, about=about, profile_url=profile_url,
        )
        return sync_external_profile(self._store, self._uid(), profile)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def capture(
        self,
        image: bytes,
        *,
        note: str = "",
        source_url: Optional[str] = None,
    ) -> tuple[Reflection, Optional[int]]:
        """Store a screenshot; returns the record and any milestone reached."""
        return ingest_capture(
            self._store, self._storage, self._uid(), image, note=note, source_url=source_url,
        )

    def upload(
        self,
        path: str | Path,
        *,
        note: str = "",
        title: Optional[str] = None,
    ) -> tuple[Reflection, Optional[int]]:
        return manual_upload(self._store, self._storage, self._uid(), Path(path), note=note, title=title)

    def note(self, text: str) -> tuple[Reflection, Optional[int]]:
        return text_note(self._store, self._uid(), text)

    def list_reflections(self, limit: Optional[int] = None) -> list[Reflection]:
        """The user's records, newest first."""
        return self._store.list_reflections(self._uid(), limit=limit)

    def get(self, id: str) -> Optional[Reflection]:
        """A record owned by the signed-in user, or None."""
        record = self._store.get_reflection(id)
        if record is None or record.owner != self._uid():
            return None
        return record

    def _require(self, id: str) -> Reflection:
        record = self.get(id)
        if record is None:
            raise ValidationError(f"No reflection {id}")
        return record

    def find(self, query: str) -> list[Reflection]:
        return search_reflections(self.list_reflections(), query)

    def trending(self) -> list[str]:
        return trending_tags(self.list_reflections())

    def edit(
        self,
        id: str,
        *,
        note: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> Reflection:
        """Edit the note, or the summary (an explicit user edit of the enrichment)."""
        record = self._require(id)
        fields: dict[str, Any] = {}
        if note is not None:
            fields["user_note"] = note
        if summary is not None:
            fields["enrichment"] = {"summary": summary, "tags": list(record.tags)}
        if fields:
            self._store.merge_reflection(id, fields)
        return self._store.get_reflection(id)

    def delete(self, id: str, *, confirmed: bool = False) -> bool:
        """
        Hard-delete a record.

        Nothing is deleted unless ``confirmed`` is True.
        """
        self._require(id)
        if not confirmed:
            logger.info("Delete of %s not confirmed", id)
            return False
        deleted = self._store.delete_reflection(id)
        if deleted:
            logger.info("Deleted %s", id)
        return deleted

    def enrich_pending(self, *, wait: bool = True) -> dict[str, int]:
        """
        Run one trigger pass over the user's records.

        Returns:
            Counts of started, enriched and failed enrichments
        """
        futures = self._get_trigger().on_snapshot(self.list_reflections())
        stats = {"started": len(futures), "enriched": 0, "failed": 0}
        if wait:
            for future in futures:
                if future.result():
                    stats["enriched"] += 1
                else:
                    stats["failed"] += 1
        return stats

    # -------------------------------------------------------------------------
    # Milestones
    # -------------------------------------------------------------------------

    def milestone(self) -> Optional[int]:
        return self.get_profile().milestone_flag

    def clear_milestone(self) -> None:
        self._store.merge_profile(self._uid(), {"milestone_flag": None})

    def level(self) -> Level:
        return level_for_count(self._store.count_reflections(self._uid()))

    # -------------------------------------------------------------------------
    # Generative features
    # -------------------------------------------------------------------------

    def analyze_persona(self) -> Persona:
        synthesizer = PersonaSynthesizer(self._store, self._get_generation_provider())
        return synthesizer.analyze(self._uid())

    @property
    def functions(self) -> CallableFunctions:
        return CallableFunctions(
            radar_factory=lambda: WeeklyRadar(
                self._store,
                self._get_generation_provider(),
                video_search=self._get_video_search(),
                email_sender=self._get_email_sender(),
                sender=self._config.radar.sender,
            ),
            coach_factory=lambda: GoalCoach(self._get_generation_provider()),
        )

    def _request(self, data: Optional[dict] = None) -> CallableRequest:
        user = self.current_user
        auth = CallableAuth(uid=user.uid, email=user.email) if user else None
        return CallableRequest(auth=auth, data=data or {})

    def run_radar(self) -> dict[str, Any]:
        """Run the weekly radar callable as the signed-in user."""
        return self.functions.trigger_radar(self._request())

    def goal_coaching(self, data: dict[str, Any]) -> dict[str, Any]:
        return self.functions.goal_coaching(self._request(data))

    def suggest(self) -> list[dict[str, str]]:
        return generate_suggestions(self._store, self._get_generation_provider(), self._uid())

    def pursue(self, card: dict[str, str] | int) -> Optional[Reflection]:
        """
        Save a growth card as a pursuit.

        Args:
            card: The card, or an index into the last generated suggestions
        """
        if isinstance(card, int):
            cards = self.get_profile().radar_suggestions
            if not 0 <= card < len(cards):
                raise ValidationError(f"No suggestion #{card + 1}; run 'suggest' first")
            card = cards[card]
        return save_pursuit(self._store, self._uid(), card)

    def pursuits(self) -> list[Reflection]:
        return active_pursuits(self._store, self._uid())

    def update_pursuit(
        self,
        id: str,
        *,
        note: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Reflection:
        return update_pursuit(self._store, self._uid(), id, note=note, status=status)

    def plan_pursuit(self, id: str, *, target_date: Optional[str] = None) -> dict[str, Any]:
        coach = GoalCoach(self._get_generation_provider())
        return plan_pursuit(self._store, coach, self._uid(), id, target_date=target_date)

    def coach(self, id: str, update: str, *, stuck: bool = False) -> str:
        coach = GoalCoach(self._get_generation_provider())
        return coach_pursuit(self._store, coach, self._uid(), id, update, is_stuck=stuck)

    def ask(self, question: str) -> str:
        return ask_question(self._store, self._get_generation_provider(), self._uid(), question)

    # -------------------------------------------------------------------------
    # Live session
    # -------------------------------------------------------------------------

    def open_session(self, query: str = "", *, persona_executor=None) -> DashboardSession:
        """Subscribe a dashboard session for the signed-in user."""
        uid = self._uid()
        persona_auto = PersonaAutoTrigger(
            PersonaSynthesizer(self._store, self._get_generation_provider()),
            uid,
            delay=self._config.pipeline.persona_debounce_seconds,
            timer_factory=self._timer_factory,
            executor=persona_executor,
        )
        session = DashboardSession(
            self._store, uid,
            trigger=self._get_trigger(),
            persona_auto=persona_auto,
            query=query,
        )
        self._sessions = [s for s in self._sessions if not s.closed]
        self._sessions.append(session)
        return session.open()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close sessions, wait for running enrichment and persona work, and release resources."""
        for session in self._sessions:
            session.close()
        self._sessions.clear()
        if self._trigger is not None:
            self._trigger.close(wait=True)
            self._trigger = None
        for client in (self._video_search, self._email_sender):
            if client is not None and hasattr(client, "close"):
                client.close()
        self._video_search = None
        self._email_sender = None
        self._auth.close()
        self._store.close()
        if self._ops_log_handler is not None:
            from .logging_config import remove_ops_log
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False

    def __del__(self):
        """Cleanup on deletion."""
        try:
            self.close()
        except Exception:
            pass
