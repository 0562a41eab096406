"""
Dashboard session: the observer side of the pipeline.

A session subscribes to one owner's records and profile. Every record
snapshot replaces the session's state and recomputes the derived views in
full, feeds the enrichment trigger, and checks the persona count policy.
Every profile snapshot exposes the milestone flag and feeds external-profile
changes to the persona debouncer.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Optional

from .milestones import milestone_message
from .persona import PersonaAutoTrigger
from .trigger import EnrichmentTrigger
from .types import Reflection, UserProfile
from .views import search_reflections, trending_tags

logger = logging.getLogger(__name__)


class DashboardSession:
    """
    Live view of one owner's reflections.

    Args:
        store: Document store to subscribe to
        uid: Owner
        trigger: Enrichment trigger fed with each snapshot (None to disable)
        persona_auto: Persona auto-retrigger policy (None to disable)
        query: Initial search query
    """

    def __init__(
        self,
        store,
        uid: str,
        *,
        trigger: Optional[EnrichmentTrigger] = None,
        persona_auto: Optional[PersonaAutoTrigger] = None,
        query: str = "",
    ):
        self._store = store
        self.uid = uid
        self._trigger = trigger
        self._persona_auto = persona_auto
        self._lock = threading.RLock()
        self._query = query
        self._closed = False
        self._subscriptions = []

        self.records: list[Reflection] = []
        self.results: list[Reflection] = []
        self.trending: list[str] = []
        self.profile: Optional[UserProfile] = None
        self.futures: list[Future] = []

    def open(self) -> "DashboardSession":
        """Subscribe; both listeners fire immediately with current state."""
        # Profile first, so the count policy sees last_analysis_count
        self._subscriptions.append(self._store.subscribe_profile(self.uid, self._on_profile))
        self._subscriptions.append(self._store.subscribe_reflections(self.uid, self._on_records))
        return self

    # -------------------------------------------------------------------------
    # Snapshot handlers
    # -------------------------------------------------------------------------

    def _on_records(self, records: list[Reflection]) -> None:
        with self._lock:
            if self._closed:
                return
            self.records = records
            self.results = search_reflections(records, self._query)
            self.trending = trending_tags(records)
        if self._trigger is not None:
            started = self._trigger.on_snapshot(records)
            with self._lock:
                self.futures = [f for f in self.futures if not f.done()] + started
        if self._persona_auto is not None:
            self._persona_auto.on_records(records)

    def _on_profile(self, profile: UserProfile) -> None:
        with self._lock:
            if self._closed:
                return
            self.profile = profile
        if self._persona_auto is not None:
            self._persona_auto.on_profile(profile)

    # -------------------------------------------------------------------------
    # Presentation actions
    # -------------------------------------------------------------------------

    @property
    def query(self) -> str:
        return self._query

    def set_query(self, query: str) -> list[Reflection]:
        """Change the search query and recompute results."""
        with self._lock:
            self._query = query
            self.results = search_reflections(self.records, query)
            return list(self.results)

    @property
    def milestone(self) -> Optional[int]:
        with self._lock:
            return self.profile.milestone_flag if self.profile else None

    def milestone_text(self) -> Optional[tuple[str, str]]:
        flag = self.milestone
        return milestone_message(flag) if flag is not None else None

    def clear_milestone(self) -> None:
        """Acknowledge the milestone; this is the only way the flag is removed."""
        self._store.merge_profile(self.uid, {"milestone_flag": None})

    @property
    def persona_notice(self) -> Optional[str]:
        return self._persona_auto.notice if self._persona_auto is not None else None

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until enrichment started by this session has settled."""
        with self._lock:
            pending = list(self.futures)
        for future in pending:
            future.result(timeout=timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, wait: bool = True) -> None:
        """
        Unsubscribe and cancel pending timers.

        Enrichment already running still writes its result to the store.
        With wait, a running persona synthesis is finished before returning.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()
        if self._persona_auto is not None:
            self._persona_auto.close(wait=wait)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
