"""
Persona synthesis and its auto-retrigger policy.

A persona is re-synthesized on explicit request, or automatically when
- the owner has created PERSONA_RETRIGGER_DELTA or more records since the
  last analysis, or
- the external profile changed and a previous analysis exists (debounced).
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .debounce import Debouncer, TimerFactory
from .errors import GenerationError, ValidationError
from .processors import process_persona
from .types import Persona, Reflection, UserProfile, utc_now

logger = logging.getLogger(__name__)

PERSONA_RETRIGGER_DELTA = 5
DEFAULT_DEBOUNCE_SECONDS = 2.0

NO_RECORDS_MESSAGE = "You need to save some reflections first!"
FAILED_MESSAGE = "Analysis failed. Please try again."


def should_retrigger(current_count: int, last_analysis_count: int) -> bool:
    """True once enough new records have accumulated since the last analysis."""
    return current_count - last_analysis_count >= PERSONA_RETRIGGER_DELTA


class PersonaSynthesizer:
    """Runs one persona synthesis for a user and persists the result."""

    def __init__(self, store, generation_provider):
        self._store = store
        self._generation = generation_provider

    def analyze(self, uid: str) -> Persona:
        """
        Synthesize from all of the user's records, newest first.

        On success the persona, timestamp and record count are merged onto
        the profile. On failure the stored persona is left as it was.

        Raises:
            ValidationError: The user has no records
            GenerationError: The model call or its reply failed
        """
        records = self._store.list_reflections(uid)
        if not records:
            raise ValidationError(NO_RECORDS_MESSAGE)

        profile = self._store.get_profile(uid) or UserProfile(uid=uid)
        try:
            result = process_persona(
                records,
                display_name=profile.display_name,
                resume_text=profile.resume_text,
                external=profile.external_profile,
                generation_provider=self._generation,
            )
        except Exception as e:
            logger.warning("Persona synthesis failed for %s: %s", uid, e)
            raise GenerationError(FAILED_MESSAGE) from e

        self._store.merge_profile(uid, {
            "persona": result.persona.to_doc(),
            "last_analyzed_at": utc_now(),
            "last_analysis_count": result.record_count,
        })
        logger.info("Persona updated for %s from %d records", uid, result.record_count)
        return result.persona


class PersonaAutoTrigger:
    """
    Decides when a persona re-synthesis runs without being asked.

    Fed by a dashboard session: on_records() with every record snapshot and
    on_profile() with every profile snapshot. Automatic runs go to a
    single-worker executor, at most one at a time; failures are logged only.

    Args:
        synthesizer: PersonaSynthesizer to run
        uid: Owner being watched
        delay: Debounce delay for external-profile changes
        timer_factory: Passed to the Debouncer
        executor: Runs the synthesis (defaults to a private single thread)
    """

    def __init__(
        self,
        synthesizer: PersonaSynthesizer,
        uid: str,
        *,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Optional[TimerFactory] = None,
        executor=None,
    ):
        self._synthesizer = synthesizer
        self._uid = uid
        self._profile: Optional[UserProfile] = None
        self._seen_external = False
        self._running = False
        self._closed = False
        self._attempted_count: Optional[int] = None
        self._future: Optional[Future] = None
        self._lock = threading.Lock()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="reflections-persona",
        )
        self.debouncer = Debouncer(delay, self._on_external_quiet, timer_factory=timer_factory)
        self.notice: Optional[str] = None

    def on_profile(self, profile: UserProfile) -> None:
        """Track the latest profile; debounce external-profile changes."""
        previous = self._profile
        self._profile = profile
        if not self._seen_external:
            # First observation is the baseline, not a change
            self._seen_external = True
            return
        old_external = previous.external_profile if previous else None
        if profile.external_profile != old_external:
            logger.debug("External profile changed for %s", self._uid)
            self.debouncer.schedule()

    def on_records(self, records: list[Reflection]) -> None:
        """
        Start a synthesis if enough records arrived since the last one.

        A failed run is not retried until the record count grows past the
        count it was attempted at.
        """
        count = len(records)
        if self._attempted_count is not None and count <= self._attempted_count:
            return
        last_count = self._profile.last_analysis_count if self._profile else 0
        if should_retrigger(count, last_count):
            self._start(f"You have {count - last_count} new reflections! Updating analysis...", count)

    def _on_external_quiet(self) -> None:
        if self._profile is not None and self._profile.last_analyzed_at:
            self._start("LinkedIn data updated. Refreshing analysis...")

    def _start(self, notice: str, record_count: Optional[int] = None) -> None:
        with self._lock:
            if self._running or self._closed:
                return
            self._running = True
            if record_count is not None:
                self._attempted_count = record_count
        self.notice = notice
        logger.info("Auto persona update for %s", self._uid)
        try:
            self._future = self._executor.submit(self._run)
        except RuntimeError:
            # Executor already shut down
            with self._lock:
                self._running = False

    def _run(self) -> None:
        try:
            self._synthesizer.analyze(self._uid)
            self.notice = None
        except (ValidationError, GenerationError) as e:
            self.notice = str(e)
        except Exception as e:
            logger.warning("Auto persona update failed for %s: %s", self._uid, e)
            self.notice = FAILED_MESSAGE
        finally:
            with self._lock:
                self._running = False

    def close(self, wait: bool = True) -> None:
        """
        Cancel the pending debounce and stop accepting runs.

        Args:
            wait: Block until a running synthesis has written its result
        """
        self.debouncer.close()
        with self._lock:
            self._closed = True
            future = self._future
        if wait and future is not None:
            future.result()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
