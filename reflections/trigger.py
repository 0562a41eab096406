"""
Enrichment trigger.

Watches full record-set snapshots and starts enrichment for every record
that has image content, no enrichment yet, and is not already in flight.
Work runs on a thread pool; each record id is claimed in the trigger's own
InFlightRegistry before submission and released when the work settles.

Failures are logged and abandoned. The record stays unanalyzed and is picked
up again by the next snapshot (at-least-once, best-effort).
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, Optional

from .inflight import InFlightRegistry
from .processors import process_enrich
from .types import Reflection

logger = logging.getLogger(__name__)


def needs_enrichment(record: Reflection) -> bool:
    """Image-bearing and not yet enriched."""
    return record.enrichment is None and bool(record.content)


def select_pending(
    records: Iterable[Reflection],
    registry: InFlightRegistry,
) -> list[Reflection]:
    """Records eligible for enrichment right now, in snapshot order."""
    in_flight = registry.snapshot()
    return [r for r in records if needs_enrichment(r) and r.id not in in_flight]


class EnrichmentTrigger:
    """
    Selects and enriches unanalyzed records.

    Args:
        store: Document store the results are merged into
        blob_provider: Fetches image bytes for a record's content URL
        generation_provider: Model used for enrichment
        workers: Thread pool size (ignored if executor is given)
        registry: In-flight registry; a fresh one is created if omitted
        executor: Executor to run enrichment on (tests pass a synchronous one)
    """

    def __init__(
        self,
        store,
        blob_provider,
        generation_provider,
        *,
        workers: int = 4,
        registry: Optional[InFlightRegistry] = None,
        executor=None,
    ):
        self._store = store
        self._blobs = blob_provider
        self._generation = generation_provider
        self.registry = registry if registry is not None else InFlightRegistry()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="reflections-enrich",
        )
        self._closed = False

    def on_snapshot(self, records: list[Reflection]) -> list[Future]:
        """
        Handle one full-set snapshot.

        Returns:
            Futures for the enrichments started by this snapshot; each
            resolves to True if the record was enriched
        """
        if self._closed:
            return []
        futures = []
        for record in select_pending(records, self.registry):
            if not self.registry.claim(record.id):
                continue  # claimed by a concurrent snapshot
            try:
                future = self._executor.submit(self.enrich_one, record)
            except RuntimeError as e:
                # Executor shut down between the check and the submit
                self.registry.release(record.id)
                logger.debug("Enrichment not started for %s: %s", record.id, e)
                break
            self.registry.attach(record.id, future)
            futures.append(future)
        if futures:
            logger.info("Started enrichment for %d record(s)", len(futures))
        return futures

    def enrich_one(self, record: Reflection) -> bool:
        """
        Enrich one claimed record and merge the result.

        Never raises; the claim is released whatever the outcome.
        """
        try:
            image = self._blobs.fetch(record.content)
            result = process_enrich(
                image, note=record.user_note, generation_provider=self._generation,
            )
            if not self._store.merge_reflection(
                record.id, {"enrichment": result.enrichment.to_doc()},
            ):
                logger.info("Record %s deleted during enrichment", record.id)
                return False
            logger.info("Enriched %s: %s", record.id, result.enrichment.tags)
            return True
        except Exception as e:
            logger.warning("Enrichment failed for %s: %s", record.id, e)
            return False
        finally:
            self.registry.release(record.id)

    def close(self, wait: bool = True) -> None:
        """Stop accepting snapshots; optionally wait for running work."""
        self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
