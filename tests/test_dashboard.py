"""Tests for the dashboard session (observer side of the pipeline)."""

import threading

import pytest

from reflections.dashboard import DashboardSession
from reflections.document_store import DocumentStore
from reflections.persona import FAILED_MESSAGE, PersonaAutoTrigger, PersonaSynthesizer
from reflections.trigger import EnrichmentTrigger
from reflections.types import ExternalProfile, Reflection

from tests.conftest import (
    ImmediateExecutor,
    MockBlobProvider,
    MockGenerationProvider,
    PNG_BYTES,
)

PERSONA_REPLY = '{"traits": ["Builder"], "summary": "You make things."}'


class BlockingGeneration:
    """Holds each generate() call until release is set."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def generate(self, prompt, *, system=None, image=None):
        self.started.set()
        self.release.wait(5)
        return PERSONA_REPLY


def _note(store, text, tags=None):
    enrichment = {"summary": text.title(), "tags": tags} if tags else None
    return store.create_reflection("u1", {"user_note": text, "enrichment": enrichment})


@pytest.fixture
def trigger(store):
    t = EnrichmentTrigger(
        store, MockBlobProvider(), MockGenerationProvider(), executor=ImmediateExecutor(),
    )
    yield t
    t.close()


@pytest.fixture
def persona_generation():
    return MockGenerationProvider(PERSONA_REPLY)


@pytest.fixture
def persona_auto(store, persona_generation, timer_factory):
    auto = PersonaAutoTrigger(
        PersonaSynthesizer(store, persona_generation),
        "u1",
        delay=2.0,
        timer_factory=timer_factory,
        executor=ImmediateExecutor(),
    )
    yield auto
    auto.close()


class TestViews:
    def test_initial_snapshot(self, store):
        _note(store, "rust ownership", ["Rust", "memory"])
        _note(store, "async rust", ["rust"])
        with DashboardSession(store, "u1") as session:
            assert len(session.records) == 2
            assert session.results == session.records
            assert session.trending == ["rust", "memory"]

    def test_recomputed_on_every_change(self, store):
        with DashboardSession(store, "u1", query="jazz") as session:
            assert session.records == []
            _note(store, "jazz chords", ["music"])
            _note(store, "rust traits", ["rust"])
            assert len(session.records) == 2
            assert [r.user_note for r in session.results] == ["jazz chords"]
            assert set(session.trending) == {"music", "rust"}

    def test_set_query(self, store):
        _note(store, "jazz chords", ["music"])
        _note(store, "rust traits", ["rust"])
        with DashboardSession(store, "u1") as session:
            assert [r.user_note for r in session.set_query("RUST")] == ["rust traits"]
            assert session.query == "RUST"
            assert len(session.set_query("")) == 2

    def test_other_owners_ignored(self, store):
        with DashboardSession(store, "u1") as session:
            store.create_reflection("u2", {"user_note": "not mine"})
            assert session.records == []

    def test_close_unsubscribes(self, store):
        session = DashboardSession(store, "u1").open()
        session.close()
        _note(store, "after close")
        assert session.records == []
        session.close()  # idempotent


class TestEnrichment:
    def test_captured_record_enriched(self, store, storage, trigger):
        url = storage.upload("captures/u1/1.png", PNG_BYTES, "image/png")
        store.create_reflection("u1", {"content": url, "user_note": "chart", "enrichment": None})

        with DashboardSession(store, "u1", trigger=trigger) as session:
            session.wait(timeout=5)
            assert session.records[0].is_enriched
            assert session.records[0].summary == "A summary"
            assert session.trending == ["a", "b", "c"]

    def test_new_capture_enriched_while_open(self, store, storage, trigger):
        with DashboardSession(store, "u1", trigger=trigger) as session:
            url = storage.upload("captures/u1/2.png", PNG_BYTES, "image/png")
            store.create_reflection("u1", {"content": url, "enrichment": None})
            assert session.records[0].is_enriched

    def test_notes_not_enriched(self, store, trigger):
        _note(store, "text only")
        with DashboardSession(store, "u1", trigger=trigger) as session:
            assert session.futures == []
            assert not session.records[0].is_enriched


class TestMilestone:
    def test_flag_exposed_and_cleared(self, store):
        store.merge_profile("u1", {"milestone_flag": 25})
        with DashboardSession(store, "u1") as session:
            assert session.milestone == 25
            title, _ = session.milestone_text()
            assert title
            session.clear_milestone()
            assert session.milestone is None
            assert session.milestone_text() is None
        assert store.get_profile("u1").milestone_flag is None

    def test_no_profile(self, store):
        with DashboardSession(store, "u1") as session:
            assert session.milestone is None


class TestPersonaAuto:
    def test_count_trigger(self, store, persona_auto, persona_generation):
        for i in range(5):
            _note(store, f"note {i}")
        with DashboardSession(store, "u1", persona_auto=persona_auto) as session:
            profile = store.get_profile("u1")
            assert profile.persona.traits == ["Builder"]
            assert profile.last_analysis_count == 5
            assert session.persona_notice is None

            _note(store, "one more")
            assert len(persona_generation.calls) == 1

            for i in range(4):
                _note(store, f"later {i}")
            assert len(persona_generation.calls) == 2
            assert store.get_profile("u1").last_analysis_count == 10

    def test_below_threshold(self, store, persona_auto, persona_generation):
        for i in range(4):
            _note(store, f"note {i}")
        with DashboardSession(store, "u1", persona_auto=persona_auto):
            assert persona_generation.calls == []

    def test_external_profile_debounced(self, store, persona_auto, persona_generation, timer_factory):
        for i in range(3):
            _note(store, f"note {i}")
        store.merge_profile("u1", {"last_analyzed_at": "2026-01-01T00:00:00Z", "last_analysis_count": 3})

        with DashboardSession(store, "u1", persona_auto=persona_auto) as session:
            assert timer_factory.timers == []
            for headline in ("Engineer", "Staff Engineer"):
                store.merge_profile("u1", {
                    "external_profile": ExternalProfile(headline=headline).to_doc(),
                })
            assert len(timer_factory.live) == 1
            assert persona_generation.calls == []

            timer_factory.live[0].fire()
            assert len(persona_generation.calls) == 1
            assert session.profile.persona.summary == "You make things."

    def test_close_cancels_debounce(self, store, persona_auto, timer_factory):
        store.merge_profile("u1", {"last_analyzed_at": "2026-01-01T00:00:00Z"})
        session = DashboardSession(store, "u1", persona_auto=persona_auto).open()
        store.merge_profile("u1", {"external_profile": ExternalProfile(name="Ada").to_doc()})
        assert len(timer_factory.live) == 1
        session.close()
        assert timer_factory.live == []

    def test_failed_run_not_retried_on_unrelated_writes(self, store, timer_factory):
        records = [_note(store, f"note {i}", ["tag"]) for i in range(6)]
        generation = MockGenerationProvider("not json")
        auto = PersonaAutoTrigger(
            PersonaSynthesizer(store, generation), "u1",
            timer_factory=timer_factory, executor=ImmediateExecutor(),
        )
        with DashboardSession(store, "u1", persona_auto=auto) as session:
            assert len(generation.calls) == 1
            assert session.persona_notice == FAILED_MESSAGE

            for text in ("edited", "edited again", "and again"):
                store.merge_reflection(records[0].id, {"user_note": text})
            assert len(generation.calls) == 1

            _note(store, "a new one")
            assert len(generation.calls) == 2

    def test_close_waits_for_running_synthesis(self, store, timer_factory):
        for i in range(5):
            _note(store, f"note {i}")
        generation = BlockingGeneration()
        auto = PersonaAutoTrigger(
            PersonaSynthesizer(store, generation), "u1", timer_factory=timer_factory,
        )
        session = DashboardSession(store, "u1", persona_auto=auto).open()
        assert generation.started.wait(5)

        threading.Timer(0.1, generation.release.set).start()
        session.close()
        assert store.get_profile("u1").persona.traits == ["Builder"]

    def test_failure_on_closed_store_is_contained(self, tmp_path, timer_factory, caplog):
        closed = DocumentStore(tmp_path / "closed.db")
        closed.close()
        auto = PersonaAutoTrigger(
            PersonaSynthesizer(closed, MockGenerationProvider(PERSONA_REPLY)), "u1",
            timer_factory=timer_factory, executor=ImmediateExecutor(),
        )
        auto.on_records([Reflection(id=str(i), owner="u1") for i in range(5)])
        assert auto.notice == FAILED_MESSAGE
        assert "Auto persona update failed" in caplog.text
        auto.close()
