"""Tests for persona synthesis, the auto-retrigger policy and the debouncer."""

import pytest

from reflections.debounce import Debouncer
from reflections.errors import GenerationError, ValidationError
from reflections.persona import (
    FAILED_MESSAGE,
    NO_RECORDS_MESSAGE,
    PersonaAutoTrigger,
    PersonaSynthesizer,
    should_retrigger,
)
from reflections.types import ExternalProfile, Persona, Reflection, UserProfile

from tests.conftest import ImmediateExecutor, MockGenerationProvider

PERSONA_REPLY = '{"traits": ["Systems Thinker", "Jazz Fan"], "summary": "You connect things."}'


def _records(n):
    return [Reflection(id=str(i), owner="u1") for i in range(n)]


# ---------------------------------------------------------------------------
# Debouncer
# ---------------------------------------------------------------------------


class TestDebouncer:
    def test_fires_once_after_quiet_period(self, timer_factory):
        calls = []
        d = Debouncer(2.0, lambda: calls.append(1), timer_factory=timer_factory)
        d.schedule()
        assert d.pending
        timer_factory.timers[0].fire()
        assert calls == [1]
        assert not d.pending

    def test_burst_coalesces(self, timer_factory):
        calls = []
        d = Debouncer(2.0, lambda: calls.append(1), timer_factory=timer_factory)
        for _ in range(3):
            d.schedule()
        assert [t.cancelled for t in timer_factory.timers] == [True, True, False]
        assert timer_factory.timers[-1].delay == 2.0
        # A superseded timer that fires anyway does nothing
        timer_factory.timers[0].fire()
        assert calls == []
        timer_factory.timers[-1].fire()
        assert calls == [1]

    def test_cancel(self, timer_factory):
        calls = []
        d = Debouncer(1.0, lambda: calls.append(1), timer_factory=timer_factory)
        d.schedule()
        d.cancel()
        timer_factory.timers[0].fire()
        assert calls == []

    def test_close_refuses_new_schedules(self, timer_factory):
        d = Debouncer(1.0, lambda: None, timer_factory=timer_factory)
        d.close()
        d.schedule()
        assert timer_factory.timers == []

    def test_action_errors_are_logged(self, timer_factory):
        def boom():
            raise RuntimeError("nope")

        d = Debouncer(1.0, boom, timer_factory=timer_factory)
        d.schedule()
        timer_factory.timers[0].fire()  # does not raise


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class TestPersonaSynthesizer:
    def test_no_records(self, store):
        with pytest.raises(ValidationError, match=NO_RECORDS_MESSAGE):
            PersonaSynthesizer(store, MockGenerationProvider(PERSONA_REPLY)).analyze("u1")

    def test_success_persists(self, store):
        for i in range(3):
            store.create_reflection("u1", {"user_note": f"n{i}"})
        persona = PersonaSynthesizer(store, MockGenerationProvider(PERSONA_REPLY)).analyze("u1")

        assert persona.traits == ["Systems Thinker", "Jazz Fan"]
        profile = store.get_profile("u1")
        assert profile.persona == persona
        assert profile.last_analysis_count == 3
        assert profile.last_analyzed_at

    def test_uses_profile_context(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        store.merge_profile("u1", {
            "display_name": "Ada",
            "resume_text": "Ten years of compilers",
            "external_profile": ExternalProfile(headline="Staff Engineer").to_doc(),
        })
        generation = MockGenerationProvider(PERSONA_REPLY)
        PersonaSynthesizer(store, generation).analyze("u1")
        prompt = generation.calls[0]["prompt"]
        assert "'Ada'" in prompt
        assert "Ten years of compilers" in prompt
        assert "Staff Engineer" in prompt

    def test_failure_keeps_previous_persona(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        old = Persona(traits=["Old"], summary="Before")
        store.merge_profile("u1", {"persona": old.to_doc(), "last_analysis_count": 1})

        with pytest.raises(GenerationError, match=FAILED_MESSAGE):
            PersonaSynthesizer(store, MockGenerationProvider("not json")).analyze("u1")

        assert store.get_profile("u1").persona == old


# ---------------------------------------------------------------------------
# Auto-retrigger
# ---------------------------------------------------------------------------


class StubSynthesizer:
    def __init__(self):
        self.runs = 0
        self.error = None

    def analyze(self, uid):
        self.runs += 1
        if self.error:
            raise self.error
        return Persona(traits=["t"], summary="s")


@pytest.fixture
def auto(timer_factory):
    synth = StubSynthesizer()
    trigger = PersonaAutoTrigger(
        synth, "u1", delay=2.0, timer_factory=timer_factory, executor=ImmediateExecutor(),
    )
    return trigger, synth


class TestRetriggerCount:
    def test_threshold(self):
        assert should_retrigger(10, 5) is True
        assert should_retrigger(9, 5) is False
        assert should_retrigger(5, 0) is True

    def test_difference_of_five_triggers(self, auto):
        trigger, synth = auto
        trigger.on_profile(UserProfile(uid="u1", last_analysis_count=5))
        trigger.on_records(_records(10))
        assert synth.runs == 1

    def test_difference_of_four_does_not(self, auto):
        trigger, synth = auto
        trigger.on_profile(UserProfile(uid="u1", last_analysis_count=5))
        trigger.on_records(_records(9))
        assert synth.runs == 0
        assert trigger.notice is None

    def test_notice_set_and_cleared(self, auto):
        trigger, synth = auto
        trigger.on_records(_records(6))
        assert synth.runs == 1
        assert trigger.notice is None  # cleared once the run succeeded

    def test_failure_surfaces_notice(self, auto):
        trigger, synth = auto
        synth.error = GenerationError(FAILED_MESSAGE)
        trigger.on_records(_records(6))
        assert trigger.notice == FAILED_MESSAGE

    def test_one_run_at_a_time(self, timer_factory):
        from tests.conftest import HeldExecutor

        synth = StubSynthesizer()
        held = HeldExecutor()
        trigger = PersonaAutoTrigger(synth, "u1", timer_factory=timer_factory, executor=held)
        trigger.on_records(_records(6))
        trigger.on_records(_records(7))
        assert len(held.queue) == 1
        assert "new reflections" in trigger.notice
        held.run_all()
        assert synth.runs == 1


class TestRetriggerExternalProfile:
    def _analyzed(self, **kw):
        return UserProfile(uid="u1", last_analyzed_at="2026-01-01T00:00:00",
                           last_analysis_count=100, **kw)

    def test_first_observation_is_baseline(self, auto, timer_factory):
        trigger, synth = auto
        trigger.on_profile(self._analyzed(external_profile=ExternalProfile(headline="A")))
        assert timer_factory.timers == []

    def test_change_debounced_then_runs(self, auto, timer_factory):
        trigger, synth = auto
        trigger.on_profile(self._analyzed())
        trigger.on_profile(self._analyzed(external_profile=ExternalProfile(headline="A")))
        trigger.on_profile(self._analyzed(external_profile=ExternalProfile(headline="B")))

        assert len(timer_factory.live) == 1
        assert synth.runs == 0
        timer_factory.live[0].fire()
        assert synth.runs == 1

    def test_unchanged_external_profile_ignored(self, auto, timer_factory):
        trigger, _ = auto
        external = ExternalProfile(headline="A")
        trigger.on_profile(self._analyzed(external_profile=external))
        trigger.on_profile(self._analyzed(external_profile=external, tagline="new"))
        assert timer_factory.timers == []

    def test_requires_previous_analysis(self, auto, timer_factory):
        trigger, synth = auto
        trigger.on_profile(UserProfile(uid="u1"))
        trigger.on_profile(UserProfile(uid="u1", external_profile=ExternalProfile(headline="A")))
        timer_factory.live[0].fire()
        assert synth.runs == 0

    def test_close_cancels_pending(self, auto, timer_factory):
        trigger, synth = auto
        trigger.on_profile(self._analyzed())
        trigger.on_profile(self._analyzed(external_profile=ExternalProfile(headline="A")))
        trigger.close()
        assert timer_factory.live == []
        timer_factory.timers[0].fire()
        assert synth.runs == 0
