"""Tests for the weekly radar, growth suggestions and pursuits."""

import json
from unittest.mock import MagicMock

import pytest

from reflections.errors import GenerationError, ValidationError
from reflections.radar import (
    EMAIL_SUBJECT,
    RESUME_SUGGESTION_CHARS,
    WeeklyRadar,
    active_pursuits,
    build_growth_prompt,
    build_radar_prompt,
    generate_suggestions,
    parse_growth_cards,
    parse_radar,
    render_radar_email,
    save_pursuit,
    traits_text,
    update_pursuit,
)
from reflections.types import Persona, Provenance, PursuitStatus, UserProfile

from tests.conftest import MockGenerationProvider

RADAR_REPLY = json.dumps({
    "deep_dive": {"title": "Agents", "content": "You read a lot about agents."},
    "wildcard": {"title": "Jazz x Code", "content": "Improvisation and refactoring."},
    "spark": {"title": "Write it up", "content": "Draft a post."},
    "youtube": [
        {"keyword": "llm agents", "reason": "Core interest"},
        {"keyword": "jazz theory", "reason": "Hobby"},
        {"keyword": "writing", "reason": "Spark"},
    ],
})

CARDS_REPLY = json.dumps([
    {"type": "Deep Dive", "title": "Master Rust", "description": "Why and how.", "action_item": "Read the book"},
    {"type": "Wildcard", "title": "Sound Design", "description": "Audio meets code.", "actionItem": "Try a synth"},
    {"type": "Spark", "title": "First Principles", "description": "Question it.", "action_item": ""},
])


class TestParseRadar:
    def test_valid(self):
        radar = parse_radar(RADAR_REPLY)
        assert set(radar["cards"]) == {"deep_dive", "wildcard", "spark"}
        assert radar["youtube"][0] == {"keyword": "llm agents", "reason": "Core interest"}

    def test_camel_case_alias(self):
        data = json.loads(RADAR_REPLY)
        data["deepDive"] = data.pop("deep_dive")
        assert parse_radar(json.dumps(data))["cards"]["deep_dive"]["title"] == "Agents"

    def test_missing_card(self):
        data = json.loads(RADAR_REPLY)
        del data["spark"]
        with pytest.raises(ValueError, match="spark"):
            parse_radar(json.dumps(data))

    def test_keywords_capped_at_three(self):
        data = json.loads(RADAR_REPLY)
        data["youtube"] += [{"keyword": f"k{i}", "reason": ""} for i in range(3)]
        assert len(parse_radar(json.dumps(data))["youtube"]) == 3


class TestPrompts:
    def test_traits_default(self):
        assert traits_text(None) == "General User"
        assert traits_text(UserProfile(uid="u1")) == "General User"

    def test_traits_from_persona(self):
        profile = UserProfile(uid="u1", persona=Persona(traits=["Builder"], summary="s"))
        assert traits_text(profile) == '["Builder"]'

    def test_radar_prompt_lists_records(self, store):
        store.create_reflection("u1", {"user_note": "read about agents"})
        prompt = build_radar_prompt(store.list_reflections("u1"), "General User")
        assert "Notes: read about agents" in prompt
        assert "User Traits: General User" in prompt

    def test_email_is_escaped(self):
        radar = parse_radar(RADAR_REPLY)
        radar["cards"]["spark"]["title"] = "<script>x</script>"
        body = render_radar_email(radar["cards"], [
            {"title": "Vid", "thumbnail": "https://i/x.jpg", "url": "https://y/v", "reason": "r"},
        ])
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "Global Pulse Discovery" in body


class TestWeeklyRadar:
    def _radar(self, store, generation=None, video=None, email=None):
        return WeeklyRadar(
            store, generation or MockGenerationProvider(RADAR_REPLY),
            video_search=video, email_sender=email, sender="Radar <r@example.com>",
        )

    def test_no_data(self, store):
        generation = MockGenerationProvider(RADAR_REPLY)
        result = self._radar(store, generation).run("u1", "u1@example.com")
        assert result["status"] == "no-data"
        assert generation.calls == []

    def test_old_records_excluded(self, store):
        store.create_reflection("u1", {"user_note": "old"}, created_at="2020-01-01T00:00:00")
        assert self._radar(store).run("u1")["status"] == "no-data"

    def test_success_stores_and_emails(self, store):
        store.create_reflection("u1", {"user_note": "agents everywhere"})
        video = MagicMock()
        video.search.side_effect = [
            {"title": "Agents 101", "thumbnail": "https://i/1.jpg", "url": "https://yt/1"},
            None,
        ]
        email = MagicMock()

        result = self._radar(store, video=video, email=email).run("u1", "u1@example.com")

        assert result["status"] == "success"
        data = result["data"]
        assert data["cards"]["wildcard"]["title"] == "Jazz x Code"
        assert data["videos"] == [{"title": "Agents 101", "thumbnail": "https://i/1.jpg",
                                   "url": "https://yt/1", "reason": "Core interest"}]
        assert [c.args[0] for c in video.search.call_args_list] == ["llm agents", "jazz theory"]

        stored = store.get_profile("u1").last_radar
        assert stored["id"] == result["radar_id"]
        assert stored["type"] == "weekly_radar"

        kwargs = email.send.call_args.kwargs
        assert kwargs["to"] == "u1@example.com"
        assert kwargs["subject"] == EMAIL_SUBJECT
        assert kwargs["sender"] == "Radar <r@example.com>"
        assert "Agents 101" in kwargs["html"]

    def test_video_failure_skipped(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        video = MagicMock()
        video.search.side_effect = [RuntimeError("quota"),
                                    {"title": "Jazz", "thumbnail": "", "url": "https://yt/2"}]
        result = self._radar(store, video=video).run("u1")
        assert [v["title"] for v in result["data"]["videos"]] == ["Jazz"]

    def test_no_video_search_configured(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        assert self._radar(store).run("u1")["data"]["videos"] == []

    def test_email_failure_not_raised(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        email = MagicMock()
        email.send.side_effect = RuntimeError("smtp down")
        result = self._radar(store, email=email).run("u1", "u1@example.com")
        assert result["status"] == "success"

    def test_generation_failure(self, store):
        store.create_reflection("u1", {"user_note": "n"})
        with pytest.raises(GenerationError):
            self._radar(store, MockGenerationProvider("no json here")).run("u1")
        assert store.get_profile("u1") is None


class TestGrowthCards:
    def test_parse(self):
        cards = parse_growth_cards(CARDS_REPLY)
        assert [c["type"] for c in cards] == ["Deep Dive", "Wildcard", "Spark"]
        assert cards[1]["action_item"] == "Try a synth"

    def test_parse_rejects_empty(self):
        with pytest.raises(ValueError):
            parse_growth_cards("[]")

    def test_prompt_bounds_resume(self):
        profile = UserProfile(uid="u1", resume_text="x" * 5000)
        prompt = build_growth_prompt(profile, [])
        assert "x" * RESUME_SUGGESTION_CHARS + "..." in prompt
        assert "x" * (RESUME_SUGGESTION_CHARS + 1) not in prompt

    def test_generate_stores_cards(self, store):
        cards = generate_suggestions(store, MockGenerationProvider(CARDS_REPLY), "u1")
        profile = store.get_profile("u1")
        assert profile.radar_suggestions == cards
        assert profile.last_radar_at

    def test_generate_failure(self, store):
        with pytest.raises(GenerationError, match="Failed to generate suggestions"):
            generate_suggestions(store, MockGenerationProvider(RuntimeError("down")), "u1")


class TestPursuits:
    def test_save_pursuit(self, store):
        card = parse_growth_cards(CARDS_REPLY)[0]
        record = save_pursuit(store, "u1", card)
        assert record.provenance == Provenance.RADAR_SUGGESTION
        assert record.status == PursuitStatus.NOT_STARTED
        assert record.summary == "Master Rust"
        assert record.tags == ["Radar", "Deep Dive"]
        assert record.pursuit.action_item == "Read the book"
        assert record.content is None

    def test_duplicate_title_ignored(self, store):
        card = parse_growth_cards(CARDS_REPLY)[0]
        save_pursuit(store, "u1", card)
        assert save_pursuit(store, "u1", card) is None
        assert len(active_pursuits(store, "u1")) == 1

    def test_duplicate_after_summary_edit(self, store):
        card = parse_growth_cards(CARDS_REPLY)[0]
        record = save_pursuit(store, "u1", card)
        store.merge_reflection(record.id, {"enrichment": {"summary": "My own words", "tags": record.tags}})
        assert save_pursuit(store, "u1", card) is None
        assert len(active_pursuits(store, "u1")) == 1

    def test_active_pursuits_only_radar_records(self, store):
        store.create_reflection("u1", {"user_note": "plain"})
        save_pursuit(store, "u1", parse_growth_cards(CARDS_REPLY)[2])
        assert [p.summary for p in active_pursuits(store, "u1")] == ["First Principles"]

    def test_update_status(self, store):
        record = save_pursuit(store, "u1", parse_growth_cards(CARDS_REPLY)[0])
        updated = update_pursuit(store, "u1", record.id, status="In Progress", note="started")
        assert updated.status == PursuitStatus.IN_PROGRESS
        assert updated.user_note == "started"

    def test_update_rejects_unknown_status(self, store):
        record = save_pursuit(store, "u1", parse_growth_cards(CARDS_REPLY)[0])
        with pytest.raises(ValidationError, match="Unknown status"):
            update_pursuit(store, "u1", record.id, status="done-ish")
        assert store.get_reflection(record.id).status == PursuitStatus.NOT_STARTED

    def test_update_other_users_pursuit(self, store):
        record = save_pursuit(store, "u1", parse_growth_cards(CARDS_REPLY)[0])
        with pytest.raises(ValidationError, match="No pursuit"):
            update_pursuit(store, "u2", record.id, status="completed")
