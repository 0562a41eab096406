"""Tests for milestones, levels and record creation."""

import re

import pytest

from reflections.errors import ValidationError
from reflections.ingest import capture, create_record, manual_upload, text_note
from reflections.milestones import (
    MILESTONE_THRESHOLDS,
    level_for_count,
    milestone_for_count,
    milestone_message,
)
from reflections.types import Provenance

from tests.conftest import PNG_BYTES


class TestMilestonePolicy:
    @pytest.mark.parametrize("count_before,expected", [
        (0, None), (8, None), (9, 10), (10, None), (24, 25), (49, 50), (99, 100), (100, None),
    ])
    def test_thresholds(self, count_before, expected):
        assert milestone_for_count(count_before) == expected

    def test_messages(self):
        for threshold in MILESTONE_THRESHOLDS:
            title, message = milestone_message(threshold)
            assert title and str(threshold) in message
        assert milestone_message(10)[0] == "Identity Initialized"

    def test_ninth_then_tenth(self, store):
        for i in range(9):
            _, milestone = text_note(store, "u1", f"note {i}")
            assert milestone is None
        assert store.get_profile("u1") is None

        _, milestone = text_note(store, "u1", "note 10")
        assert milestone == 10
        assert store.get_profile("u1").milestone_flag == 10

    def test_cleared_flag_not_reset_by_later_creates(self, store):
        for i in range(10):
            text_note(store, "u1", f"note {i}")
        store.merge_profile("u1", {"milestone_flag": None})
        for i in range(5):
            text_note(store, "u1", f"more {i}")
        assert store.get_profile("u1").milestone_flag is None

    def test_milestones_are_per_owner(self, store):
        for i in range(9):
            text_note(store, "u1", f"note {i}")
        _, milestone = text_note(store, "u2", "first for u2")
        assert milestone is None

    def test_create_record_returns_record(self, store):
        record, milestone = create_record(store, "u1", {"user_note": "x"})
        assert record.owner == "u1"
        assert milestone is None


class TestLevels:
    def test_shadow(self):
        level = level_for_count(0)
        assert level.name == "SHADOW"
        assert level.describe() == "0/25 - Start your journey"

    def test_progress(self):
        level = level_for_count(30)
        assert level.name == "CLARITY"
        assert level.target == 50
        assert level.remaining == 20
        assert level.progress == pytest.approx(60.0)
        assert "20 more to reach Radiance" in level.describe()

    def test_boundaries(self):
        assert level_for_count(24).name == "SHADOW"
        assert level_for_count(25).name == "CLARITY"
        assert level_for_count(99).name == "RADIANCE"
        top = level_for_count(150)
        assert top.name == "ESSENCE"
        assert top.progress == 100.0
        assert top.next_name is None


class TestIngest:
    def test_capture_stores_blob_and_record(self, store, storage):
        record, _ = capture(store, storage, "u1", PNG_BYTES, note="look", source_url="https://a.example")
        assert record.provenance == Provenance.CAPTURED
        assert record.enrichment is None
        assert re.search(r"/captures/u1/\d+\.png$", record.content)
        assert record.source_url == "https://a.example"

    def test_capture_requires_data(self, store, storage):
        with pytest.raises(ValidationError):
            capture(store, storage, "u1", b"")
        assert store.count_reflections("u1") == 0

    def test_manual_upload(self, store, storage, tmp_path):
        src = tmp_path / "my chart.png"
        src.write_bytes(PNG_BYTES)
        record, _ = manual_upload(store, storage, "u1", src, note="n", title="Chart")
        assert record.provenance == Provenance.MANUAL_UPLOAD
        assert record.title == "Chart"
        assert re.search(r"/manual_uploads/u1/\d+_my_chart\.png$", record.content)

    def test_manual_upload_missing_file(self, store, storage, tmp_path):
        with pytest.raises(ValidationError, match="File not found"):
            manual_upload(store, storage, "u1", tmp_path / "missing.png")
        assert store.count_reflections("u1") == 0

    def test_text_note_has_no_content(self, store):
        record, _ = text_note(store, "u1", "  just a thought  ")
        assert record.content is None
        assert record.user_note == "just a thought"

    def test_empty_note_rejected(self, store):
        with pytest.raises(ValidationError):
            text_note(store, "u1", "   ")
