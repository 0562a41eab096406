"""Tests for search and trending-tag views."""

from reflections.types import Enrichment, Reflection
from reflections.views import TRENDING_LIMIT, matches, search_reflections, trending_tags


def _rec(id, note="", summary="", tags=()):
    enrichment = Enrichment(summary=summary, tags=list(tags)) if summary or tags else None
    return Reflection(id=id, owner="u1", user_note=note, enrichment=enrichment)


class TestSearch:
    def test_empty_query_returns_all_in_order(self):
        records = [_rec("1"), _rec("2"), _rec("3")]
        assert search_reflections(records, "") == records

    def test_case_insensitive_note(self):
        records = [_rec("1", note="Learning Python"), _rec("2", note="gardening")]
        assert [r.id for r in search_reflections(records, "PYTHON")] == ["1"]

    def test_matches_summary_and_tags(self):
        assert matches(_rec("1", summary="A chart of Q3 sales"), "q3")
        assert matches(_rec("2", summary="x", tags=["MachineLearning"]), "learning")
        assert not matches(_rec("3", note="nothing here", summary="x", tags=["y"]), "zzz")

    def test_unenriched_record_matches_note_only(self):
        assert matches(_rec("1", note="draft idea"), "idea")
        assert not matches(_rec("1", note="draft idea"), "summary")


class TestTrending:
    def test_case_folded_bucket(self):
        records = [_rec("1", summary="s", tags=["AI"]), _rec("2", summary="s", tags=["ai"])]
        assert trending_tags(records) == ["ai"]

    def test_case_folded_bucket_counts_both(self):
        records = [
            _rec("1", summary="s", tags=["design"]),
            _rec("2", summary="s", tags=["AI"]),
            _rec("3", summary="s", tags=["ai"]),
        ]
        assert trending_tags(records) == ["ai", "design"]

    def test_descending_by_count(self):
        records = [
            _rec("1", summary="s", tags=["python", "ml"]),
            _rec("2", summary="s", tags=["python"]),
            _rec("3", summary="s", tags=["ml", "python"]),
            _rec("4", summary="s", tags=["design"]),
        ]
        assert trending_tags(records) == ["python", "ml", "design"]

    def test_at_most_five(self):
        records = [_rec(str(i), summary="s", tags=[f"tag{i}"]) for i in range(8)]
        assert len(trending_tags(records)) == TRENDING_LIMIT == 5

    def test_ties_keep_first_appearance(self):
        records = [
            _rec("1", summary="s", tags=["beta", "alpha"]),
            _rec("2", summary="s", tags=["gamma"]),
        ]
        assert trending_tags(records) == ["beta", "alpha", "gamma"]

    def test_empty(self):
        assert trending_tags([]) == []
        assert trending_tags([_rec("1", note="no tags")]) == []
