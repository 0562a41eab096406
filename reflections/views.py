"""
Derived views over a record snapshot.

Pure functions, recomputed in full on every snapshot; no incremental index.
"""

from collections import Counter
from typing import Sequence

from .types import Reflection

TRENDING_LIMIT = 5


def matches(record: Reflection, query: str) -> bool:
    """Case-insensitive substring match against note, summary and tags."""
    q = query.lower()
    if q in (record.user_note or "").lower():
        return True
    if q in record.summary.lower():
        return True
    return any(q in tag.lower() for tag in record.tags)


def search_reflections(records: Sequence[Reflection], query: str) -> list[Reflection]:
    """
    Filter records by a free-text query.

    An empty query returns every record in input order.
    """
    if not query:
        return list(records)
    return [r for r in records if matches(r, query)]


def trending_tags(records: Sequence[Reflection], limit: int = TRENDING_LIMIT) -> list[str]:
    """
    Most frequent case-folded tags, descending by count.

    Ties keep first-appearance order across the input records.
    """
    counts: Counter[str] = Counter()
    for record in records:
        for tag in record.tags:
            counts[tag.lower()] += 1
    # Counter preserves insertion order and sorted() is stable
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [tag for tag, _ in ranked[:limit]]
