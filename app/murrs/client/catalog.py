from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TypeVar

from app.murrs.client.api import ApiPaper
from app.murrs.constants import ALL_DISCIPLINES, DISCIPLINES_BY_SCHOOL

T = TypeVar("T")

CATEGORIES = ("all", "trending", "highest-rated", "most-downloaded")

SORT_BY_CATEGORY = {
    "all": "relevance",
    "trending": "trending",
    "highest-rated": "highest-rated",
    "most-downloaded": "downloads",
}

TRENDING_VIEWS = 2500
RESULTS_PER_PAGE = 6


def sort_for_category(category: str) -> str:
    return SORT_BY_CATEGORY.get(category, "relevance")


def category_counts(papers: Sequence[ApiPaper]) -> dict[str, int]:
    return {
        "all": len(papers),
        "trending": sum(1 for p in papers if p.views > TRENDING_VIEWS),
        "highest": min(4, len(papers)),
        "downloads": min(5, len(papers)),
    }


def paginate(items: Sequence[T], page: int, per_page: int = RESULTS_PER_PAGE) -> list[T]:
    """Zero-based page slice."""
    if page < 0:
        return []
    return list(items[page * per_page : (page + 1) * per_page])


def page_count(total: int, per_page: int = RESULTS_PER_PAGE) -> int:
    return math.ceil(total / per_page) if total > 0 else 0


def toggle_filter(filters: dict[str, list[str]], category: str, value: str) -> dict[str, list[str]]:
    """Single-select per category; choosing the selected value again clears it."""
    current = filters.get(category) or []
    nxt = dict(filters)
    nxt[category] = [v for v in current if v != value] if value in current else [value]
    return nxt


def visible_disciplines(school: str | None) -> list[str]:
    if school:
        return list(DISCIPLINES_BY_SCHOOL.get(school, ()))
    return list(ALL_DISCIPLINES)


def prune_filters(filters: dict[str, list[str]]) -> dict[str, list[str]]:
    """Drops a selected discipline that is not taught at the selected school (`university` filter)."""
    school = (filters.get("university") or [None])[0]
    discipline = (filters.get("discipline") or [None])[0]
    if not school or not discipline or discipline in visible_disciplines(school):
        return filters
    nxt = dict(filters)
    del nxt["discipline"]
    return nxt
