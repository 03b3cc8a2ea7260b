"""Ordering helpers for report display."""

from typing import Dict, Iterable, List, Literal, Sequence

GroupBy = Literal["awareness", "sentiment"]
SortDirection = Literal["asc", "desc"]

# Tie-break order once the primary level is equal
AWARENESS_SORT_ORDER = (3, 2, 1, 0)
SENTIMENT_SORT_ORDER = (1, 0, -1)


def rank_options(options: Iterable[Dict]) -> List[Dict]:
    """Count descending, then declared order ascending."""
    return sorted(options, key=lambda o: (-o["count"], o["order"]))


def rank_texts(counts: Dict[str, int]) -> List[Dict]:
    """Distinct texts by occurrence count descending, ties alphabetical."""
    return [
        {"response": text, "count": count}
        for text, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


def _level_percentage(distribution: Sequence[Dict], level: int) -> int:
    for entry in distribution:
        if entry["level"] == level:
            return round(entry["percentage"])
    return 0


def _sentiment_percentage(option: Dict, sentiment: int) -> int:
    total = sum(entry["count"] for entry in option["awareness"])
    if total == 0:
        return 0
    count = sum(
        cell["count"] for cell in option["combined"] if cell["sentiment"] == sentiment
    )
    return round(count / total * 100)


def _sort_key(option: Dict, group_by: GroupBy, primary: int) -> List[int]:
    if group_by == "awareness":
        order = AWARENESS_SORT_ORDER
        value = lambda level: _level_percentage(option["awareness"], level)  # noqa: E731
    else:
        order = SENTIMENT_SORT_ORDER
        value = lambda level: _sentiment_percentage(option, level)  # noqa: E731
    return [value(primary)] + [value(level) for level in order if level != primary]


def sort_experience_options(
    options: Sequence[Dict],
    group_by: GroupBy = "awareness",
    sort_by: int = 3,
    direction: SortDirection = "desc",
) -> List[Dict]:
    """
    Sort experience option summaries by the rounded percentage of one
    awareness (or sentiment) level, breaking ties with the remaining levels
    in their fixed order. Percentages are rounded to whole numbers first so
    near-identical options keep their incoming order.
    """
    if group_by not in ("awareness", "sentiment"):
        raise ValueError(f"group_by must be 'awareness' or 'sentiment', got {group_by!r}")
    return sorted(
        options,
        key=lambda option: _sort_key(option, group_by, sort_by),
        reverse=direction == "desc",
    )
