"""Per-month aggregation of raw response rows into per-question summaries.

Rows are read once per month and grouped in Python; every summary is built
by :func:`summarize_question`, which is pure so it can be exercised without
a database. Percentages are on a 0-100 scale and left unrounded.
"""

import logging
import math
import statistics
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models
from .exceptions import NotFoundError
from .models import AWARENESS_LEVELS, SENTIMENT_LEVELS
from .periods import Period, current_period, periods_between
from .sorting import rank_options, rank_texts

logger = logging.getLogger(__name__)

NUMERIC_BIN_COUNT = 10

CHOICE_TYPES = ("single", "single-freeform", "multiple", "multiple-freeform")


def percentage(count: int, total: int) -> float:
    return count * 100 / total if total > 0 else 0.0


def _distinct_sessions(rows: Iterable) -> int:
    return len({row.session_id for row in rows})


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _format_bound(value: float) -> str:
    return f"{value:g}"


# --- per-type summaries ---


def _option_entries(options: Sequence, counts: Counter, answered: int) -> List[Dict]:
    return [
        {
            "option_slug": option.slug,
            "label": option.label,
            "order": option.order,
            "count": counts.get(option.slug, 0),
            "percentage": percentage(counts.get(option.slug, 0), answered),
        }
        for option in options
    ]


def summarize_choice(question, options: Sequence, answered_rows: Sequence) -> Dict:
    """
    Single and multiple choice, with or without write-ins. The percentage
    denominator is the number of distinct answering sessions, so a multiple
    choice question's percentages may add up to more than 100.
    """
    counts: Counter = Counter()
    write_ins: Counter = Counter()

    for row in answered_rows:
        if question.type in ("single", "single-freeform"):
            if row.single_option_slug:
                counts[row.single_option_slug] += 1
            text = _clean_text(row.writein_response)
            if text:
                write_ins[text] += 1
        else:
            if row.option_slug:
                counts[row.option_slug] += 1
            for entry in row.multiple_writein_responses or []:
                text = _clean_text(entry)
                if text:
                    write_ins[text] += 1

    answered = _distinct_sessions(answered_rows)
    entries = _option_entries(options, counts, answered)
    return {
        "answered": answered,
        "options": entries,
        "ranked": rank_options(entries),
        "write_ins": rank_texts(write_ins),
    }


def _level_distribution(levels: Dict[int, str], counts: Counter, total: int) -> List[Dict]:
    return [
        {
            "level": level,
            "label": label,
            "count": counts.get(level, 0),
            "percentage": percentage(counts.get(level, 0), total),
        }
        for level, label in levels.items()
    ]


def summarize_experience(question, options: Sequence, answered_rows: Sequence) -> Dict:
    """
    One awareness/sentiment cross-tab per option plus the two marginal
    distributions. Both marginals use the option's awareness responses as
    denominator; a missing or unknown awareness value counts as "never
    heard of it".
    """
    rows_by_option = defaultdict(list)
    for row in answered_rows:
        rows_by_option[row.option_slug].append(row)

    entries = []
    for option in options:
        option_rows = rows_by_option.get(option.slug, [])
        awareness_counts: Counter = Counter()
        sentiment_counts: Counter = Counter()
        combined_counts: Counter = Counter()

        for row in option_rows:
            awareness = row.experience_awareness
            if awareness not in AWARENESS_LEVELS:
                awareness = 0
            awareness_counts[awareness] += 1

            sentiment = row.experience_sentiment
            if sentiment in SENTIMENT_LEVELS and awareness > 0:
                sentiment_counts[sentiment] += 1
                combined_counts[(awareness, sentiment)] += 1

        total = len(option_rows)
        entries.append(
            {
                "option_slug": option.slug,
                "label": option.label,
                "description": option.description,
                "order": option.order,
                "total": total,
                "awareness": _level_distribution(AWARENESS_LEVELS, awareness_counts, total),
                "sentiment": _level_distribution(SENTIMENT_LEVELS, sentiment_counts, total),
                "combined": [
                    {
                        "awareness": awareness,
                        "sentiment": sentiment,
                        "count": combined_counts.get((awareness, sentiment), 0),
                    }
                    for awareness in AWARENESS_LEVELS
                    if awareness > 0
                    for sentiment in SENTIMENT_LEVELS
                ],
            }
        )
    return {"answered": _distinct_sessions(answered_rows), "options": entries}


def histogram(
    values: Sequence[float],
    lower: Optional[float],
    upper: Optional[float],
    bins: int = NUMERIC_BIN_COUNT,
) -> List[Dict]:
    """Equal-width bins over [lower, upper]; the last bin is closed."""
    if lower is None or upper is None:
        return []
    if not math.isfinite(upper - lower):
        logger.warning("Histogram range %r-%r is not finite, no bins built", lower, upper)
        return []
    total = len(values)
    if upper <= lower:
        return [
            {
                "start": lower,
                "end": upper,
                "range": f"{_format_bound(lower)}-{_format_bound(upper)}",
                "count": total,
                "percentage": percentage(total, total),
            }
        ]

    width = (upper - lower) / bins
    counts = [0] * bins
    for value in values:
        index = int((value - lower) // width)
        counts[min(max(index, 0), bins - 1)] += 1

    distribution = []
    for index, count in enumerate(counts):
        start = lower + index * width
        end = upper if index == bins - 1 else lower + (index + 1) * width
        distribution.append(
            {
                "start": start,
                "end": end,
                "range": f"{_format_bound(start)}-{_format_bound(end)}",
                "count": count,
                "percentage": percentage(count, total),
            }
        )
    return distribution


def summarize_numeric(question, answered_rows: Sequence) -> Dict:
    values = []
    for row in answered_rows:
        if row.numeric_response is None:
            continue
        value = float(row.numeric_response)
        if math.isfinite(value):
            values.append(value)
        else:
            logger.warning(
                "Ignoring non-finite value %r for %s from session %s",
                value,
                question.slug,
                row.session_id,
            )
    values.sort()
    if question.numeric_min is not None and question.numeric_max is not None:
        lower, upper = question.numeric_min, question.numeric_max
    elif values:
        lower, upper = values[0], values[-1]
    else:
        lower = upper = None

    if values:
        summary = {
            "mean": statistics.fmean(values),
            "median": statistics.median(values),
            "min": values[0],
            "max": values[-1],
            "count": len(values),
        }
    else:
        summary = {"mean": 0.0, "median": 0.0, "min": 0.0, "max": 0.0, "count": 0}

    return {"summary": summary, "distribution": histogram(values, lower, upper)}


def summarize_freeform(question, answered_rows: Sequence) -> Dict:
    counts: Counter = Counter()
    for row in answered_rows:
        text = _clean_text(row.freeform_response)
        if text:
            counts[text] += 1
    return {"responses": rank_texts(counts), "total_count": sum(counts.values())}


def collect_comments(answered_rows: Sequence) -> List[Dict]:
    comments = []
    for row in answered_rows:
        text = _clean_text(row.comment)
        if text:
            comments.append(
                {
                    "comment": text,
                    "session_id": row.session_id,
                    "option_slug": row.option_slug or None,
                }
            )
    return comments


def split_orphans(question, options: Sequence, rows: Sequence) -> Tuple[List, List]:
    """
    Separate rows pointing at options that are no longer active for the
    question. Those rows can't be placed in any bucket of the summary.
    A single-choice row that also carries a write-in stays in ``valid``
    for its write-in and is reported in ``orphaned`` as well; its stale
    option never matches an active option, so it is not counted.
    """
    option_slugs = {option.slug for option in options}
    valid, orphaned = [], []
    for row in rows:
        if row.skipped:
            valid.append(row)
        elif question.type in ("single", "single-freeform"):
            if row.single_option_slug and row.single_option_slug not in option_slugs:
                orphaned.append(row)
                if _clean_text(row.writein_response):
                    valid.append(row)
            else:
                valid.append(row)
        elif question.type in ("multiple", "multiple-freeform", "experience"):
            if row.option_slug and row.option_slug not in option_slugs:
                orphaned.append(row)
            else:
                valid.append(row)
        else:
            valid.append(row)
    return valid, orphaned


def summarize_question(question, options: Sequence, rows: Sequence) -> Dict:
    """
    Summary for one question over the rows of one month. ``rows`` must
    already be restricted to this question; ``options`` are its active
    options in declared order.
    """
    answered_rows = [row for row in rows if not row.skipped]
    total = _distinct_sessions(rows)
    skipped = _distinct_sessions(row for row in rows if row.skipped)

    if question.type in CHOICE_TYPES:
        data = summarize_choice(question, options, answered_rows)
    elif question.type == "experience":
        data = summarize_experience(question, options, answered_rows)
    elif question.type == "numeric":
        data = summarize_numeric(question, answered_rows)
    elif question.type == "freeform":
        data = summarize_freeform(question, answered_rows)
    else:
        logger.warning(
            "Question %s has unknown type %r, no summary built", question.slug, question.type
        )
        data = None

    return {
        "slug": question.slug,
        "title": question.title,
        "description": question.description,
        "type": question.type,
        "section_slug": question.section_slug,
        "multiple_max": question.multiple_max,
        "randomize": bool(question.randomize),
        "total_responses": total,
        "skipped_responses": skipped,
        "response_rate": (total - skipped) / total if total else 0.0,
        "data": data,
        "comments": collect_comments(answered_rows),
    }


def summarize_month(
    period: Period,
    questions: Sequence,
    options_by_question: Dict[str, List],
    rows: Sequence,
) -> Dict:
    rows_by_question = defaultdict(list)
    for row in rows:
        rows_by_question[row.question_slug].append(row)

    active_slugs = {question.slug for question in questions}
    orphaned = 0
    for slug, question_rows in rows_by_question.items():
        if slug not in active_slugs:
            orphaned += len(question_rows)
            logger.warning(
                "%d response rows for %s reference inactive question %s; excluded",
                len(question_rows),
                period.label,
                slug,
            )

    reports = []
    for question in questions:
        options = options_by_question.get(question.slug, [])
        valid, orphans = split_orphans(question, options, rows_by_question.get(question.slug, []))
        if orphans:
            orphaned += len(orphans)
            logger.warning(
                "%d response rows for %s question %s reference inactive options; not counted",
                len(orphans),
                period.label,
                question.slug,
            )
        reports.append(summarize_question(question, options, valid))

    return {
        "year": period.year,
        "month": period.month,
        "label": period.label,
        "total_responses": len(rows),
        "unique_sessions": _distinct_sessions(rows),
        "orphaned_responses": orphaned,
        "questions": reports,
    }


# --- database access ---


async def load_active_questions(db: AsyncSession, slug: Optional[str] = None):
    stmt = (
        select(models.Question)
        .join(models.Section, models.Question.section_slug == models.Section.slug)
        .where(models.Question.active.is_(True))
        .order_by(models.Section.order, models.Question.order)
    )
    if slug is not None:
        stmt = stmt.where(models.Question.slug == slug)
    result = await db.execute(stmt)
    return result.scalars().all()


async def load_active_options(
    db: AsyncSession, question_slugs: Sequence[str]
) -> Dict[str, List]:
    options_by_question: Dict[str, List] = defaultdict(list)
    if not question_slugs:
        return options_by_question
    result = await db.execute(
        select(models.Option)
        .where(
            models.Option.active.is_(True),
            models.Option.question_slug.in_(list(question_slugs)),
        )
        .order_by(models.Option.question_slug, models.Option.order)
    )
    for option in result.scalars().all():
        options_by_question[option.question_slug].append(option)
    return options_by_question


async def load_period_rows(
    db: AsyncSession, period: Period, question_slug: Optional[str] = None
):
    stmt = select(models.Response).where(
        models.Response.year == period.year,
        models.Response.month == period.month,
    )
    if question_slug is not None:
        stmt = stmt.where(models.Response.question_slug == question_slug)
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_month_summary(db: AsyncSession, period: Period) -> Dict:
    questions = await load_active_questions(db)
    options_by_question = await load_active_options(db, [q.slug for q in questions])
    rows = await load_period_rows(db, period)
    logger.debug(
        "Summarizing %s: %d questions, %d rows", period.label, len(questions), len(rows)
    )
    return summarize_month(period, questions, options_by_question, rows)


async def get_question_report(db: AsyncSession, slug: str, period: Period) -> Dict:
    questions = await load_active_questions(db, slug=slug)
    if not questions:
        raise NotFoundError(f"Question '{slug}' not found or inactive")
    question = questions[0]
    options = (await load_active_options(db, [slug])).get(slug, [])
    rows = await load_period_rows(db, period, question_slug=slug)
    valid, orphans = split_orphans(question, options, rows)
    if orphans:
        logger.warning(
            "%d response rows for %s question %s reference inactive options; not counted",
            len(orphans),
            period.label,
            slug,
        )
    report = summarize_question(question, options, valid)
    report.update({"year": period.year, "month": period.month})
    return report


async def get_available_periods(db: AsyncSession) -> List[Period]:
    result = await db.execute(
        select(models.Response.year, models.Response.month)
        .group_by(models.Response.year, models.Response.month)
        .order_by(models.Response.year, models.Response.month)
    )
    return [Period(year, month) for year, month in result.all()]


async def get_first_period(db: AsyncSession) -> Optional[Period]:
    result = await db.execute(
        select(func.min(models.Response.year * 100 + models.Response.month))
    )
    first = result.scalar_one_or_none()
    if first is None:
        return None
    return Period(first // 100, first % 100)


async def get_all_periods_since_start(db: AsyncSession) -> List[Period]:
    first = await get_first_period(db)
    if first is None:
        return []
    return periods_between(first, current_period())


async def get_question_trends(db: AsyncSession, slug: str) -> List[Dict]:
    if not await load_active_questions(db, slug=slug):
        raise NotFoundError(f"Question '{slug}' not found or inactive")
    trends = []
    for period in await get_available_periods(db):
        report = await get_question_report(db, slug, period)
        trends.append(
            {
                "year": period.year,
                "month": period.month,
                "label": period.label,
                "type": report["type"],
                "total_responses": report["total_responses"],
                "skipped_responses": report["skipped_responses"],
                "data": report["data"],
            }
        )
    return trends
