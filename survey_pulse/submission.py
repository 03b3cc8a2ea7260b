"""Validating and persisting a session's answers for the current month."""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import AWARENESS_LEVELS, SENTIMENT_LEVELS, option_key
from .periods import Period, current_period

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    period: Period
    saved_questions: List[str]
    updated: bool


# --- sessions ---


async def create_session(db: AsyncSession) -> models.Session:
    session = models.Session(id=str(uuid.uuid4()))
    db.add(session)
    await db.flush()
    logger.info("Session created: %s", session.id)
    return session


async def get_session(db: AsyncSession, session_id: str) -> models.Session:
    session = await db.get(models.Session, session_id)
    if session is None:
        raise NotFoundError(f"Session '{session_id}' not found")
    return session


def has_completed(session: models.Session, period: Period) -> bool:
    return (session.completed_year, session.completed_month) == (
        period.year,
        period.month,
    )


async def clear_sessions(db: AsyncSession) -> int:
    """Admin bulk-clear: every session and every response it owns."""
    await db.execute(delete(models.Response))
    result = await db.execute(delete(models.Session))
    logger.warning("Cleared %d sessions and their responses", result.rowcount)
    return result.rowcount


# --- validation ---


def _resolve_option(question, option_slugs: Dict[str, object], value: str) -> str:
    """Accept short (``copilot``) or namespaced (``tools-used_copilot``) slugs."""
    if value in option_slugs:
        return value
    namespaced = option_key(question.slug, value)
    if namespaced in option_slugs:
        return namespaced
    raise ValidationError(
        f"Option '{value}' is not a valid option for question '{question.slug}'",
        question_slug=question.slug,
    )


def _require(condition: bool, question, message: str) -> None:
    if not condition:
        raise ValidationError(
            f"Question '{question.slug}': {message}", question_slug=question.slug
        )


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


def build_rows(
    question, options: Sequence, answer: schemas.AnswerIn, session_id: str, period: Period
) -> List[models.Response]:
    """
    Turn one answer into the rows that represent it. Raises
    ValidationError when the answer doesn't fit the question's type.
    """
    base = {
        "session_id": session_id,
        "year": period.year,
        "month": period.month,
        "question_slug": question.slug,
    }
    comment = _clean(answer.comment)

    if answer.skipped:
        return [models.Response(option_slug="", skipped=True, comment=comment, **base)]

    option_slugs = {option.slug: option for option in options}
    qtype = question.type

    if qtype in ("single", "single-freeform"):
        writein = _clean(answer.text_value) if qtype == "single-freeform" else None
        _require(
            answer.option_slug is not None or writein is not None,
            question,
            "an option" + (" or a write-in" if qtype == "single-freeform" else "") + " is required",
        )
        selected = (
            _resolve_option(question, option_slugs, answer.option_slug)
            if answer.option_slug is not None
            else None
        )
        return [
            models.Response(
                option_slug="",
                skipped=False,
                single_option_slug=selected,
                writein_response=writein,
                comment=comment,
                **base,
            )
        ]

    if qtype in ("multiple", "multiple-freeform"):
        selected = []
        for value in answer.option_slugs or []:
            slug = _resolve_option(question, option_slugs, value)
            if slug not in selected:
                selected.append(slug)
        writeins = []
        if qtype == "multiple-freeform":
            for text in answer.text_values or []:
                text = _clean(text)
                if text and text not in writeins:
                    writeins.append(text)
        _require(bool(selected or writeins), question, "at least one selection is required")
        if question.multiple_max is not None:
            _require(
                len(selected) <= question.multiple_max,
                question,
                f"at most {question.multiple_max} options may be selected",
            )
        rows = [
            models.Response(option_slug=slug, skipped=False, **base) for slug in selected
        ]
        if writeins:
            rows.append(
                models.Response(
                    option_slug="",
                    skipped=False,
                    multiple_writein_responses=writeins,
                    **base,
                )
            )
        rows[0].comment = comment  # stored once per answer
        return rows

    if qtype == "experience":
        _require(bool(answer.experience), question, "at least one rated option is required")
        rows = []
        seen = set()
        for rating in answer.experience:
            slug = _resolve_option(question, option_slugs, rating.option_slug)
            _require(slug not in seen, question, f"option '{rating.option_slug}' rated twice")
            seen.add(slug)
            _require(
                rating.awareness in AWARENESS_LEVELS,
                question,
                f"awareness must be one of {sorted(AWARENESS_LEVELS)}",
            )
            sentiment = rating.sentiment
            if sentiment is not None:
                _require(
                    sentiment in SENTIMENT_LEVELS,
                    question,
                    f"sentiment must be one of {sorted(SENTIMENT_LEVELS)}",
                )
            if rating.awareness == 0:
                # no exposure, so there is nothing to feel about it
                sentiment = None
            rows.append(
                models.Response(
                    option_slug=slug,
                    skipped=False,
                    experience_awareness=rating.awareness,
                    experience_sentiment=sentiment,
                    comment=_clean(rating.comment),
                    **base,
                )
            )
        if comment:
            # question-level comment, kept apart from the per-option ones
            rows.append(
                models.Response(option_slug="", skipped=False, comment=comment, **base)
            )
        return rows

    if qtype == "numeric":
        value = answer.numeric_value
        _require(value is not None, question, "a numeric value is required")
        _require(math.isfinite(value), question, "value must be a finite number")
        if question.numeric_min is not None:
            _require(value >= question.numeric_min, question, f"value must be >= {question.numeric_min:g}")
        if question.numeric_max is not None:
            _require(value <= question.numeric_max, question, f"value must be <= {question.numeric_max:g}")
        return [
            models.Response(
                option_slug="",
                skipped=False,
                numeric_response=float(value),
                comment=comment,
                **base,
            )
        ]

    if qtype == "freeform":
        text = _clean(answer.text_value)
        _require(text is not None, question, "a text answer is required")
        return [
            models.Response(
                option_slug="",
                skipped=False,
                freeform_response=text,
                comment=comment,
                **base,
            )
        ]

    raise ValidationError(
        f"Question '{question.slug}' has unsupported type '{qtype}'",
        question_slug=question.slug,
    )


# --- submission ---


async def _load_questions(db: AsyncSession) -> Dict[str, models.Question]:
    result = await db.execute(
        select(models.Question).where(models.Question.active.is_(True))
    )
    return {question.slug: question for question in result.scalars().all()}


async def _load_options(db: AsyncSession, question_slugs: Sequence[str]) -> Dict[str, List]:
    options: Dict[str, List] = {slug: [] for slug in question_slugs}
    if not question_slugs:
        return options
    result = await db.execute(
        select(models.Option)
        .where(
            models.Option.active.is_(True),
            models.Option.question_slug.in_(list(question_slugs)),
        )
        .order_by(models.Option.order)
    )
    for option in result.scalars().all():
        options[option.question_slug].append(option)
    return options


async def submit_responses(
    db: AsyncSession,
    submission: schemas.SubmissionIn,
    now: Optional[datetime] = None,
) -> SubmissionResult:
    """
    Validate and store a submission inside the caller's transaction. For
    every submitted question the session's existing rows for the month are
    deleted and replaced, so a resubmitted multiple-choice answer never
    keeps stale selections.
    """
    period = current_period(now)
    if submission.time_bucket is not None:
        requested = Period(submission.time_bucket.year, submission.time_bucket.month)
        if requested != period:
            raise ValidationError(
                f"Submissions are only accepted for the current period {period.label}, "
                f"not {requested.label}"
            )

    session = await get_session(db, submission.session_id)
    already_completed = has_completed(session, period)
    if already_completed and not submission.update:
        raise ConflictError(
            f"Session has already submitted responses for {period.display}"
        )

    questions = await _load_questions(db)
    seen = set()
    for answer in submission.responses:
        if answer.question_slug not in questions:
            raise ValidationError(
                f"Unknown or inactive question '{answer.question_slug}'",
                question_slug=answer.question_slug,
            )
        if answer.question_slug in seen:
            raise ValidationError(
                f"Question '{answer.question_slug}' answered more than once",
                question_slug=answer.question_slug,
            )
        seen.add(answer.question_slug)

    if not already_completed:
        missing = [
            question
            for question in sorted(questions.values(), key=lambda q: q.order)
            if question.required and question.slug not in seen
        ]
        if missing:
            raise ValidationError(
                f"Required question '{missing[0].slug}' was not answered",
                question_slug=missing[0].slug,
            )

    options = await _load_options(db, list(seen))
    new_rows = []
    for answer in submission.responses:
        question = questions[answer.question_slug]
        new_rows.extend(
            build_rows(question, options[question.slug], answer, session.id, period)
        )

    if seen:
        await db.execute(
            delete(models.Response).where(
                models.Response.session_id == session.id,
                models.Response.year == period.year,
                models.Response.month == period.month,
                models.Response.question_slug.in_(list(seen)),
            )
        )
    db.add_all(new_rows)

    session.completed_year = period.year
    session.completed_month = period.month
    session.completed_at = now or datetime.now(timezone.utc)

    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError(
            "A concurrent submission for this session and period was detected"
        ) from e

    logger.info(
        "Session %s submitted %d answers (%d rows) for %s%s",
        session.id,
        len(seen),
        len(new_rows),
        period.label,
        " (update)" if already_completed else "",
    )
    return SubmissionResult(
        period=period,
        saved_questions=[answer.question_slug for answer in submission.responses],
        updated=already_completed,
    )


# --- reading back ---


async def get_session_responses(
    db: AsyncSession, session_id: str, period: Period
) -> List[models.Response]:
    await get_session(db, session_id)
    result = await db.execute(
        select(models.Response)
        .where(
            models.Response.session_id == session_id,
            models.Response.year == period.year,
            models.Response.month == period.month,
        )
        .order_by(models.Response.question_slug, models.Response.option_slug)
    )
    return result.scalars().all()


async def get_completion(db: AsyncSession, session_id: str, period: Period) -> Dict:
    """Share of active questions the session has answered or skipped."""
    sections = (
        await db.execute(
            select(models.Section)
            .where(models.Section.active.is_(True))
            .order_by(models.Section.order)
        )
    ).scalars().all()
    questions = (
        await db.execute(
            select(models.Question).where(models.Question.active.is_(True))
        )
    ).scalars().all()
    answered = {row.question_slug for row in await get_session_responses(db, session_id, period)}

    section_completion = []
    total_questions = total_completed = 0
    for section in sections:
        section_questions = [q for q in questions if q.section_slug == section.slug]
        completed = sum(1 for q in section_questions if q.slug in answered)
        total_questions += len(section_questions)
        total_completed += completed
        section_completion.append(
            {
                "section_slug": section.slug,
                "section_title": section.title,
                "completed_questions": completed,
                "total_questions": len(section_questions),
                "percentage": round(completed / len(section_questions) * 100)
                if section_questions
                else 0,
            }
        )

    return {
        "overall_percentage": round(total_completed / total_questions * 100)
        if total_questions
        else 0,
        "total_completed_questions": total_completed,
        "total_questions": total_questions,
        "section_completion": section_completion,
    }
