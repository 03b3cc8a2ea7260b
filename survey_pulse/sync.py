"""Reconcile the declarative survey config into the database.

Rows are upserted by slug. Anything the config no longer mentions is marked
inactive instead of deleted, so historical responses keep their foreign keys.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models
from .models import option_key
from .survey_config import SurveyConfig, validate_config

logger = logging.getLogger(__name__)


@dataclass
class TableSyncStats:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deactivated: int = 0

    @property
    def changed(self) -> int:
        return self.inserted + self.updated + self.deactivated


@dataclass
class SyncReport:
    sections: TableSyncStats = field(default_factory=TableSyncStats)
    questions: TableSyncStats = field(default_factory=TableSyncStats)
    options: TableSyncStats = field(default_factory=TableSyncStats)

    @property
    def changed(self) -> int:
        return self.sections.changed + self.questions.changed + self.options.changed


def _apply(row, values: Dict) -> bool:
    """Copy ``values`` onto ``row``; report whether anything differed."""
    changed = False
    for attr, value in values.items():
        if getattr(row, attr) != value:
            setattr(row, attr, value)
            changed = True
    return changed


async def _upsert(
    db: AsyncSession, model, wanted: Dict[str, Dict], stats: TableSyncStats
) -> None:
    result = await db.execute(select(model))
    existing = {row.slug: row for row in result.scalars().all()}

    for slug, values in wanted.items():
        row = existing.get(slug)
        if row is None:
            db.add(model(slug=slug, **values))
            stats.inserted += 1
        elif _apply(row, values):
            stats.updated += 1
        else:
            stats.unchanged += 1

    for slug, row in existing.items():
        if slug not in wanted and row.active:
            row.active = False
            stats.deactivated += 1


def _section_rows(config: SurveyConfig) -> Dict[str, Dict]:
    return {
        section.slug: {
            "title": section.title,
            "description": section.description,
            "order": index,
            "active": True,
            "added_at": section.added,
        }
        for index, section in enumerate(config.sections)
    }


def _question_rows(config: SurveyConfig) -> Dict[str, Dict]:
    return {
        question.slug: {
            "section_slug": question.section,
            "title": question.title,
            "description": question.description,
            "type": question.type,
            "order": index,
            "multiple_max": question.multiple_max,
            "randomize": question.randomize,
            "required": question.required,
            "numeric_min": question.min,
            "numeric_max": question.max,
            "active": True,
            "added_at": question.added,
        }
        for index, question in enumerate(config.questions)
    }


def _option_rows(config: SurveyConfig) -> Dict[str, Dict]:
    rows = {}
    for question in config.questions:
        for index, option in enumerate(question.options):
            rows[option_key(question.slug, option.slug)] = {
                "question_slug": question.slug,
                "label": option.label,
                "description": option.description,
                "order": index,
                "active": True,
                "added_at": option.added,
            }
    return rows


async def sync_config(db: AsyncSession, config: SurveyConfig) -> SyncReport:
    """
    Apply ``config`` inside the caller's transaction. Validation runs before
    the first write, so an invalid config leaves the tables untouched; a
    failure mid-way propagates and the caller's rollback discards the rest.
    """
    validate_config(config)
    report = SyncReport()

    logger.info("Synchronizing sections...")
    await _upsert(db, models.Section, _section_rows(config), report.sections)
    await db.flush()  # parents first so the foreign keys resolve

    logger.info("Synchronizing questions...")
    await _upsert(db, models.Question, _question_rows(config), report.questions)
    await db.flush()

    logger.info("Synchronizing options...")
    await _upsert(db, models.Option, _option_rows(config), report.options)
    await db.flush()

    for name in ("sections", "questions", "options"):
        stats = getattr(report, name)
        logger.info(
            "Processed %s: %d inserted, %d updated, %d unchanged, %d marked inactive",
            name,
            stats.inserted,
            stats.updated,
            stats.unchanged,
            stats.deactivated,
        )
    return report


def summarize_report(report: SyncReport) -> List[str]:
    lines = []
    for name in ("sections", "questions", "options"):
        stats = getattr(report, name)
        lines.append(
            f"{name}: {stats.inserted} inserted, {stats.updated} updated, "
            f"{stats.unchanged} unchanged, {stats.deactivated} deactivated"
        )
    return lines
