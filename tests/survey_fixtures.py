import copy
import os
import sys
import unittest
from datetime import datetime, timezone
from types import SimpleNamespace

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from survey_pulse import models
from survey_pulse.database import Base
from survey_pulse.models import option_key
from survey_pulse.survey_config import parse_config
from survey_pulse.sync import sync_config

# Fixed clock for submissions: October 2026
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

CONFIG_DATA = {
    "sections": [
        {"slug": "demographics", "title": "About you"},
        {"slug": "tools", "title": "AI tools", "description": "Assistants you use."},
        {"slug": "feedback", "title": "Feedback"},
    ],
    "questions": [
        {
            "section": "demographics",
            "slug": "role",
            "title": "What is your role?",
            "type": "single-freeform",
            "required": True,
            "options": [
                {"slug": "engineer", "label": "Software Engineer"},
                {"slug": "manager", "label": "Engineering Manager"},
                {"slug": "designer", "label": "Designer"},
            ],
        },
        {
            "section": "demographics",
            "slug": "years-experience",
            "title": "Years of experience?",
            "type": "numeric",
            "min": 0,
            "max": 40,
        },
        {
            "section": "tools",
            "slug": "tools-used",
            "title": "Which assistants did you use this month?",
            "type": "multiple-freeform",
            "multiple_max": 2,
            "required": True,
            "added": "2026-01-01",
            "options": [
                {"slug": "copilot", "label": "GitHub Copilot"},
                {"slug": "cursor", "label": "Cursor"},
                {"slug": "chatgpt", "label": "ChatGPT"},
            ],
        },
        {
            "section": "tools",
            "slug": "tool-experience",
            "title": "How familiar are you with these tools?",
            "type": "experience",
            "options": [
                {"slug": "copilot", "label": "GitHub Copilot"},
                {"slug": "cursor", "label": "Cursor"},
            ],
        },
        {
            "section": "tools",
            "slug": "productivity",
            "title": "Hours saved per week?",
            "type": "numeric",
            "min": 0,
            "max": 20,
        },
        {
            "section": "feedback",
            "slug": "wishlist",
            "title": "What would make these tools more useful?",
            "type": "freeform",
        },
    ],
}


def config_data():
    return copy.deepcopy(CONFIG_DATA)


# --- plain stand-ins for ORM rows, for the pure reporting functions ---


def make_question(slug, type, **kwargs):
    values = {
        "slug": slug,
        "title": slug.replace("-", " ").title(),
        "description": None,
        "type": type,
        "section_slug": "tools",
        "multiple_max": None,
        "randomize": False,
        "numeric_min": None,
        "numeric_max": None,
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


def make_options(question_slug, *slugs):
    return [
        SimpleNamespace(
            slug=option_key(question_slug, slug),
            label=slug.title(),
            description=None,
            order=index,
        )
        for index, slug in enumerate(slugs)
    ]


def make_row(session_id, question_slug, **kwargs):
    values = {
        "session_id": session_id,
        "question_slug": question_slug,
        "option_slug": "",
        "skipped": False,
        "single_option_slug": None,
        "writein_response": None,
        "multiple_writein_responses": None,
        "experience_awareness": None,
        "experience_sentiment": None,
        "freeform_response": None,
        "numeric_response": None,
        "comment": None,
    }
    values.update(kwargs)
    return SimpleNamespace(**values)


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh in-memory SQLite database per test."""

    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.session_factory = sessionmaker(
            bind=self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self.db = self.session_factory()

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    async def sync_default_config(self, data=None):
        report = await sync_config(self.db, parse_config(data or config_data()))
        await self.db.commit()
        return report

    async def add_responses(self, year, month, rows):
        """Insert raw response rows (dicts) for an arbitrary month."""
        session_ids = {row["session_id"] for row in rows}
        for session_id in session_ids:
            if await self.db.get(models.Session, session_id) is None:
                self.db.add(models.Session(id=session_id))
        await self.db.flush()
        for row in rows:
            self.db.add(models.Response(year=year, month=month, **row))
        await self.db.commit()
