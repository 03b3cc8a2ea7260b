"""initial_survey_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column("completed_year", sa.Integer(), nullable=True),
        sa.Column("completed_month", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "sections",
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("added_at", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("slug"),
    )

    op.create_table(
        "questions",
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("section_slug", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("multiple_max", sa.Integer(), nullable=True),
        sa.Column("randomize", sa.Boolean(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False),
        sa.Column("numeric_min", sa.Float(), nullable=True),
        sa.Column("numeric_max", sa.Float(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("added_at", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["section_slug"], ["sections.slug"]),
        sa.PrimaryKeyConstraint("slug"),
    )
    op.create_index(
        op.f("ix_questions_section_slug"), "questions", ["section_slug"], unique=False
    )

    op.create_table(
        "options",
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("question_slug", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("added_at", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["question_slug"], ["questions.slug"]),
        sa.PrimaryKeyConstraint("slug"),
    )
    op.create_index(
        op.f("ix_options_question_slug"), "options", ["question_slug"], unique=False
    )

    op.create_table(
        "responses",
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("question_slug", sa.String(), nullable=False),
        sa.Column("option_slug", sa.String(), server_default="", nullable=False),
        sa.Column("skipped", sa.Boolean(), nullable=False),
        sa.Column("single_option_slug", sa.String(), nullable=True),
        sa.Column("writein_response", sa.Text(), nullable=True),
        sa.Column("multiple_writein_responses", sa.JSON(), nullable=True),
        sa.Column("experience_awareness", sa.Integer(), nullable=True),
        sa.Column("experience_sentiment", sa.Integer(), nullable=True),
        sa.Column("freeform_response", sa.Text(), nullable=True),
        sa.Column("numeric_response", sa.Float(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["question_slug"], ["questions.slug"]),
        sa.ForeignKeyConstraint(["session_id"], ["sessions.id"]),
        sa.PrimaryKeyConstraint(
            "session_id",
            "year",
            "month",
            "question_slug",
            "option_slug",
            name="responses_pkey",
        ),
    )
    op.create_index(
        op.f("ix_responses_question_slug"), "responses", ["question_slug"], unique=False
    )
    op.create_index(
        "responses_session_month_year_idx",
        "responses",
        ["session_id", "month", "year"],
        unique=False,
    )
    op.create_index(
        "responses_month_year_idx", "responses", ["year", "month"], unique=False
    )


def downgrade() -> None:
    op.drop_index("responses_month_year_idx", table_name="responses")
    op.drop_index("responses_session_month_year_idx", table_name="responses")
    op.drop_index(op.f("ix_responses_question_slug"), table_name="responses")
    op.drop_table("responses")
    op.drop_index(op.f("ix_options_question_slug"), table_name="options")
    op.drop_table("options")
    op.drop_index(op.f("ix_questions_section_slug"), table_name="questions")
    op.drop_table("questions")
    op.drop_table("sections")
    op.drop_table("sessions")
