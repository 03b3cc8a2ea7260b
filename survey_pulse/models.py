from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    PrimaryKeyConstraint,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


# Types whose answers reference the question's options
OPTION_QUESTION_TYPES = frozenset(
    {"single", "multiple", "experience", "single-freeform", "multiple-freeform"}
)

AWARENESS_LEVELS = {
    0: "Never heard of it",
    1: "Heard of it",
    2: "Used it before",
    3: "Using it",
}

SENTIMENT_LEVELS = {
    -1: "Negative experience",
    0: "Neutral experience",
    1: "Positive experience",
}


def option_key(question_slug: str, option_slug: str) -> str:
    """Options are stored namespaced so their slugs are globally unique."""
    return f"{question_slug}_{option_slug}"


class Session(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True)  # server-issued UUID
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Completion marker: the month this session last submitted for
    completed_year = Column(Integer, nullable=True)
    completed_month = Column(Integer, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    responses = relationship("Response", back_populates="session")


class Section(Base):
    __tablename__ = "sections"

    slug = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    added_at = Column(Date, nullable=True)

    questions = relationship("Question", back_populates="section")


class Question(Base):
    __tablename__ = "questions"

    slug = Column(String, primary_key=True)
    section_slug = Column(String, ForeignKey("sections.slug"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False)  # survey_config.QuestionType
    order = Column(Integer, nullable=False, default=0)
    multiple_max = Column(Integer, nullable=True)  # only for 'multiple'
    randomize = Column(Boolean, nullable=False, default=False)
    required = Column(Boolean, nullable=False, default=False)
    numeric_min = Column(Float, nullable=True)
    numeric_max = Column(Float, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    added_at = Column(Date, nullable=True)

    section = relationship("Section", back_populates="questions")
    options = relationship(
        "Option", back_populates="question", order_by="Option.order"
    )


class Option(Base):
    __tablename__ = "options"

    slug = Column(String, primary_key=True)  # "{question_slug}_{option_slug}"
    question_slug = Column(
        String, ForeignKey("questions.slug"), nullable=False, index=True
    )
    label = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    added_at = Column(Date, nullable=True)

    question = relationship("Question", back_populates="options")


class Response(Base):
    __tablename__ = "responses"
    __table_args__ = (
        PrimaryKeyConstraint(
            "session_id",
            "year",
            "month",
            "question_slug",
            "option_slug",
            name="responses_pkey",
        ),
        Index("responses_session_month_year_idx", "session_id", "month", "year"),
        Index("responses_month_year_idx", "year", "month"),
    )

    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    question_slug = Column(
        String, ForeignKey("questions.slug"), nullable=False, index=True
    )
    # Empty string for answers that don't reference an option row
    option_slug = Column(String, nullable=False, default="", server_default="")

    skipped = Column(Boolean, nullable=False, default=False)
    single_option_slug = Column(String, nullable=True)
    writein_response = Column(Text, nullable=True)
    multiple_writein_responses = Column(JSON, nullable=True)  # list of texts
    experience_awareness = Column(Integer, nullable=True)
    experience_sentiment = Column(Integer, nullable=True)
    freeform_response = Column(Text, nullable=True)
    numeric_response = Column(Float, nullable=True)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )

    session = relationship("Session", back_populates="responses")
