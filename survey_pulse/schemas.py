from datetime import date, datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON uses camelCase, Python attributes stay snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# --- Auth ---


class PasswordVerifyRequest(BaseModel):
    password: str = Field(..., min_length=1)


class AccessToken(CamelModel):
    access_token: str
    token_type: str = "bearer"
    period: str  # label of the period the token is valid for


class AdminLoginRequest(BaseModel):
    """Credentials for the static admin token."""

    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


# --- Sessions ---


class SessionCreateResponse(CamelModel):
    session_id: str


class SectionCompletion(CamelModel):
    section_slug: str
    section_title: str
    completed_questions: int
    total_questions: int
    percentage: int


class CompletionData(CamelModel):
    overall_percentage: int
    total_completed_questions: int
    total_questions: int
    section_completion: List[SectionCompletion] = []


class SessionStatus(CamelModel):
    session_id: str
    period: str
    has_submitted: bool
    submitted_at: Optional[datetime] = None
    completion: CompletionData


class SessionClearResponse(CamelModel):
    deleted_sessions: int


# --- Survey structure ---


class SectionOut(CamelModel):
    slug: str
    title: str
    description: Optional[str] = None
    order: int
    added_at: Optional[date] = None


class OptionOut(CamelModel):
    slug: str
    question_slug: str
    label: str
    description: Optional[str] = None
    order: int


class QuestionOut(CamelModel):
    slug: str
    section_slug: str
    title: str
    description: Optional[str] = None
    type: str
    order: int
    multiple_max: Optional[int] = None
    randomize: bool = False
    required: bool = False
    numeric_min: Optional[float] = None
    numeric_max: Optional[float] = None
    options: List[OptionOut] = []


# --- Submission ---


class TimeBucket(CamelModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1)


class ExperienceRatingIn(CamelModel):
    option_slug: str
    awareness: int
    sentiment: Optional[int] = None
    comment: Optional[str] = None


class AnswerIn(CamelModel):
    question_slug: str
    option_slug: Optional[str] = None
    option_slugs: Optional[List[str]] = None
    text_value: Optional[str] = None
    text_values: Optional[List[str]] = None
    numeric_value: Optional[float] = None
    experience: Optional[List[ExperienceRatingIn]] = None
    comment: Optional[str] = None
    skipped: bool = False


class SubmissionIn(CamelModel):
    session_id: str = Field(..., min_length=1)
    time_bucket: Optional[TimeBucket] = None
    update: bool = False  # explicit revisit of an already completed month
    responses: List[AnswerIn] = Field(..., min_length=1)


class SubmissionResponse(CamelModel):
    success: bool = True
    period: str
    saved_questions: List[str]
    updated: bool = False


class ResponseOut(CamelModel):
    question_slug: str
    option_slug: str
    year: int
    month: int
    skipped: bool
    single_option_slug: Optional[str] = None
    writein_response: Optional[str] = None
    multiple_writein_responses: Optional[List[str]] = None
    experience_awareness: Optional[int] = None
    experience_sentiment: Optional[int] = None
    freeform_response: Optional[str] = None
    numeric_response: Optional[float] = None
    comment: Optional[str] = None


class SessionResponses(CamelModel):
    session_id: str
    period: str
    responses: List[ResponseOut] = []


# --- Reports ---


class OptionStat(CamelModel):
    option_slug: str
    label: str
    order: int
    count: int
    percentage: float


class TextCount(CamelModel):
    response: str
    count: int


class ChoiceData(CamelModel):
    answered: int
    options: List[OptionStat] = []  # declared order
    ranked: List[OptionStat] = []  # count desc, declared order asc
    write_ins: List[TextCount] = []


class LevelStat(CamelModel):
    level: int
    label: str
    count: int
    percentage: float


class CrossTabCell(CamelModel):
    awareness: int
    sentiment: int
    count: int


class ExperienceOptionData(CamelModel):
    option_slug: str
    label: str
    description: Optional[str] = None
    order: int
    total: int
    awareness: List[LevelStat] = []
    sentiment: List[LevelStat] = []
    combined: List[CrossTabCell] = []


class ExperienceData(CamelModel):
    answered: int
    options: List[ExperienceOptionData] = []


class NumericSummary(CamelModel):
    mean: float
    median: float
    min: float
    max: float
    count: int


class HistogramBin(CamelModel):
    start: float
    end: float
    range: str
    count: int
    percentage: float


class NumericData(CamelModel):
    summary: NumericSummary
    distribution: List[HistogramBin] = []


class FreeformData(CamelModel):
    responses: List[TextCount] = []
    total_count: int


class CommentOut(CamelModel):
    comment: str
    session_id: str
    option_slug: Optional[str] = None


DATA_SCHEMAS = {
    "single": ChoiceData,
    "single-freeform": ChoiceData,
    "multiple": ChoiceData,
    "multiple-freeform": ChoiceData,
    "experience": ExperienceData,
    "numeric": NumericData,
    "freeform": FreeformData,
}


class TypedDataModel(CamelModel):
    """Validates ``data`` against the schema for the question ``type``."""

    @model_validator(mode="before")
    @classmethod
    def parse_data_for_type(cls, values: Any) -> Any:
        if isinstance(values, dict) and isinstance(values.get("data"), dict):
            schema = DATA_SCHEMAS.get(values.get("type"))
            if schema is not None:
                values = {**values, "data": schema.model_validate(values["data"])}
        return values


ReportData = Union[ChoiceData, ExperienceData, NumericData, FreeformData]


class QuestionReport(TypedDataModel):
    slug: str
    title: str
    description: Optional[str] = None
    type: str
    section_slug: str
    multiple_max: Optional[int] = None
    randomize: bool = False
    total_responses: int
    skipped_responses: int
    response_rate: float
    data: Optional[ReportData] = None
    comments: List[CommentOut] = []
    year: Optional[int] = None
    month: Optional[int] = None


class MonthSummary(CamelModel):
    year: int
    month: int
    label: str
    total_responses: int
    unique_sessions: int
    orphaned_responses: int = 0
    questions: List[QuestionReport] = []


class PeriodOut(CamelModel):
    year: int
    month: int
    label: str
    display: str


class TrendPoint(TypedDataModel):
    year: int
    month: int
    label: str
    type: str
    total_responses: int
    skipped_responses: int
    data: Optional[ReportData] = None


# --- Admin ---


class TableSyncOut(CamelModel):
    inserted: int
    updated: int
    unchanged: int
    deactivated: int


class SyncResponse(CamelModel):
    sections: TableSyncOut
    questions: TableSyncOut
    options: TableSyncOut
    changed: int
    message: str = "Config synchronized."


GroupByParam = Literal["awareness", "sentiment"]
DirectionParam = Literal["asc", "desc"]
