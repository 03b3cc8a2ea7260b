import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import auth, models, reporting, schemas, submission
from .database import create_db_and_tables, engine, get_db_session
from .exceptions import ConfigValidationError, InternalError, SurveyError, ValidationError
from .models import AWARENESS_LEVELS, SENTIMENT_LEVELS
from .periods import Period, current_period, is_future
from .sorting import sort_experience_options
from .survey_config import load_config, load_config_text
from .sync import summarize_report, sync_config

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting...")
    await create_db_and_tables()
    yield
    logger.info("Application shutting down...")
    await engine.dispose()


app = FastAPI(title="Survey Pulse Backend", lifespan=lifespan)

# --- CORS ---
fallback_origins = [
    "http://127.0.0.1:5173",
    "http://localhost:5173",
]

env_origins = os.getenv("BACKEND_ALLOWED_ORIGINS")
origins = []

if env_origins:
    origins = [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    logger.info("CORS: allowed origins from environment: %s", origins)
if not origins:
    origins = fallback_origins
    logger.info("CORS: using fallback origins: %s", fallback_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handlers ---
@app.exception_handler(SurveyError)
async def survey_error_handler(request: Request, exc: SurveyError):
    body = {"detail": exc.detail}
    if isinstance(exc, ConfigValidationError):
        body["issues"] = exc.issues
    elif isinstance(exc, ValidationError) and exc.question_slug:
        body["questionSlug"] = exc.question_slug
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return await survey_error_handler(request, InternalError("Internal database error."))


# --- Helpers ---
async def resolve_report_period(
    db: AsyncSession, month: Optional[int], year: Optional[int]
) -> Period:
    """
    The requested month, defaulting to the current one. Future months are
    rejected; months before the first recorded response are clamped to it.
    """
    current = current_period()
    if month is None and year is None:
        return current
    try:
        period = Period.of(
            year if year is not None else current.year,
            month if month is not None else current.month,
        )
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if is_future(period):
        raise ValidationError(f"No results for {period.display}: it is in the future")

    earliest = await reporting.get_first_period(db)
    if earliest is not None and period < earliest:
        logger.debug("Clamping %s to earliest period %s", period.label, earliest.label)
        return earliest
    return period


def period_out(period: Period) -> schemas.PeriodOut:
    return schemas.PeriodOut(
        year=period.year, month=period.month, label=period.label, display=period.display
    )


# --- Health ---
@app.get("/health")
async def health(db: AsyncSession = Depends(get_db_session)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok", "period": current_period().label}


# --- Auth ---
@app.post("/api/auth/verify", response_model=schemas.AccessToken)
async def verify_survey_password(request_data: schemas.PasswordVerifyRequest):
    if not auth.verify(request_data.password):
        logger.info("Survey password rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.AccessToken(
        access_token=auth.create_access_token(), period=auth.current_period_label()
    )


@app.post("/api/admin/login", response_model=schemas.Token)
async def login_for_admin_access_token(admin_credentials: schemas.AdminLoginRequest):
    if auth.verify_admin_credentials(admin_credentials.username, admin_credentials.password):
        logger.info("Admin '%s' logged in", admin_credentials.username)
        return {"access_token": auth.EXPECTED_ADMIN_TOKEN, "token_type": "bearer"}
    logger.warning("Failed admin login for user '%s'", admin_credentials.username)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )


# --- Sessions ---
@app.post(
    "/api/session",
    response_model=schemas.SessionCreateResponse,
    status_code=201,
    dependencies=[Depends(auth.require_survey_access)],
)
async def create_session(db: AsyncSession = Depends(get_db_session)):
    session = await submission.create_session(db)
    return schemas.SessionCreateResponse(session_id=session.id)


@app.get(
    "/api/session/{session_id}/status",
    response_model=schemas.SessionStatus,
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_session_status(session_id: str, db: AsyncSession = Depends(get_db_session)):
    period = current_period()
    session = await submission.get_session(db, session_id)
    has_submitted = submission.has_completed(session, period)
    completion = await submission.get_completion(db, session_id, period)
    return schemas.SessionStatus(
        session_id=session.id,
        period=period.label,
        has_submitted=has_submitted,
        submitted_at=session.completed_at if has_submitted else None,
        completion=completion,
    )


# --- Survey structure ---
@app.get(
    "/api/survey/sections",
    response_model=List[schemas.SectionOut],
    dependencies=[Depends(auth.require_survey_access)],
)
async def list_sections(db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(models.Section)
        .where(models.Section.active.is_(True))
        .order_by(models.Section.order)
    )
    return [schemas.SectionOut.model_validate(s) for s in result.scalars().all()]


@app.get(
    "/api/survey/sections/{section_slug}/questions",
    response_model=List[schemas.QuestionOut],
    dependencies=[Depends(auth.require_survey_access)],
)
async def list_section_questions(
    section_slug: str, db: AsyncSession = Depends(get_db_session)
):
    section = await db.get(models.Section, section_slug)
    if section is None or not section.active:
        raise HTTPException(status_code=404, detail=f"Section '{section_slug}' not found")

    result = await db.execute(
        select(models.Question)
        .where(
            models.Question.section_slug == section_slug,
            models.Question.active.is_(True),
        )
        .order_by(models.Question.order)
    )
    questions = result.scalars().all()
    options = await reporting.load_active_options(db, [q.slug for q in questions])

    response = []
    for question in questions:
        out = schemas.QuestionOut.model_validate(
            {
                "slug": question.slug,
                "section_slug": question.section_slug,
                "title": question.title,
                "description": question.description,
                "type": question.type,
                "order": question.order,
                "multiple_max": question.multiple_max,
                "randomize": question.randomize,
                "required": question.required,
                "numeric_min": question.numeric_min,
                "numeric_max": question.numeric_max,
                "options": [
                    schemas.OptionOut.model_validate(o)
                    for o in options.get(question.slug, [])
                ],
            }
        )
        response.append(out)
    return response


@app.get(
    "/api/survey/responses",
    response_model=schemas.SessionResponses,
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_session_responses(
    session_id: str = Query(..., alias="sessionId"),
    db: AsyncSession = Depends(get_db_session),
):
    period = current_period()
    rows = await submission.get_session_responses(db, session_id, period)
    return schemas.SessionResponses(
        session_id=session_id,
        period=period.label,
        responses=[schemas.ResponseOut.model_validate(row) for row in rows],
    )


@app.post(
    "/api/survey/submit",
    response_model=schemas.SubmissionResponse,
    dependencies=[Depends(auth.require_survey_access)],
)
async def submit_survey(
    submission_data: schemas.SubmissionIn, db: AsyncSession = Depends(get_db_session)
):
    result = await submission.submit_responses(db, submission_data)
    return schemas.SubmissionResponse(
        period=result.period.label,
        saved_questions=result.saved_questions,
        updated=result.updated,
    )


# --- Results ---
@app.get(
    "/api/results",
    response_model=schemas.MonthSummary,
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_results(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db_session),
):
    period = await resolve_report_period(db, month, year)
    return await reporting.get_month_summary(db, period)


@app.get(
    "/api/results/questions/{question_slug}",
    response_model=schemas.QuestionReport,
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_question_results(
    question_slug: str,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1),
    group_by: Optional[schemas.GroupByParam] = Query(None, alias="groupBy"),
    sort_by: Optional[int] = Query(None, alias="sortBy"),
    direction: schemas.DirectionParam = Query("desc"),
    db: AsyncSession = Depends(get_db_session),
):
    period = await resolve_report_period(db, month, year)
    report = await reporting.get_question_report(db, question_slug, period)

    if group_by is not None and report["type"] == "experience" and report["data"]:
        levels = AWARENESS_LEVELS if group_by == "awareness" else SENTIMENT_LEVELS
        if sort_by is None:
            sort_by = max(levels)
        if sort_by not in levels:
            raise ValidationError(
                f"sortBy must be one of {sorted(levels)} when grouping by {group_by}"
            )
        report["data"]["options"] = sort_experience_options(
            report["data"]["options"], group_by, sort_by, direction
        )
    return report


@app.get(
    "/api/results/questions/{question_slug}/trends",
    response_model=List[schemas.TrendPoint],
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_question_trends(question_slug: str, db: AsyncSession = Depends(get_db_session)):
    return await reporting.get_question_trends(db, question_slug)


@app.get(
    "/api/results/periods",
    response_model=List[schemas.PeriodOut],
    dependencies=[Depends(auth.require_survey_access)],
)
async def list_periods_with_data(db: AsyncSession = Depends(get_db_session)):
    return [period_out(p) for p in await reporting.get_available_periods(db)]


@app.get(
    "/api/results/periods/all",
    response_model=List[schemas.PeriodOut],
    dependencies=[Depends(auth.require_survey_access)],
)
async def list_all_periods(db: AsyncSession = Depends(get_db_session)):
    return [period_out(p) for p in await reporting.get_all_periods_since_start(db)]


@app.get(
    "/api/results/periods/current",
    response_model=schemas.PeriodOut,
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_current_period():
    return period_out(current_period())


@app.get(
    "/api/results/periods/earliest",
    response_model=Optional[schemas.PeriodOut],
    dependencies=[Depends(auth.require_survey_access)],
)
async def get_earliest_period(db: AsyncSession = Depends(get_db_session)):
    first = await reporting.get_first_period(db)
    return period_out(first) if first is not None else None


# --- Admin ---
@app.post("/api/admin/sync", response_model=schemas.SyncResponse)
async def sync_survey_config(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    current_admin: dict = Depends(auth.verify_admin_token),
):
    """Sync the YAML config in the request body, or the configured file if empty."""
    raw = await request.body()
    try:
        body = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError("Config body must be UTF-8 encoded YAML") from e

    config = load_config_text(body) if body.strip() else load_config()
    report = await sync_config(db, config)
    for line in summarize_report(report):
        logger.info("Sync by %s: %s", current_admin["username"], line)
    return schemas.SyncResponse(
        sections=asdict(report.sections),
        questions=asdict(report.questions),
        options=asdict(report.options),
        changed=report.changed,
    )


@app.delete("/api/admin/sessions", response_model=schemas.SessionClearResponse)
async def clear_all_sessions(
    db: AsyncSession = Depends(get_db_session),
    current_admin: dict = Depends(auth.verify_admin_token),
):
    deleted = await submission.clear_sessions(db)
    logger.info("Admin %s cleared %d sessions", current_admin["username"], deleted)
    return schemas.SessionClearResponse(deleted_sessions=deleted)


if __name__ == "__main__":
    import uvicorn

    APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
    APP_PORT = int(os.getenv("APP_PORT", "8000"))
    RELOAD_APP = os.getenv("RELOAD_APP", "True").lower() == "true"

    uvicorn.run("survey_pulse.main:app", host=APP_HOST, port=APP_PORT, reload=RELOAD_APP)
