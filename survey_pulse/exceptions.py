from typing import List, Optional

from fastapi import status


class SurveyError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(SurveyError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, question_slug: Optional[str] = None):
        super().__init__(detail)
        self.question_slug = question_slug


class ConfigValidationError(ValidationError):
    """Survey config rejected before anything was written."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("Invalid survey config: " + "; ".join(self.issues))


class ConflictError(SurveyError):
    status_code = status.HTTP_409_CONFLICT


class NotFoundError(SurveyError):
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(SurveyError):
    """Unexpected database or IO failure; callers only see a generic message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
