"""Loading and validation of the declarative survey config (``config.yml``).

The document lists ``sections`` and ``questions``; each question names the
section it belongs to and, for option-bearing types, its ``options``::

    sections:
      - slug: tools
        title: Tools
    questions:
      - section: tools
        slug: tools-used
        title: Which assistants did you use this month?
        type: multiple
        multiple_max: 3
        options:
          - slug: copilot
            label: GitHub Copilot
"""

import logging
import os
from collections import Counter
from datetime import date
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigValidationError
from .models import OPTION_QUESTION_TYPES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.getenv("SURVEY_CONFIG_PATH", "config.yml")

QuestionType = Literal[
    "single",
    "multiple",
    "experience",
    "numeric",
    "single-freeform",
    "multiple-freeform",
    "freeform",
]


class OptionConfig(BaseModel):
    slug: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    description: Optional[str] = None
    added: Optional[date] = None


class QuestionConfig(BaseModel):
    section: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: QuestionType
    options: List[OptionConfig] = Field(default_factory=list)
    multiple_max: Optional[int] = Field(default=None, gt=0)
    randomize: bool = False
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    added: Optional[date] = None


class SectionConfig(BaseModel):
    slug: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    added: Optional[date] = None


class SurveyConfig(BaseModel):
    sections: List[SectionConfig] = Field(..., min_length=1)
    questions: List[QuestionConfig] = Field(..., min_length=1)


def _duplicates(slugs: List[str]) -> List[str]:
    return sorted(slug for slug, count in Counter(slugs).items() if count > 1)


def reference_issues(config: SurveyConfig) -> List[str]:
    section_slugs = {section.slug for section in config.sections}
    return [
        f'Question "{q.slug}" references non-existent section "{q.section}"'
        for q in config.questions
        if q.section not in section_slugs
    ]


def uniqueness_issues(config: SurveyConfig) -> List[str]:
    issues = []
    duplicate_sections = _duplicates([s.slug for s in config.sections])
    if duplicate_sections:
        issues.append(f"Duplicate section slugs found: {', '.join(duplicate_sections)}")

    duplicate_questions = _duplicates([q.slug for q in config.questions])
    if duplicate_questions:
        issues.append(
            f"Duplicate question slugs found: {', '.join(duplicate_questions)}"
        )

    for question in config.questions:
        duplicate_options = _duplicates([o.slug for o in question.options])
        if duplicate_options:
            issues.append(
                f'Duplicate option slugs found in question "{question.slug}": '
                f"{', '.join(duplicate_options)}"
            )
    return issues


def type_issues(config: SurveyConfig) -> List[str]:
    issues = []
    for question in config.questions:
        if question.type in OPTION_QUESTION_TYPES and not question.options:
            issues.append(
                f'Question "{question.slug}" of type "{question.type}" needs at least one option'
            )
        if question.type not in OPTION_QUESTION_TYPES and question.options:
            issues.append(
                f'Question "{question.slug}" of type "{question.type}" cannot have options'
            )
        if (
            question.min is not None
            and question.max is not None
            and question.min > question.max
        ):
            issues.append(f'Question "{question.slug}" has min greater than max')
    return issues


def validate_config(config: SurveyConfig) -> SurveyConfig:
    """Cross-reference checks the pydantic schema cannot express."""
    issues = reference_issues(config) + uniqueness_issues(config) + type_issues(config)
    if issues:
        raise ConfigValidationError(issues)
    return config


def parse_config(data) -> SurveyConfig:
    """Validate an already-parsed YAML document."""
    if not isinstance(data, dict):
        raise ConfigValidationError(["root: config must be a mapping"])
    try:
        config = SurveyConfig.model_validate(data)
    except PydanticValidationError as e:
        issues = []
        for error in e.errors():
            path = ".".join(str(part) for part in error["loc"]) or "root"
            issues.append(f"{path}: {error['msg']}")
        raise ConfigValidationError(issues) from e
    return validate_config(config)


def load_config_text(text: str) -> SurveyConfig:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigValidationError([f"root: invalid YAML ({e})"]) from e
    return parse_config(data)


def load_config(config_path: Optional[str] = None) -> SurveyConfig:
    path = config_path or DEFAULT_CONFIG_PATH
    logger.info("Loading survey config from %s", path)
    try:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
    except FileNotFoundError as e:
        raise ConfigValidationError([f"Config file not found: {path}"]) from e
    return load_config_text(text)
