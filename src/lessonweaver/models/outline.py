"""Outline request and outline validation models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from lessonweaver.models.lesson import LessonPlan

TITLE_MAX_CHARS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_title(outline_text: str) -> str:
    """Use the first non-empty line of the outline as its title."""

    for line in outline_text.splitlines():
        line = line.strip()
        if line:
            return line[:TITLE_MAX_CHARS]
    return ""


class OutlineRequest(BaseModel):
    """A submitted teaching outline.

    `outline_text` never changes after creation. `lesson_plan` is filled in once blocks have
    been generated, so a resumed run does not call the provider again.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    outline_text: str = Field(min_length=1)
    title: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    lesson_plan: LessonPlan | None = None

    @model_validator(mode="after")
    def _default_title(self) -> "OutlineRequest":
        if not self.title:
            self.title = derive_title(self.outline_text)
        return self


class ValidationScores(BaseModel):
    """Provider assessment of an outline.

    Wire format is camelCase (`safetyScore`, `targetAgeRange`, ...); attribute access is
    snake_case.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    safety_score: float = Field(ge=0.0, le=1.0)
    specificity_score: float = Field(ge=0.0, le=1.0)
    matches_topic_catalog: bool = False
    target_age_range: tuple[int, int]
    actionable: bool
    requirements: list[str] = Field(default_factory=list)
    detected_topic: str = ""
    detected_domains: list[str] = Field(default_factory=list)

    reasoning: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_age_range(self) -> "ValidationScores":
        low, high = self.target_age_range
        if low < 0:
            raise ValueError("targetAgeRange values must not be negative")
        if low > high:
            raise ValueError("targetAgeRange minimum must not exceed maximum")
        return self


class ValidationFeedback(BaseModel):
    """What block generation is told about the accepted outline."""

    topic: str
    domains: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    target_age_range: tuple[int, int]
    reasoning: str | None = None
    suggestions: list[str] = Field(default_factory=list)
