"""Pydantic models used across the project."""

from __future__ import annotations

from lessonweaver.models.lesson import (
    Block,
    ImageBlock,
    InteractionBlock,
    Lesson,
    LessonContext,
    LessonPlan,
    LessonUnit,
    PlanMetadata,
    TextBlock,
)
from lessonweaver.models.outline import OutlineRequest, ValidationFeedback, ValidationScores
from lessonweaver.models.status import LessonStatus, OutlineStatus, StatusRecord
from lessonweaver.models.validation import ValidationIssue, ValidationReport

__all__ = [
    "Block",
    "ImageBlock",
    "InteractionBlock",
    "Lesson",
    "LessonContext",
    "LessonPlan",
    "LessonStatus",
    "LessonUnit",
    "OutlineRequest",
    "OutlineStatus",
    "PlanMetadata",
    "StatusRecord",
    "TextBlock",
    "ValidationFeedback",
    "ValidationIssue",
    "ValidationReport",
    "ValidationScores",
]
