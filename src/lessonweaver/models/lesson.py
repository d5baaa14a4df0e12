"""Lesson content models.

A lesson is a title plus an ordered list of teaching blocks. `Block` is a closed union keyed on
`type`; code that branches on it should end with `assert_never`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextBlock(_WireModel):
    type: Literal["text"] = "text"
    content: str = Field(min_length=1)


class ImageBlock(_WireModel):
    type: Literal["image"] = "image"
    format: Literal["svg", "url"]
    content: str = Field(min_length=1)
    alt: str
    caption: str | None = None


class InteractionBlock(_WireModel):
    type: Literal["interaction"] = "interaction"
    kind: Literal["input", "quiz", "visualization", "dragdrop"] = Field(alias="interactionType")
    prompt: str
    metadata: dict[str, Any] = Field(default_factory=dict)


Block = Annotated[Union[TextBlock, ImageBlock, InteractionBlock], Field(discriminator="type")]


class Lesson(_WireModel):
    title: str = Field(min_length=1)
    blocks: list[Block] = Field(min_length=1)


class PlanMetadata(_WireModel):
    topic: str
    domains: list[str] = Field(default_factory=list)
    age_range: tuple[int, int]
    complexity: Literal["simple", "moderate", "complex"] = "moderate"
    total_block_count: int = Field(default=0, ge=0)


class LessonPlan(_WireModel):
    """Output of block generation: the lessons to build for one outline."""

    lessons: list[Lesson] = Field(min_length=1)
    metadata: PlanMetadata

    def total_blocks(self) -> int:
        return sum(len(lesson.blocks) for lesson in self.lessons)


class LessonContext(BaseModel):
    """Shared context handed to per-lesson source generation."""

    topic: str
    domains: list[str] = Field(default_factory=list)
    age_range: tuple[int, int]
    complexity: str = "moderate"

    @classmethod
    def from_plan(cls, plan: LessonPlan) -> "LessonContext":
        meta = plan.metadata
        return cls(
            topic=meta.topic,
            domains=list(meta.domains),
            age_range=meta.age_range,
            complexity=meta.complexity,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LessonUnit(BaseModel):
    """Persisted record for one lesson of an outline request."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    outline_request_id: str
    position: int = Field(ge=0)
    title: str
    generated_source: str | None = None
    compiled_artifact: str | None = None
    validation_attempt_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
