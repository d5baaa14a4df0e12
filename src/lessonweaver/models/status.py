"""Status vocabularies and the append-only status record."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class OutlineStatus(str, Enum):
    """Lifecycle of an outline request."""

    SUBMITTED = "submitted"
    VALIDATING = "validating"
    VALIDATED = "validated"
    BLOCKS_GENERATING = "blocks_generating"
    BLOCKS_GENERATED = "blocks_generated"
    LESSONS_GENERATING = "lessons_generating"
    LESSONS_GENERATED = "lessons_generated"
    LESSONS_VALIDATING = "lessons_validating"
    LESSONS_VALIDATED = "lessons_validated"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_OUTLINE


class LessonStatus(str, Enum):
    """Lifecycle of a single lesson unit."""

    GENERATED = "generated"
    VALIDATING = "validating"
    COMPILING = "compiling"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_LESSON


_TERMINAL_OUTLINE = frozenset({OutlineStatus.COMPLETED, OutlineStatus.FAILED, OutlineStatus.ERROR})
_TERMINAL_LESSON = frozenset({LessonStatus.COMPLETED, LessonStatus.FAILED, LessonStatus.ERROR})


class StatusRecord(BaseModel):
    """One entry of an entity's status trail.

    `seq` starts at 1 and grows by one per entity; the latest record is the one with the
    highest `seq`. Records are never updated or removed.
    """

    seq: int = Field(ge=1)
    entity_id: str
    status: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
