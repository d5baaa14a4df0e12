"""Persistence gateway.

Backends implement a handful of storage primitives; the public, pipeline-facing operations are
built on top of them here so every backend derives lesson attempt counts and "latest status" the
same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lessonweaver.errors import LessonNotFound, OutlineRequestNotFound
from lessonweaver.models.lesson import LessonPlan, LessonUnit
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import LessonStatus, StatusRecord


def status_value(status: Any) -> str:
    """Plain string for a status enum member or string."""

    return str(getattr(status, "value", status))


class Repository(ABC):
    """Storage for outline requests, lesson units and their status trails."""

    # -- primitives ------------------------------------------------------------------------

    @abstractmethod
    async def _load_request(self, request_id: str) -> OutlineRequest | None:
        """Load an outline request by id."""

    @abstractmethod
    async def _store_request(self, request: OutlineRequest) -> None:
        """Insert or replace an outline request."""

    @abstractmethod
    async def _load_lesson(self, lesson_id: str) -> LessonUnit | None:
        """Load a lesson unit by id."""

    @abstractmethod
    async def _store_lesson(self, lesson: LessonUnit) -> None:
        """Insert or replace a lesson unit."""

    @abstractmethod
    async def _claim_position(self, outline_request_id: str, position: int, lesson_id: str) -> str:
        """Bind `lesson_id` to a position unless one is bound already; return the bound id."""

    @abstractmethod
    async def _lesson_ids(self, outline_request_id: str) -> list[str]:
        """Ids of all lessons of an outline request, ordered by position."""

    @abstractmethod
    async def append_status(
        self,
        entity_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> StatusRecord:
        """Append a status record with the next sequence number for the entity."""

    @abstractmethod
    async def list_statuses(self, entity_id: str) -> list[StatusRecord]:
        """All status records of an entity, oldest first."""

    # -- outline requests ------------------------------------------------------------------

    async def create_outline_request(self, request: OutlineRequest) -> OutlineRequest:
        await self._store_request(request)
        return request

    async def find_outline_request(self, request_id: str) -> OutlineRequest | None:
        return await self._load_request(request_id)

    async def get_outline_request(self, request_id: str) -> OutlineRequest:
        request = await self._load_request(request_id)
        if request is None:
            raise OutlineRequestNotFound(request_id)
        return request

    async def save_lesson_plan(self, request_id: str, plan: LessonPlan) -> OutlineRequest:
        request = await self.get_outline_request(request_id)
        updated = request.model_copy(update={"lesson_plan": plan})
        await self._store_request(updated)
        return updated

    # -- status trail ----------------------------------------------------------------------

    async def latest_status(self, entity_id: str) -> StatusRecord | None:
        records = await self.list_statuses(entity_id)
        if not records:
            return None
        return max(records, key=lambda r: r.seq)

    async def count_prior_attempts(self, lesson_id: str) -> int:
        """Number of validation attempts recorded for a lesson."""

        records = await self.list_statuses(lesson_id)
        return sum(1 for r in records if r.status == LessonStatus.VALIDATING.value)

    # -- lessons ---------------------------------------------------------------------------

    async def create_lesson(self, outline_request_id: str, position: int, title: str) -> LessonUnit:
        """Create the lesson at `position`, or return the one already there."""

        candidate = LessonUnit(outline_request_id=outline_request_id, position=position, title=title)
        bound_id = await self._claim_position(outline_request_id, position, candidate.id)
        if bound_id == candidate.id:
            await self._store_lesson(candidate)
            return candidate
        existing = await self.find_lesson(bound_id)
        if existing is None:
            # position claimed but the record was never written
            candidate = candidate.model_copy(update={"id": bound_id})
            await self._store_lesson(candidate)
            return candidate
        return existing

    async def find_lesson(self, lesson_id: str) -> LessonUnit | None:
        lesson = await self._load_lesson(lesson_id)
        if lesson is None:
            return None
        attempts = await self.count_prior_attempts(lesson_id)
        return lesson.model_copy(update={"validation_attempt_count": attempts})

    async def get_lesson(self, lesson_id: str) -> LessonUnit:
        lesson = await self.find_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFound(lesson_id)
        return lesson

    async def list_lessons(self, outline_request_id: str) -> list[LessonUnit]:
        lessons: list[LessonUnit] = []
        for lesson_id in await self._lesson_ids(outline_request_id):
            lesson = await self.find_lesson(lesson_id)
            if lesson is not None:
                lessons.append(lesson)
        return sorted(lessons, key=lambda lesson: lesson.position)

    async def update_generated_source(self, lesson_id: str, source: str) -> LessonUnit:
        lesson = await self.get_lesson(lesson_id)
        updated = lesson.model_copy(update={"generated_source": source})
        await self._store_lesson(updated)
        return updated

    async def update_compiled_artifact(self, lesson_id: str, artifact: str) -> LessonUnit:
        lesson = await self.get_lesson(lesson_id)
        updated = lesson.model_copy(update={"compiled_artifact": artifact})
        await self._store_lesson(updated)
        return updated

    async def close(self) -> None:
        """Release backend resources."""
