"""In-process repository, for tests and one-shot CLI runs."""

from __future__ import annotations

from typing import Any

from lessonweaver.models.lesson import LessonUnit
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import StatusRecord
from lessonweaver.storage.protocol import Repository, status_value


class InMemoryRepository(Repository):
    def __init__(self) -> None:
        self._requests: dict[str, OutlineRequest] = {}
        self._lessons: dict[str, LessonUnit] = {}
        self._positions: dict[str, dict[int, str]] = {}
        self._statuses: dict[str, list[StatusRecord]] = {}

    async def _load_request(self, request_id: str) -> OutlineRequest | None:
        return self._requests.get(request_id)

    async def _store_request(self, request: OutlineRequest) -> None:
        self._requests[request.id] = request

    async def _load_lesson(self, lesson_id: str) -> LessonUnit | None:
        return self._lessons.get(lesson_id)

    async def _store_lesson(self, lesson: LessonUnit) -> None:
        self._lessons[lesson.id] = lesson

    async def _claim_position(self, outline_request_id: str, position: int, lesson_id: str) -> str:
        positions = self._positions.setdefault(outline_request_id, {})
        return positions.setdefault(position, lesson_id)

    async def _lesson_ids(self, outline_request_id: str) -> list[str]:
        positions = self._positions.get(outline_request_id, {})
        return [positions[p] for p in sorted(positions)]

    async def append_status(
        self,
        entity_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> StatusRecord:
        records = self._statuses.setdefault(entity_id, [])
        record = StatusRecord(
            seq=len(records) + 1,
            entity_id=entity_id,
            status=status_value(status),
            metadata=dict(metadata or {}),
        )
        records.append(record)
        return record

    async def list_statuses(self, entity_id: str) -> list[StatusRecord]:
        return list(self._statuses.get(entity_id, []))
