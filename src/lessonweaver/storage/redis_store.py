"""Redis-backed repository.

Enables multi-instance deployments where API servers and workers share state without a common
disk. Documents are stored as JSON strings, status trails as Redis lists, and the per-outline
position index as a hash so that lesson creation is idempotent across processes. Keys never
expire: the status lists are the audit trail.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import redis

from lessonweaver.errors import RepositoryError
from lessonweaver.models.lesson import LessonUnit
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import StatusRecord
from lessonweaver.storage.protocol import Repository, status_value


class RedisRepository(Repository):
    """Repository storing documents and append-only status lists in Redis."""

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "lessonweaver",
        *,
        client: Any | None = None,
    ) -> None:
        self._client = client if client is not None else redis.Redis.from_url(redis_url, decode_responses=True)
        self._prefix = key_prefix

    def _request_key(self, request_id: str) -> str:
        return f"{self._prefix}:outline:{request_id}"

    def _positions_key(self, request_id: str) -> str:
        return f"{self._prefix}:outline:{request_id}:lessons"

    def _lesson_key(self, lesson_id: str) -> str:
        return f"{self._prefix}:lesson:{lesson_id}"

    def _status_key(self, entity_id: str) -> str:
        return f"{self._prefix}:status:{entity_id}"

    def _seq_key(self, entity_id: str) -> str:
        return f"{self._prefix}:status:{entity_id}:seq"

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except redis.RedisError as e:
            raise RepositoryError(f"redis operation failed: {e}") from e

    async def _set(self, key: str, value: str) -> None:
        await self._call(self._client.set, key, value)

    async def _load_request(self, request_id: str) -> OutlineRequest | None:
        raw = await self._call(self._client.get, self._request_key(request_id))
        if raw is None:
            return None
        return OutlineRequest.model_validate_json(raw)

    async def _store_request(self, request: OutlineRequest) -> None:
        await self._set(self._request_key(request.id), request.model_dump_json(by_alias=True))

    async def _load_lesson(self, lesson_id: str) -> LessonUnit | None:
        raw = await self._call(self._client.get, self._lesson_key(lesson_id))
        if raw is None:
            return None
        return LessonUnit.model_validate_json(raw)

    async def _store_lesson(self, lesson: LessonUnit) -> None:
        await self._set(self._lesson_key(lesson.id), lesson.model_dump_json())

    async def _claim_position(self, outline_request_id: str, position: int, lesson_id: str) -> str:
        key = self._positions_key(outline_request_id)
        created = await self._call(self._client.hsetnx, key, str(position), lesson_id)
        if created:
            return lesson_id
        bound = await self._call(self._client.hget, key, str(position))
        return bound or lesson_id

    async def _lesson_ids(self, outline_request_id: str) -> list[str]:
        positions = await self._call(self._client.hgetall, self._positions_key(outline_request_id))
        ordered = sorted((int(p), lesson_id) for p, lesson_id in (positions or {}).items())
        return [lesson_id for _, lesson_id in ordered]

    async def append_status(
        self,
        entity_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> StatusRecord:
        seq = int(await self._call(self._client.incr, self._seq_key(entity_id)))
        record = StatusRecord(
            seq=seq,
            entity_id=entity_id,
            status=status_value(status),
            metadata=dict(metadata or {}),
        )
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        await self._call(self._client.rpush, self._status_key(entity_id), line)
        return record

    async def list_statuses(self, entity_id: str) -> list[StatusRecord]:
        lines = await self._call(self._client.lrange, self._status_key(entity_id), 0, -1)
        records = [StatusRecord.model_validate_json(line) for line in lines or []]
        return sorted(records, key=lambda r: r.seq)

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await self._call(close)
