from __future__ import annotations

from lessonweaver.config import Settings
from lessonweaver.storage.jsonl import JsonlRepository
from lessonweaver.storage.memory import InMemoryRepository
from lessonweaver.storage.protocol import Repository
from lessonweaver.storage.redis_store import RedisRepository


def create_repository(settings: Settings) -> Repository:
    """Build the repository selected by `settings.storage_backend`."""

    if settings.storage_backend == "memory":
        return InMemoryRepository()
    if settings.storage_backend == "redis":
        return RedisRepository(settings.redis_url, settings.redis_key_prefix)
    return JsonlRepository(settings.data_dir)


__all__ = [
    "InMemoryRepository",
    "JsonlRepository",
    "RedisRepository",
    "Repository",
    "create_repository",
]
