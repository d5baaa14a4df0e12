from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from lessonweaver.config import Settings
from lessonweaver.errors import LessonNotFound, OutlineRequestNotFound, RepositoryError
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import LessonStatus, OutlineStatus
from lessonweaver.storage import (
    InMemoryRepository,
    JsonlRepository,
    RedisRepository,
    Repository,
    create_repository,
)

from fakes import FakeRedis, make_plan


@pytest.fixture(params=["memory", "jsonl", "redis"])
def repo(request: pytest.FixtureRequest, tmp_path: Path) -> Repository:
    if request.param == "memory":
        return InMemoryRepository()
    if request.param == "jsonl":
        return JsonlRepository(tmp_path / "data")
    return RedisRepository("redis://unused", client=FakeRedis())


def test_outline_request_roundtrip_and_title(repo: Repository) -> None:
    async def scenario() -> None:
        created = await repo.create_outline_request(OutlineRequest(outline_text="\n  Fractions for kids\nhalves"))
        loaded = await repo.get_outline_request(created.id)
        assert loaded.title == "Fractions for kids"
        assert loaded.outline_text == created.outline_text
        assert loaded.lesson_plan is None

        await repo.save_lesson_plan(created.id, make_plan(lesson_count=2))
        reloaded = await repo.get_outline_request(created.id)
        assert reloaded.lesson_plan is not None
        assert [lesson.title for lesson in reloaded.lesson_plan.lessons] == ["Lesson 1", "Lesson 2"]

    asyncio.run(scenario())


def test_missing_entities_raise(repo: Repository) -> None:
    async def scenario() -> None:
        assert await repo.find_outline_request("nope") is None
        with pytest.raises(OutlineRequestNotFound):
            await repo.get_outline_request("nope")
        with pytest.raises(LessonNotFound):
            await repo.get_lesson("nope")
        with pytest.raises(OutlineRequestNotFound):
            await repo.save_lesson_plan("nope", make_plan())

    asyncio.run(scenario())


def test_status_sequence_is_dense_and_ordered(repo: Repository) -> None:
    async def scenario() -> None:
        assert await repo.latest_status("r1") is None
        first = await repo.append_status("r1", OutlineStatus.SUBMITTED, {"title": "t"})
        second = await repo.append_status("r1", "validating")
        await repo.append_status("other", "submitted")
        assert (first.seq, second.seq) == (1, 2)
        assert first.status == "submitted"

        records = await repo.list_statuses("r1")
        assert [r.seq for r in records] == [1, 2]
        assert records[0].metadata == {"title": "t"}
        latest = await repo.latest_status("r1")
        assert latest is not None and latest.status == "validating"

    asyncio.run(scenario())


def test_create_lesson_is_idempotent_per_position(repo: Repository) -> None:
    async def scenario() -> None:
        first = await repo.create_lesson("r1", 0, "Lesson 1")
        again = await repo.create_lesson("r1", 0, "Lesson 1")
        second = await repo.create_lesson("r1", 1, "Lesson 2")
        assert again.id == first.id
        lessons = await repo.list_lessons("r1")
        assert [(lesson.position, lesson.id) for lesson in lessons] == [(0, first.id), (1, second.id)]
        assert await repo.list_lessons("r2") == []

    asyncio.run(scenario())


def test_attempt_count_is_derived_from_trail(repo: Repository) -> None:
    async def scenario() -> None:
        lesson = await repo.create_lesson("r1", 0, "Lesson 1")
        await repo.append_status(lesson.id, LessonStatus.GENERATED)
        await repo.append_status(lesson.id, LessonStatus.VALIDATING, {"attempt": 1, "valid": False})
        await repo.append_status(lesson.id, LessonStatus.GENERATED, {"regenerated": True})
        await repo.append_status(lesson.id, LessonStatus.VALIDATING, {"attempt": 2, "valid": True})
        assert await repo.count_prior_attempts(lesson.id) == 2
        assert (await repo.get_lesson(lesson.id)).validation_attempt_count == 2

    asyncio.run(scenario())


def test_source_and_artifact_updates(repo: Repository) -> None:
    async def scenario() -> None:
        lesson = await repo.create_lesson("r1", 0, "Lesson 1")
        await repo.update_generated_source(lesson.id, "export default 1;")
        await repo.update_compiled_artifact(lesson.id, "export default 1;\n")
        stored = await repo.get_lesson(lesson.id)
        assert stored.generated_source == "export default 1;"
        assert stored.compiled_artifact == "export default 1;\n"
        with pytest.raises(LessonNotFound):
            await repo.update_generated_source("missing", "x")

    asyncio.run(scenario())


def test_jsonl_survives_reopen_and_skips_torn_lines(tmp_path: Path) -> None:
    async def scenario() -> None:
        repo = JsonlRepository(tmp_path)
        request = await repo.create_outline_request(OutlineRequest(outline_text="Shapes"))
        await repo.append_status(request.id, "submitted")
        path = tmp_path / "statuses" / f"{request.id}.jsonl"
        with path.open("a", encoding="utf-8") as f:
            f.write('{"seq": 2, "entity_')

        reopened = JsonlRepository(tmp_path)
        assert (await reopened.get_outline_request(request.id)).outline_text == "Shapes"
        assert [r.status for r in await reopened.list_statuses(request.id)] == ["submitted"]

    asyncio.run(scenario())


def test_jsonl_append_after_torn_line_keeps_the_record(tmp_path: Path) -> None:
    async def scenario() -> None:
        repo = JsonlRepository(tmp_path)
        await repo.append_status("l1", "generated")
        await repo.append_status("l1", "validating", {"attempt": 1, "valid": False})
        path = tmp_path / "statuses" / "l1.jsonl"
        with path.open("a", encoding="utf-8") as f:
            f.write('{"seq": 3, "entity_id": "l1", "sta')

        reopened = JsonlRepository(tmp_path)
        record = await reopened.append_status("l1", "validating", {"attempt": 2, "valid": False})
        assert record.seq == 3
        trail = await reopened.list_statuses("l1")
        assert [r.status for r in trail] == ["generated", "validating", "validating"]
        assert await reopened.count_prior_attempts("l1") == 2
        assert path.read_text(encoding="utf-8").endswith("\n")

    asyncio.run(scenario())


def test_jsonl_rejects_path_like_ids(tmp_path: Path) -> None:
    repo = JsonlRepository(tmp_path)
    with pytest.raises(RepositoryError):
        asyncio.run(repo.list_statuses("../escape"))


def test_redis_key_layout_and_no_expiry() -> None:
    client = FakeRedis()
    repo = RedisRepository("redis://unused", key_prefix="lw", client=client)

    async def scenario() -> str:
        request = await repo.create_outline_request(OutlineRequest(outline_text="Shapes"))
        await repo.append_status(request.id, "submitted")
        await repo.create_lesson(request.id, 0, "Lesson 1")
        await repo.close()
        return request.id

    request_id = asyncio.run(scenario())
    assert f"lw:outline:{request_id}" in client.strings
    assert client.strings[f"lw:status:{request_id}:seq"] == "1"
    assert len(client.lists[f"lw:status:{request_id}"]) == 1
    assert client.hashes[f"lw:outline:{request_id}:lessons"].keys() == {"0"}
    assert client.expirations == {}
    assert client.closed is True


def test_create_repository_selects_backend(tmp_path: Path) -> None:
    assert isinstance(create_repository(Settings(storage_backend="memory")), InMemoryRepository)
    jsonl = create_repository(Settings(storage_backend="jsonl", data_dir=tmp_path))
    assert isinstance(jsonl, JsonlRepository)
    assert (tmp_path / "statuses").is_dir()
