from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from lessonweaver.config import Settings
from lessonweaver.errors import OutlineRequestNotFound
from lessonweaver.llm.provider import LLMGenerationProvider
from lessonweaver.models.status import LessonStatus, OutlineStatus
from lessonweaver.orchestrator import OutlinePipeline
from lessonweaver.storage import InMemoryRepository

from fakes import BLOCKED_IMPORT_SOURCE, VALID_SOURCE, MockLLM, ScriptedProvider, good_scores, make_plan

OUTLINE = "Teach five-year-olds the three primary colors with a short quiz."

HAPPY_TRAIL = [
    "submitted",
    "validating",
    "validated",
    "blocks_generating",
    "blocks_generated",
    "lessons_generating",
    "lessons_generated",
    "lessons_validating",
    "lessons_validated",
    "completed",
]


def _pipeline(provider: ScriptedProvider, **settings: Any) -> OutlinePipeline:
    return OutlinePipeline(InMemoryRepository(), provider, settings=Settings(storage_backend="memory", **settings))


async def _submit_and_run(pipeline: OutlinePipeline) -> tuple[str, OutlineStatus]:
    request = await pipeline.submit(OUTLINE)
    return request.id, await pipeline.process_outline_request(request.id)


def _trail(pipeline: OutlinePipeline, entity_id: str) -> list[str]:
    return [r.status for r in asyncio.run(pipeline.repository.list_statuses(entity_id))]


def test_valid_outline_completes() -> None:
    provider = ScriptedProvider()
    pipeline = _pipeline(provider)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.COMPLETED
    assert _trail(pipeline, request_id) == HAPPY_TRAIL

    repo = pipeline.repository
    [lesson] = asyncio.run(repo.list_lessons(request_id))
    assert _trail(pipeline, lesson.id) == ["generated", "validating", "compiling", "completed"]
    assert lesson.compiled_artifact

    final = asyncio.run(repo.latest_status(request_id))
    assert final is not None
    assert final.metadata["completed_lesson_ids"] == [lesson.id]
    assert final.metadata["lesson_count"] == 1
    assert "reasons" not in final.metadata

    request = asyncio.run(repo.get_outline_request(request_id))
    assert request.title == OUTLINE
    assert request.lesson_plan is not None
    assert provider.feedback is not None
    assert provider.feedback.requirements == ["name the three primary colors"]


def test_unsafe_outline_fails_without_generating() -> None:
    provider = ScriptedProvider(scores=good_scores(safety_score=0.1))
    pipeline = _pipeline(provider)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.FAILED
    assert _trail(pipeline, request_id) == ["submitted", "validating", "failed"]
    assert provider.calls["generate_blocks"] == 0
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    assert any("safety score 0.10" in r for r in final.metadata["reasons"])
    assert final.metadata["severity"] == "high"
    assert final.metadata["scores"]["safetyScore"] == 0.1
    assert asyncio.run(pipeline.repository.list_lessons(request_id)) == []


def test_out_of_policy_age_range_is_a_content_failure() -> None:
    scores = good_scores(target_age_range=(0, 3)).model_dump(mode="json", by_alias=True)
    settings = Settings(storage_backend="memory")
    provider = LLMGenerationProvider(MockLLM(json.dumps(scores)), settings)  # type: ignore[arg-type]
    pipeline = OutlinePipeline(InMemoryRepository(), provider, settings=settings)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.FAILED
    assert _trail(pipeline, request_id) == ["submitted", "validating", "failed"]
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    assert final.metadata["reasons"] == ["Target age range 0-3 is outside the supported range 5-16"]


def test_failed_lesson_fails_the_batch() -> None:
    provider = ScriptedProvider(plan=make_plan(lesson_count=2), sources={"Lesson 2": BLOCKED_IMPORT_SOURCE})
    pipeline = _pipeline(provider, max_retries=0)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.FAILED
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    statuses = [o["status"] for o in final.metadata["outcomes"]]
    assert statuses == ["completed", "failed"]
    assert len(final.metadata["completed_lesson_ids"]) == 1
    [reason] = final.metadata["reasons"]
    assert "(Lesson 2) failed: No valid source after 1 attempt(s)" in reason


def test_one_lesson_repaired_on_third_attempt_sibling_exhausted() -> None:
    provider = ScriptedProvider(
        plan=make_plan(lesson_count=2),
        sources={"Lesson 1": BLOCKED_IMPORT_SOURCE, "Lesson 2": BLOCKED_IMPORT_SOURCE},
        title_regenerations={
            "Lesson 1": [BLOCKED_IMPORT_SOURCE, VALID_SOURCE],
            "Lesson 2": [BLOCKED_IMPORT_SOURCE, BLOCKED_IMPORT_SOURCE],
        },
    )
    pipeline = _pipeline(provider, max_retries=2)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.FAILED
    assert provider.calls["regenerate_lesson_source"] == 4
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    outcomes = final.metadata["outcomes"]
    assert [(o["title"], o["status"], o["attempts"]) for o in outcomes] == [
        ("Lesson 1", "completed", 3),
        ("Lesson 2", "failed", 3),
    ]
    [reason] = final.metadata["reasons"]
    assert "(Lesson 2) failed: No valid source after 3 attempt(s)" in reason

    first, second = asyncio.run(pipeline.repository.list_lessons(request_id))
    assert _trail(pipeline, first.id).count("validating") == 3
    assert _trail(pipeline, first.id)[-1] == "completed"
    assert _trail(pipeline, second.id).count("validating") == 3
    assert _trail(pipeline, second.id)[-1] == "failed"
    assert first.compiled_artifact
    assert second.compiled_artifact is None

def test_lesson_error_takes_precedence_over_failure() -> None:
    provider = ScriptedProvider(
        plan=make_plan(lesson_count=3),
        sources={"Lesson 2": BLOCKED_IMPORT_SOURCE},
        fail_titles=["Lesson 3"],
    )
    pipeline = _pipeline(provider, max_retries=0)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.ERROR
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    assert [o["status"] for o in final.metadata["outcomes"]] == ["completed", "failed", "error"]
    assert len(final.metadata["reasons"]) == 2
    lessons = asyncio.run(pipeline.repository.list_lessons(request_id))
    assert [lesson.position for lesson in lessons] == [0, 1, 2]


def test_too_many_blocks_is_an_error() -> None:
    provider = ScriptedProvider(plan=make_plan(lesson_count=3, blocks_per_lesson=34))
    pipeline = _pipeline(provider)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.ERROR
    assert _trail(pipeline, request_id)[-2:] == ["blocks_generating", "error"]
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    assert final.metadata["error"] == "BlockLimitExceeded"
    assert final.metadata["stage"] == "blocks_generating"
    assert provider.calls["generate_lesson_source"] == 0


def test_provider_fault_is_recorded_with_kind() -> None:
    provider = ScriptedProvider(fail_on=["validate_outline"])
    pipeline = _pipeline(provider)
    request_id, status = asyncio.run(_submit_and_run(pipeline))

    assert status == OutlineStatus.ERROR
    assert _trail(pipeline, request_id) == ["submitted", "validating", "error"]
    final = asyncio.run(pipeline.repository.latest_status(request_id))
    assert final is not None
    assert final.metadata["kind"] == "connection"
    assert final.metadata["stage"] == "validating"


def test_terminal_request_is_left_untouched() -> None:
    provider = ScriptedProvider()
    pipeline = _pipeline(provider)
    request_id, _ = asyncio.run(_submit_and_run(pipeline))
    before = _trail(pipeline, request_id)

    status = asyncio.run(pipeline.process_outline_request(request_id))
    assert status == OutlineStatus.COMPLETED
    assert _trail(pipeline, request_id) == before
    assert provider.calls["validate_outline"] == 1


def test_unknown_request_raises() -> None:
    pipeline = _pipeline(ScriptedProvider())
    with pytest.raises(OutlineRequestNotFound):
        asyncio.run(pipeline.process_outline_request("missing"))


def test_resume_from_blocks_generated_reuses_plan() -> None:
    provider = ScriptedProvider(plan=make_plan(lesson_count=2))
    pipeline = _pipeline(provider)
    repo = pipeline.repository
    plan = make_plan(lesson_count=2)

    async def interrupted() -> str:
        request = await pipeline.submit(OUTLINE)
        await repo.append_status(request.id, OutlineStatus.VALIDATING)
        await repo.append_status(
            request.id, OutlineStatus.VALIDATED, {"scores": good_scores().model_dump(mode="json", by_alias=True)}
        )
        await repo.append_status(request.id, OutlineStatus.BLOCKS_GENERATING)
        await repo.save_lesson_plan(request.id, plan)
        await repo.append_status(
            request.id, OutlineStatus.BLOCKS_GENERATED, {"plan": plan.model_dump(mode="json", by_alias=True)}
        )
        return request.id

    request_id = asyncio.run(interrupted())
    status = asyncio.run(pipeline.process_outline_request(request_id))

    assert status == OutlineStatus.COMPLETED
    assert provider.calls["validate_outline"] == 0
    assert provider.calls["generate_blocks"] == 0
    assert provider.calls["generate_lesson_source"] == 2
    assert _trail(pipeline, request_id) == HAPPY_TRAIL


def test_resume_interrupted_block_generation_uses_recorded_scores() -> None:
    provider = ScriptedProvider()
    pipeline = _pipeline(provider)
    repo = pipeline.repository

    async def interrupted() -> str:
        request = await pipeline.submit(OUTLINE)
        await repo.append_status(request.id, OutlineStatus.VALIDATING)
        scores = good_scores(detected_topic="Mixing colors").model_dump(mode="json", by_alias=True)
        await repo.append_status(request.id, OutlineStatus.VALIDATED, {"scores": scores})
        await repo.append_status(request.id, OutlineStatus.BLOCKS_GENERATING)
        return request.id

    request_id = asyncio.run(interrupted())
    status = asyncio.run(pipeline.process_outline_request(request_id))

    assert status == OutlineStatus.COMPLETED
    assert provider.calls["validate_outline"] == 0
    assert provider.calls["generate_blocks"] == 1
    assert provider.feedback is not None and provider.feedback.topic == "Mixing colors"
    trail = _trail(pipeline, request_id)
    assert trail.count("blocks_generating") == 1
    assert trail[-1] == "completed"


def test_resume_mid_lesson_keeps_attempt_count() -> None:
    provider = ScriptedProvider()
    pipeline = _pipeline(provider, max_retries=2)
    repo = pipeline.repository
    plan = make_plan()

    async def interrupted() -> tuple[str, str]:
        request = await pipeline.submit(OUTLINE)
        for status in ("validating", "validated", "blocks_generating"):
            await repo.append_status(request.id, status)
        await repo.save_lesson_plan(request.id, plan)
        await repo.append_status(request.id, OutlineStatus.BLOCKS_GENERATED)
        await repo.append_status(request.id, OutlineStatus.LESSONS_GENERATING)
        lesson = await repo.create_lesson(request.id, 0, "Lesson 1")
        await repo.append_status(request.id, OutlineStatus.LESSONS_GENERATED, {"lesson_ids": [lesson.id]})
        await repo.append_status(request.id, OutlineStatus.LESSONS_VALIDATING)

        await repo.update_generated_source(lesson.id, BLOCKED_IMPORT_SOURCE)
        await repo.append_status(lesson.id, LessonStatus.GENERATED)
        await repo.append_status(
            lesson.id,
            LessonStatus.VALIDATING,
            {"attempt": 1, "valid": False, "errors": [{"category": "import", "message": "nope", "code": "blocked-import"}]},
        )
        return request.id, lesson.id

    request_id, lesson_id = asyncio.run(interrupted())
    status = asyncio.run(pipeline.process_outline_request(request_id))

    assert status == OutlineStatus.COMPLETED
    assert provider.calls["generate_lesson_source"] == 0
    assert provider.calls["regenerate_lesson_source"] == 1
    assert provider.regeneration_requests[0]["attempt_number"] == 2
    final = asyncio.run(repo.latest_status(request_id))
    assert final is not None
    assert final.metadata["outcomes"][0]["attempts"] == 2
    assert _trail(pipeline, lesson_id).count("validating") == 2


def test_schedule_dedupes_running_request() -> None:
    provider = ScriptedProvider(delay=0.01)
    pipeline = _pipeline(provider)

    async def scenario() -> tuple[bool, OutlineStatus]:
        request = await pipeline.submit(OUTLINE)
        first = await pipeline.schedule(request.id)
        second = await pipeline.schedule(request.id)
        status = await pipeline.process_outline_request(request.id)
        await pipeline.wait_idle()
        return first is second, status

    same, status = asyncio.run(scenario())
    assert same is True
    assert status == OutlineStatus.COMPLETED
    assert provider.calls["validate_outline"] == 1
    assert pipeline.outline_tasks.active_keys == []
    assert pipeline.lesson_tasks.active_keys == []
