from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from lessonweaver.compilation import CodeCompiler
from lessonweaver.errors import CompilationError, TypeCheckError
from lessonweaver.models.lesson import LessonContext
from lessonweaver.models.status import LessonStatus
from lessonweaver.models.validation import ValidationIssue
from lessonweaver.orchestrator.lesson_unit import LessonOutcome, LessonUnitWorkflow
from lessonweaver.storage import InMemoryRepository
from lessonweaver.validation import StaticValidator, TypeChecker, validate_source

from fakes import BLOCKED_IMPORT_SOURCE, SYNTAX_ERROR_SOURCE, VALID_SOURCE, ScriptedProvider, make_plan, three_blocks

CONTEXT = LessonContext.from_plan(make_plan())


def _run(
    provider: ScriptedProvider,
    *,
    repo: InMemoryRepository | None = None,
    lesson_id: str | None = None,
    **kwargs: Any,
) -> tuple[InMemoryRepository, str, LessonOutcome]:
    repo = repo or InMemoryRepository()

    async def scenario() -> tuple[str, LessonOutcome]:
        lid = lesson_id or (await repo.create_lesson("r1", 0, "Lesson 1")).id
        workflow = LessonUnitWorkflow(repo, provider, **kwargs)
        return lid, await workflow.run(lid, three_blocks(), CONTEXT)

    lid, outcome = asyncio.run(scenario())
    return repo, lid, outcome


def _trail(repo: InMemoryRepository, lesson_id: str) -> list[str]:
    return [r.status for r in asyncio.run(repo.list_statuses(lesson_id))]


def test_valid_first_attempt_compiles() -> None:
    provider = ScriptedProvider()
    repo, lid, outcome = _run(provider)
    assert outcome.status == LessonStatus.COMPLETED
    assert outcome.attempts == 1
    assert _trail(repo, lid) == ["generated", "validating", "compiling", "completed"]

    records = asyncio.run(repo.list_statuses(lid))
    assert records[0].metadata == {"source_length": len(VALID_SOURCE), "block_count": 3}
    assert records[1].metadata["valid"] is True
    assert records[-1].metadata["attempts"] == 1
    lesson = asyncio.run(repo.get_lesson(lid))
    assert lesson.generated_source == VALID_SOURCE
    assert lesson.compiled_artifact and "React.createElement" in lesson.compiled_artifact
    assert lesson.validation_attempt_count == 1
    assert provider.calls["regenerate_lesson_source"] == 0


def test_regeneration_repairs_invalid_source() -> None:
    provider = ScriptedProvider(sources={"Lesson 1": BLOCKED_IMPORT_SOURCE}, regenerations=[VALID_SOURCE])
    repo, lid, outcome = _run(provider)
    assert outcome.status == LessonStatus.COMPLETED
    assert outcome.attempts == 2
    assert _trail(repo, lid) == [
        "generated",
        "validating",
        "generated",
        "validating",
        "compiling",
        "completed",
    ]
    records = asyncio.run(repo.list_statuses(lid))
    assert records[1].metadata["valid"] is False
    assert records[1].metadata["errors"][0]["code"] == "blocked-import"
    assert records[2].metadata["regenerated"] is True
    assert records[2].metadata["attempt"] == 2
    assert provider.regeneration_requests == [
        {"title": "Lesson 1", "attempt_number": 2, "error_codes": ["blocked-import"], "block_count": 3}
    ]


def test_exhausted_budget_fails_with_last_errors() -> None:
    provider = ScriptedProvider(default_source=BLOCKED_IMPORT_SOURCE)
    repo, lid, outcome = _run(provider, max_retries=2)
    assert outcome.status == LessonStatus.FAILED
    assert outcome.attempts == 3
    assert outcome.message == "No valid source after 3 attempt(s)"
    assert provider.calls["regenerate_lesson_source"] == 2

    trail = _trail(repo, lid)
    assert trail.count("validating") == 3
    assert trail[-1] == "failed"
    assert "compiling" not in trail
    failed = asyncio.run(repo.latest_status(lid))
    assert failed is not None
    assert failed.metadata["attempts"] == 3
    assert failed.metadata["errors"][0]["code"] == "blocked-import"


def test_zero_retries_means_single_attempt() -> None:
    provider = ScriptedProvider(default_source=SYNTAX_ERROR_SOURCE)
    repo, lid, outcome = _run(provider, max_retries=0)
    assert outcome.status == LessonStatus.FAILED
    assert outcome.attempts == 1
    assert provider.calls["regenerate_lesson_source"] == 0
    assert _trail(repo, lid) == ["generated", "validating", "failed"]


def test_provider_failure_is_recorded_as_error() -> None:
    provider = ScriptedProvider(fail_titles=["Lesson 1"])
    repo, lid, outcome = _run(provider)
    assert outcome.status == LessonStatus.ERROR
    assert _trail(repo, lid) == ["error"]
    record = asyncio.run(repo.latest_status(lid))
    assert record is not None
    assert record.metadata["kind"] == "output"
    assert record.metadata["stage"] == "generating"
    assert record.metadata["attempts"] == 0
    assert record.metadata["raw_preview"] == "{}"


class _BrokenCompiler(CodeCompiler):
    def compile(self, source: str) -> str:
        raise CompilationError("emitter crashed")


def test_compiler_fault_is_recorded_as_error() -> None:
    provider = ScriptedProvider()
    repo, lid, outcome = _run(provider, compiler=_BrokenCompiler())
    assert outcome.status == LessonStatus.ERROR
    assert outcome.attempts == 1
    assert _trail(repo, lid) == ["generated", "validating", "compiling", "error"]
    record = asyncio.run(repo.latest_status(lid))
    assert record is not None
    assert record.metadata["stage"] == "compiling"
    assert record.metadata["error"] == "CompilationError"
    assert record.metadata["message"] == "emitter crashed"
    assert asyncio.run(repo.get_lesson(lid)).compiled_artifact is None


def test_regeneration_failure_is_recorded_as_error() -> None:
    provider = ScriptedProvider(sources={"Lesson 1": BLOCKED_IMPORT_SOURCE}, fail_on=["regenerate_lesson_source"])
    repo, lid, outcome = _run(provider, max_retries=2)
    assert outcome.status == LessonStatus.ERROR
    assert outcome.attempts == 1
    assert _trail(repo, lid) == ["generated", "validating", "error"]
    record = asyncio.run(repo.latest_status(lid))
    assert record is not None
    assert record.metadata["stage"] == "regenerating"
    assert record.metadata["kind"] == "connection"
    assert provider.calls["regenerate_lesson_source"] == 1

def test_terminal_lesson_is_not_rerun() -> None:
    provider = ScriptedProvider()
    repo, lid, first = _run(provider)
    before = _trail(repo, lid)
    _, _, second = _run(provider, repo=repo, lesson_id=lid)
    assert _trail(repo, lid) == before
    assert provider.calls["generate_lesson_source"] == 1
    assert second.status == first.status == LessonStatus.COMPLETED
    assert second.attempts == 1


def test_resume_after_failed_validation_keeps_attempt_count() -> None:
    repo = InMemoryRepository()

    async def crashed_after_first_validation() -> str:
        lesson = await repo.create_lesson("r1", 0, "Lesson 1")
        await repo.update_generated_source(lesson.id, BLOCKED_IMPORT_SOURCE)
        await repo.append_status(lesson.id, LessonStatus.GENERATED, {"source_length": 1, "block_count": 3})
        report = validate_source(BLOCKED_IMPORT_SOURCE)
        await repo.append_status(
            lesson.id,
            LessonStatus.VALIDATING,
            {
                "attempt": 1,
                "valid": False,
                "errors": [e.model_dump(mode="json") for e in report.errors],
                "warnings": [],
            },
        )
        return lesson.id

    lid = asyncio.run(crashed_after_first_validation())
    provider = ScriptedProvider(default_source=BLOCKED_IMPORT_SOURCE)
    _, _, outcome = _run(provider, repo=repo, lesson_id=lid, max_retries=2)

    assert provider.calls["generate_lesson_source"] == 0
    assert provider.calls["regenerate_lesson_source"] == 2
    assert provider.regeneration_requests[0]["attempt_number"] == 2
    assert provider.regeneration_requests[0]["error_codes"] == ["blocked-import"]
    assert outcome.status == LessonStatus.FAILED
    assert outcome.attempts == 3
    assert _trail(repo, lid).count("validating") == 3


def test_resume_after_generation_validates_stored_source() -> None:
    repo = InMemoryRepository()

    async def crashed_after_generation() -> str:
        lesson = await repo.create_lesson("r1", 0, "Lesson 1")
        await repo.update_generated_source(lesson.id, VALID_SOURCE)
        await repo.append_status(lesson.id, LessonStatus.GENERATED, {"source_length": 1, "block_count": 3})
        return lesson.id

    lid = asyncio.run(crashed_after_generation())
    provider = ScriptedProvider()
    _, _, outcome = _run(provider, repo=repo, lesson_id=lid)
    assert provider.calls["generate_lesson_source"] == 0
    assert outcome.status == LessonStatus.COMPLETED
    assert _trail(repo, lid) == ["generated", "validating", "compiling", "completed"]


def test_resume_after_successful_validation_goes_straight_to_compile() -> None:
    repo = InMemoryRepository()

    async def crashed_before_compile() -> str:
        lesson = await repo.create_lesson("r1", 0, "Lesson 1")
        await repo.update_generated_source(lesson.id, VALID_SOURCE)
        await repo.append_status(lesson.id, LessonStatus.GENERATED)
        await repo.append_status(lesson.id, LessonStatus.VALIDATING, {"attempt": 1, "valid": True, "errors": []})
        return lesson.id

    lid = asyncio.run(crashed_before_compile())
    _, _, outcome = _run(ScriptedProvider(), repo=repo, lesson_id=lid)
    assert outcome.status == LessonStatus.COMPLETED
    assert outcome.attempts == 1
    assert _trail(repo, lid) == ["generated", "validating", "compiling", "completed"]


def test_artifacts_are_written_when_configured(tmp_path: Path) -> None:
    repo, lid, outcome = _run(ScriptedProvider(), compiler=CodeCompiler(tmp_path))
    assert outcome.status == LessonStatus.COMPLETED
    record = asyncio.run(repo.latest_status(lid))
    assert record is not None
    assert record.metadata["paths"]["source"] == str(tmp_path / "lessons" / lid / "page.tsx")
    assert (tmp_path / "lessons" / lid / "page.js").exists()


class _ScriptedTypeChecker(TypeChecker):
    """Reports a type error for every source until it has been called `failures` times."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        super().__init__("tsc")
        self.failures = failures
        self.error = error
        self.sources: list[str] = []

    def check(self, source: str) -> list[ValidationIssue]:
        self.sources.append(source)
        if self.error is not None:
            raise self.error
        if len(self.sources) <= self.failures:
            return [
                ValidationIssue(
                    category="compile",
                    line=7,
                    column=9,
                    message="Type 'string' is not assignable to type 'number'.",
                    code="TS2322",
                )
            ]
        return []


def test_type_errors_feed_regeneration() -> None:
    checker = _ScriptedTypeChecker(failures=1)
    provider = ScriptedProvider()
    repo, lid, outcome = _run(provider, validator=StaticValidator(checker))
    assert outcome.status == LessonStatus.COMPLETED
    assert outcome.attempts == 2
    assert len(checker.sources) == 2
    [request] = provider.regeneration_requests
    assert request["error_codes"] == ["TS2322"]
    first_validation = asyncio.run(repo.list_statuses(lid))[1]
    assert first_validation.metadata["errors"][0]["category"] == "compile"


def test_type_checker_fault_is_recorded_as_error() -> None:
    checker = _ScriptedTypeChecker(error=TypeCheckError("could not run tsc: not found"))
    repo, lid, outcome = _run(ScriptedProvider(), validator=StaticValidator(checker))
    assert outcome.status == LessonStatus.ERROR
    assert _trail(repo, lid) == ["generated", "error"]
    record = asyncio.run(repo.latest_status(lid))
    assert record is not None
    assert record.metadata["stage"] == "validating"
    assert record.metadata["error"] == "TypeCheckError"
