"""Per-lesson generate -> validate -> regenerate -> compile loop.

A workflow instance may be re-run for the same lesson at any time (after a crash, or from a
resumed outline). Everything it needs to continue is derived from the lesson record and its
status trail: the stored source, the number of `validating` records, and the latest record.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

from lessonweaver.compilation.compiler import CodeCompiler
from lessonweaver.core.concurrency import ConcurrencyLimiter
from lessonweaver.errors import error_metadata
from lessonweaver.llm.provider import GenerationProvider
from lessonweaver.logging import get_logger, log_exception, run_context, set_stage
from lessonweaver.models.lesson import Block, LessonContext, LessonUnit
from lessonweaver.models.status import LessonStatus, StatusRecord
from lessonweaver.models.validation import ValidationIssue, ValidationReport
from lessonweaver.storage.protocol import Repository
from lessonweaver.validation.static import StaticValidator

logger = get_logger(__name__)


@dataclass
class LessonOutcome:
    """Terminal result of one lesson unit."""

    lesson_id: str
    position: int
    title: str
    status: LessonStatus
    attempts: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    message: str | None = None

    def as_metadata(self) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "lesson_id": self.lesson_id,
            "position": self.position,
            "title": self.title,
            "status": self.status.value,
            "attempts": self.attempts,
        }
        if self.errors:
            meta["errors"] = self.errors
        if self.message:
            meta["message"] = self.message
        return meta


@dataclass
class _Progress:
    stage: str = "generating"
    attempts: int = 0


def _issues_from_metadata(raw: Sequence[Any]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for item in raw:
        if isinstance(item, dict):
            issues.append(ValidationIssue.model_validate(item))
    return issues


def _issue_dicts(issues: Sequence[ValidationIssue]) -> list[dict[str, Any]]:
    return [i.model_dump(mode="json") for i in issues]


class LessonUnitWorkflow:
    """Drives one lesson to `completed`, `failed` or `error`.

    Args:
        repository: Persistence gateway.
        provider: Source generation and regeneration.
        validator: Static validator run on every candidate source.
        compiler: Compiler run on the accepted source.
        max_retries: Regenerations allowed after the first attempt.
        limiter: Optional bound on concurrently running units.
    """

    def __init__(
        self,
        repository: Repository,
        provider: GenerationProvider,
        *,
        validator: StaticValidator | None = None,
        compiler: CodeCompiler | None = None,
        max_retries: int = 2,
        limiter: ConcurrencyLimiter | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._repo = repository
        self._provider = provider
        self._validator = validator or StaticValidator()
        self._compiler = compiler or CodeCompiler()
        self._max_attempts = max_retries + 1
        self._limiter = limiter

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def run(self, lesson_id: str, blocks: Sequence[Block], context: LessonContext) -> LessonOutcome:
        """Run (or resume) the unit. Never raises for failures inside the unit."""

        with run_context(entity=lesson_id, stage="lesson"):
            if self._limiter is None:
                return await self._guarded(lesson_id, blocks, context)
            async with self._limiter:
                return await self._guarded(lesson_id, blocks, context)

    async def _guarded(self, lesson_id: str, blocks: Sequence[Block], context: LessonContext) -> LessonOutcome:
        progress = _Progress()
        lesson = await self._repo.get_lesson(lesson_id)
        try:
            return await self._run(lesson, list(blocks), context, progress)
        except Exception as e:
            log_exception(logger, "Lesson unit failed", lesson_id=lesson_id, stage=progress.stage)
            meta = error_metadata(e, stage=progress.stage)
            meta["attempts"] = progress.attempts
            await self._repo.append_status(lesson_id, LessonStatus.ERROR, meta)
            return LessonOutcome(
                lesson_id=lesson_id,
                position=lesson.position,
                title=lesson.title,
                status=LessonStatus.ERROR,
                attempts=progress.attempts,
                message=meta["message"],
            )

    async def _run(
        self,
        lesson: LessonUnit,
        blocks: list[Block],
        context: LessonContext,
        progress: _Progress,
    ) -> LessonOutcome:
        latest = await self._repo.latest_status(lesson.id)
        if latest is not None and LessonStatus(latest.status).is_terminal:
            logger.info("Lesson already %s", latest.status)
            return self.outcome_from_record(lesson, latest)

        progress.attempts = await self._repo.count_prior_attempts(lesson.id)
        source = lesson.generated_source

        if source is None:
            progress.stage = "generating"
            set_stage("generating")
            source = await self._provider.generate_lesson_source(lesson.title, blocks, context)
            await self._repo.update_generated_source(lesson.id, source)
            await self._repo.append_status(
                lesson.id,
                LessonStatus.GENERATED,
                {"source_length": len(source), "block_count": len(blocks)},
            )
            latest = None

        pending: list[ValidationIssue] | None = None
        skip_validation = False
        if latest is not None:
            if latest.status == LessonStatus.VALIDATING.value:
                if latest.metadata.get("valid"):
                    skip_validation = True
                else:
                    pending = _issues_from_metadata(latest.metadata.get("errors", []))
            elif latest.status == LessonStatus.COMPILING.value:
                skip_validation = True

        if not skip_validation:
            source, report = await self._validate_loop(lesson, source, blocks, pending, progress)
            if not report.valid:
                return await self._fail(lesson, report.errors, progress)

        return await self._compile(lesson, source, progress)

    async def _validate_loop(
        self,
        lesson: LessonUnit,
        source: str,
        blocks: list[Block],
        pending: list[ValidationIssue] | None,
        progress: _Progress,
    ) -> tuple[str, ValidationReport]:
        report = ValidationReport(valid=False, errors=list(pending or []))
        while True:
            if pending is not None:
                if progress.attempts >= self._max_attempts:
                    return source, report
                progress.stage = "regenerating"
                set_stage("regenerating")
                logger.info(
                    "Regenerating after %d error(s), attempt %d of %d",
                    len(pending),
                    progress.attempts + 1,
                    self._max_attempts,
                )
                source = await self._provider.regenerate_lesson_source(
                    source, pending, lesson.title, blocks, progress.attempts + 1
                )
                await self._repo.update_generated_source(lesson.id, source)
                await self._repo.append_status(
                    lesson.id,
                    LessonStatus.GENERATED,
                    {
                        "source_length": len(source),
                        "block_count": len(blocks),
                        "regenerated": True,
                        "attempt": progress.attempts + 1,
                    },
                )

            progress.stage = "validating"
            set_stage("validating")
            report = await asyncio.to_thread(self._validator.validate, source)
            progress.attempts += 1
            await self._repo.append_status(
                lesson.id,
                LessonStatus.VALIDATING,
                {
                    "attempt": progress.attempts,
                    "valid": report.valid,
                    "errors": _issue_dicts(report.errors),
                    "warnings": _issue_dicts(report.warnings),
                },
            )
            if report.valid:
                return source, report
            logger.info("Validation attempt %d found %d error(s)", progress.attempts, len(report.errors))
            pending = report.errors

    async def _fail(
        self,
        lesson: LessonUnit,
        errors: Sequence[ValidationIssue],
        progress: _Progress,
    ) -> LessonOutcome:
        message = f"No valid source after {progress.attempts} attempt(s)"
        errors_meta = _issue_dicts(errors)
        await self._repo.append_status(
            lesson.id,
            LessonStatus.FAILED,
            {"attempts": progress.attempts, "errors": errors_meta, "message": message},
        )
        logger.warning("%s", message)
        return LessonOutcome(
            lesson_id=lesson.id,
            position=lesson.position,
            title=lesson.title,
            status=LessonStatus.FAILED,
            attempts=progress.attempts,
            errors=errors_meta,
            message=message,
        )

    async def _compile(self, lesson: LessonUnit, source: str, progress: _Progress) -> LessonOutcome:
        progress.stage = "compiling"
        set_stage("compiling")
        await self._repo.append_status(lesson.id, LessonStatus.COMPILING, {"attempt": progress.attempts})
        compiled = await asyncio.to_thread(self._compiler.compile, source)
        await self._repo.update_compiled_artifact(lesson.id, compiled)

        meta: dict[str, Any] = {"attempts": progress.attempts, "artifact_length": len(compiled)}
        paths = await asyncio.to_thread(self._compiler.write_artifacts, lesson.id, source, compiled)
        if paths is not None:
            meta["paths"] = {"source": str(paths.source_path), "compiled": str(paths.compiled_path)}
        await self._repo.append_status(lesson.id, LessonStatus.COMPLETED, meta)
        logger.info("Lesson compiled after %d attempt(s)", progress.attempts)
        return LessonOutcome(
            lesson_id=lesson.id,
            position=lesson.position,
            title=lesson.title,
            status=LessonStatus.COMPLETED,
            attempts=progress.attempts,
        )

    def outcome_from_record(self, lesson: LessonUnit, record: StatusRecord) -> LessonOutcome:
        meta = record.metadata
        return LessonOutcome(
            lesson_id=lesson.id,
            position=lesson.position,
            title=lesson.title,
            status=LessonStatus(record.status),
            attempts=int(meta.get("attempts", lesson.validation_attempt_count)),
            errors=list(meta.get("errors", [])),
            message=meta.get("message"),
        )
