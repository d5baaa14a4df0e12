"""Outline pipeline orchestrator.

Drives one outline request through the transition table in :mod:`lessonweaver.orchestrator.state`:

    submitted -> validating -> validated -> blocks_generating -> blocks_generated
      -> lessons_generating -> lessons_generated -> lessons_validating -> lessons_validated
      -> completed | failed | error

Every step is recorded in the append-only status trail before the next one starts, so a run can
be resumed from its latest record after a restart. Lesson units run as independent tasks owned by
a :class:`TaskRegistry`; the pipeline joins all of them before settling the batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from lessonweaver.compilation.compiler import CodeCompiler
from lessonweaver.config import Settings
from lessonweaver.core.concurrency import ConcurrencyLimiter, TaskRegistry
from lessonweaver.errors import BlockLimitExceeded, LessonWeaverError, error_metadata
from lessonweaver.evaluation.thresholds import ThresholdPolicy, decide, validation_feedback
from lessonweaver.llm.provider import GenerationProvider
from lessonweaver.logging import get_logger, log_exception, run_context, set_stage
from lessonweaver.models.lesson import LessonContext, LessonPlan, LessonUnit
from lessonweaver.models.outline import OutlineRequest, ValidationScores
from lessonweaver.models.status import LessonStatus, OutlineStatus
from lessonweaver.orchestrator.lesson_unit import LessonOutcome, LessonUnitWorkflow
from lessonweaver.orchestrator.state import Effect, PipelineEvent, classify_batch, transition
from lessonweaver.storage.protocol import Repository
from lessonweaver.validation.static import StaticValidator

logger = get_logger(__name__)

_WORKING_EFFECTS: dict[OutlineStatus, Effect] = {
    OutlineStatus.VALIDATING: Effect.VALIDATE_OUTLINE,
    OutlineStatus.BLOCKS_GENERATING: Effect.GENERATE_BLOCKS,
    OutlineStatus.LESSONS_GENERATING: Effect.SPAWN_LESSONS,
    OutlineStatus.LESSONS_VALIDATING: Effect.JOIN_LESSONS,
}

_RESTING = frozenset(
    {
        OutlineStatus.SUBMITTED,
        OutlineStatus.VALIDATED,
        OutlineStatus.BLOCKS_GENERATED,
        OutlineStatus.LESSONS_GENERATED,
    }
)


@dataclass
class _Run:
    """Per-run scratch state; everything here can be rebuilt from the repository."""

    request: OutlineRequest
    scores: ValidationScores | None = None
    plan: LessonPlan | None = None
    tasks: dict[str, asyncio.Future] = field(default_factory=dict)
    outcomes: list[LessonOutcome] | None = None


class OutlinePipeline:
    """Top-level orchestrator for outline requests."""

    def __init__(
        self,
        repository: Repository,
        provider: GenerationProvider,
        *,
        settings: Settings | None = None,
        policy: ThresholdPolicy | None = None,
        validator: StaticValidator | None = None,
        compiler: CodeCompiler | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._repo = repository
        self._provider = provider
        self._policy = policy or ThresholdPolicy.from_settings(self._settings)
        self._limiter = ConcurrencyLimiter(self._settings.lesson_concurrency)
        self._units = LessonUnitWorkflow(
            repository,
            provider,
            validator=validator or StaticValidator.from_settings(self._settings),
            compiler=compiler or CodeCompiler(self._settings.artifacts_dir),
            max_retries=self._settings.max_retries,
            limiter=self._limiter,
        )
        self._outline_tasks = TaskRegistry("outlines")
        self._lesson_tasks = TaskRegistry("lessons")

    @property
    def repository(self) -> Repository:
        return self._repo

    @property
    def lesson_tasks(self) -> TaskRegistry:
        return self._lesson_tasks

    @property
    def outline_tasks(self) -> TaskRegistry:
        return self._outline_tasks

    # -- entry points ----------------------------------------------------------------------

    async def submit(self, outline_text: str, *, title: str | None = None) -> OutlineRequest:
        """Create an outline request and record it as `submitted`."""

        request = OutlineRequest(outline_text=outline_text, title=title or "")
        await self._repo.create_outline_request(request)
        await self._repo.append_status(request.id, OutlineStatus.SUBMITTED, {"title": request.title})
        logger.info("Outline request %s submitted", request.id)
        return request

    async def schedule(self, request_id: str) -> asyncio.Future:
        """Start processing in the background and return the owned task.

        Raises:
            OutlineRequestNotFound: If the request does not exist.
        """

        await self._repo.get_outline_request(request_id)
        return self._outline_tasks.spawn(request_id, lambda: self._drive(request_id))

    async def process_outline_request(self, request_id: str) -> OutlineStatus:
        """Run or resume an outline request until it reaches a terminal status.

        A request whose latest status is already terminal is left untouched. If the request is
        already being processed in this process, this waits for that run instead of starting a
        second one.

        Args:
            request_id: Outline request id.

        Returns:
            OutlineStatus: The terminal status.

        Raises:
            OutlineRequestNotFound: If the request does not exist.
        """

        task = await self.schedule(request_id)
        return await task

    async def wait_idle(self) -> None:
        """Wait until no outline or lesson task is running."""

        await self._outline_tasks.wait_all()
        await self._lesson_tasks.wait_all()

    # -- driver ----------------------------------------------------------------------------

    async def _drive(self, request_id: str) -> OutlineStatus:
        with run_context(entity=request_id, stage="outline"):
            request = await self._repo.get_outline_request(request_id)
            latest = await self._repo.latest_status(request_id)
            if latest is None:
                latest = await self._repo.append_status(
                    request_id, OutlineStatus.SUBMITTED, {"title": request.title}
                )
            state = OutlineStatus(latest.status)
            if state.is_terminal:
                logger.info("Outline request already %s", state.value)
                return state

            run = _Run(request=request)
            if state in _WORKING_EFFECTS:
                logger.info("Resuming interrupted stage %s", state.value)

            while not state.is_terminal:
                if state == OutlineStatus.LESSONS_VALIDATED:
                    state = await self._settle(run)
                    continue

                if state in _RESTING:
                    step = transition(state, PipelineEvent.BEGIN)
                    await self._repo.append_status(request_id, step.target)
                    state = step.target
                    effect = step.effect
                else:
                    effect = _WORKING_EFFECTS[state]

                set_stage(state.value)
                event, meta = await self._perform(effect, run, stage=state.value)
                step = transition(state, event)
                await self._repo.append_status(request_id, step.target, meta)
                if step.target.is_terminal:
                    self._log_terminal(step.target, meta)
                state = step.target

            return state

    async def _perform(
        self,
        effect: Effect | None,
        run: _Run,
        *,
        stage: str,
    ) -> tuple[PipelineEvent, dict[str, Any]]:
        try:
            if effect == Effect.VALIDATE_OUTLINE:
                return await self._validate_outline(run)
            if effect == Effect.GENERATE_BLOCKS:
                return await self._generate_blocks(run)
            if effect == Effect.SPAWN_LESSONS:
                return await self._spawn_lessons(run)
            if effect == Effect.JOIN_LESSONS:
                return await self._join_lessons(run)
            raise LessonWeaverError(f"no handler for effect {effect!r}")
        except Exception as e:
            log_exception(logger, "Outline stage failed", request_id=run.request.id, stage=stage)
            return PipelineEvent.FAULT, error_metadata(e, stage=stage)

    # -- effects ---------------------------------------------------------------------------

    async def _validate_outline(self, run: _Run) -> tuple[PipelineEvent, dict[str, Any]]:
        scores = await self._provider.validate_outline(run.request.outline_text)
        decision = decide(scores, self._policy)
        scores_meta = scores.model_dump(mode="json", by_alias=True)
        if not decision.accepted:
            return PipelineEvent.REJECTED, {
                "reasons": decision.reasons,
                "severity": decision.severity,
                "scores": scores_meta,
            }
        run.scores = scores
        logger.info("Outline accepted: %s", scores.detected_topic or "unknown topic")
        return PipelineEvent.ACCEPTED, {"scores": scores_meta}

    async def _generate_blocks(self, run: _Run) -> tuple[PipelineEvent, dict[str, Any]]:
        scores = run.scores or await self._load_scores(run.request.id)
        plan = await self._provider.generate_blocks(run.request.outline_text, validation_feedback(scores))
        total = plan.total_blocks()
        if total > self._settings.max_total_blocks:
            raise BlockLimitExceeded(total, self._settings.max_total_blocks)
        run.request = await self._repo.save_lesson_plan(run.request.id, plan)
        run.plan = plan
        logger.info("Planned %d lesson(s) with %d block(s)", len(plan.lessons), total)
        return PipelineEvent.GENERATED, {
            "plan": plan.model_dump(mode="json", by_alias=True),
            "lesson_count": len(plan.lessons),
            "total_blocks": total,
        }

    async def _spawn_lessons(self, run: _Run) -> tuple[PipelineEvent, dict[str, Any]]:
        plan = await self._load_plan(run)
        context = LessonContext.from_plan(plan)
        lesson_ids: list[str] = []
        for position, planned in enumerate(plan.lessons):
            unit = await self._repo.create_lesson(run.request.id, position, planned.title)
            lesson_ids.append(unit.id)
            latest = await self._repo.latest_status(unit.id)
            if latest is not None and LessonStatus(latest.status).is_terminal:
                continue
            run.tasks[unit.id] = self._spawn_unit(unit, plan, context)
        logger.info("Spawned %d of %d lesson unit(s)", len(run.tasks), len(lesson_ids))
        return PipelineEvent.GENERATED, {"lesson_ids": lesson_ids}

    async def _join_lessons(self, run: _Run) -> tuple[PipelineEvent, dict[str, Any]]:
        plan = await self._load_plan(run)
        context = LessonContext.from_plan(plan)
        lessons = await self._repo.list_lessons(run.request.id)
        if len(lessons) != len(plan.lessons):
            # interrupted while creating lesson records
            for position, planned in enumerate(plan.lessons):
                await self._repo.create_lesson(run.request.id, position, planned.title)
            lessons = await self._repo.list_lessons(run.request.id)

        waiting: list[tuple[LessonUnit, asyncio.Future]] = []
        outcomes: dict[str, LessonOutcome] = {}
        for unit in lessons:
            task = run.tasks.get(unit.id) or self._lesson_tasks.get(unit.id)
            if task is None:
                latest = await self._repo.latest_status(unit.id)
                if latest is not None and LessonStatus(latest.status).is_terminal:
                    outcomes[unit.id] = self._units.outcome_from_record(unit, latest)
                    continue
                task = self._spawn_unit(unit, plan, context)
            waiting.append((unit, task))

        results = await asyncio.gather(*(t for _, t in waiting), return_exceptions=True)
        for (unit, _), result in zip(waiting, results):
            if isinstance(result, LessonOutcome):
                outcomes[unit.id] = result
            else:
                outcomes[unit.id] = await self._record_unit_crash(unit, result)

        ordered = [outcomes[u.id] for u in lessons]
        run.outcomes = ordered
        return PipelineEvent.JOINED, {"outcomes": [o.as_metadata() for o in ordered]}

    async def _settle(self, run: _Run) -> OutlineStatus:
        outcomes = run.outcomes
        if outcomes is None:
            outcomes_meta = await self._load_outcomes(run.request.id)
        else:
            outcomes_meta = [o.as_metadata() for o in outcomes]

        event = classify_batch(o["status"] for o in outcomes_meta)
        step = transition(OutlineStatus.LESSONS_VALIDATED, event)
        completed_ids = [o["lesson_id"] for o in outcomes_meta if o["status"] == LessonStatus.COMPLETED.value]
        meta: dict[str, Any] = {
            "outcomes": outcomes_meta,
            "completed_lesson_ids": completed_ids,
            "lesson_count": len(outcomes_meta),
        }
        if step.target != OutlineStatus.COMPLETED:
            bad = [o for o in outcomes_meta if o["status"] != LessonStatus.COMPLETED.value]
            meta["reasons"] = [
                f"Lesson {o['position']} ({o['title']}) {o['status']}: {o.get('message') or 'no details'}"
                for o in bad
            ]
        await self._repo.append_status(run.request.id, step.target, meta)
        self._log_terminal(step.target, meta)
        return step.target

    # -- helpers ---------------------------------------------------------------------------

    def _spawn_unit(self, unit: LessonUnit, plan: LessonPlan, context: LessonContext) -> asyncio.Future:
        if unit.position >= len(plan.lessons):
            raise LessonWeaverError(f"lesson {unit.id} has no planned lesson at position {unit.position}")
        blocks = list(plan.lessons[unit.position].blocks)
        return self._lesson_tasks.spawn(unit.id, lambda: self._units.run(unit.id, blocks, context))

    async def _record_unit_crash(self, unit: LessonUnit, exc: BaseException) -> LessonOutcome:
        logger.error("Lesson unit %s crashed: %s", unit.id, exc, exc_info=exc)
        meta = error_metadata(exc, stage="lesson")
        latest = await self._repo.latest_status(unit.id)
        if latest is None or not LessonStatus(latest.status).is_terminal:
            await self._repo.append_status(unit.id, LessonStatus.ERROR, meta)
        return LessonOutcome(
            lesson_id=unit.id,
            position=unit.position,
            title=unit.title,
            status=LessonStatus.ERROR,
            attempts=unit.validation_attempt_count,
            message=meta["message"],
        )

    async def _load_scores(self, request_id: str) -> ValidationScores:
        for record in reversed(await self._repo.list_statuses(request_id)):
            if record.status == OutlineStatus.VALIDATED.value and "scores" in record.metadata:
                return ValidationScores.model_validate(record.metadata["scores"])
        raise LessonWeaverError(f"no recorded validation scores for {request_id}")

    async def _load_plan(self, run: _Run) -> LessonPlan:
        if run.plan is not None:
            return run.plan
        if run.request.lesson_plan is not None:
            run.plan = run.request.lesson_plan
            return run.plan
        for record in reversed(await self._repo.list_statuses(run.request.id)):
            if record.status == OutlineStatus.BLOCKS_GENERATED.value and "plan" in record.metadata:
                run.plan = LessonPlan.model_validate(record.metadata["plan"])
                return run.plan
        raise LessonWeaverError(f"no lesson plan recorded for {run.request.id}")

    async def _load_outcomes(self, request_id: str) -> list[dict[str, Any]]:
        for record in reversed(await self._repo.list_statuses(request_id)):
            if record.status == OutlineStatus.LESSONS_VALIDATED.value:
                return list(record.metadata.get("outcomes", []))
        return []

    def _log_terminal(self, status: OutlineStatus, meta: dict[str, Any]) -> None:
        if status == OutlineStatus.COMPLETED:
            logger.info("Outline request completed")
        elif status == OutlineStatus.FAILED:
            logger.warning("Outline request failed: %s", "; ".join(meta.get("reasons", [])))
        else:
            logger.error("Outline request errored: %s", meta.get("message") or meta.get("reasons"))
