"""FastAPI app for submitting outlines and inspecting their progress."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from lessonweaver.config import Settings, load_settings
from lessonweaver.errors import OutlineRequestNotFound
from lessonweaver.llm.provider import GenerationProvider, LLMGenerationProvider
from lessonweaver.logging import configure_logging, get_logger
from lessonweaver.models.lesson import LessonUnit
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import StatusRecord
from lessonweaver.orchestrator.pipeline import OutlinePipeline
from lessonweaver.storage import create_repository
from lessonweaver.storage.protocol import Repository


class OutlineSubmission(BaseModel):
    outline: str
    title: str | None = None


class SubmissionAccepted(BaseModel):
    id: str
    title: str
    status: str
    scheduled: bool


class LessonSummary(BaseModel):
    id: str
    position: int
    title: str
    status: str | None
    validation_attempt_count: int


class OutlineRequestView(BaseModel):
    request: OutlineRequest
    status: str | None
    lessons: list[LessonSummary]


class LessonView(BaseModel):
    lesson: LessonUnit
    statuses: list[StatusRecord]


def create_app(
    settings: Settings | None = None,
    *,
    repository: Repository | None = None,
    provider: GenerationProvider | None = None,
) -> FastAPI:
    """Create FastAPI app.

    Args:
        settings: Settings; loaded from the environment when omitted.
        repository: Storage; built from `settings.storage_backend` when omitted.
        provider: Generation provider; the OpenAI-backed one when omitted.
    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)
    logger = get_logger(__name__)

    repository = repository or create_repository(settings)
    provider = provider or LLMGenerationProvider.from_settings(settings)
    pipeline = OutlinePipeline(repository, provider, settings=settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        # no cancellation: let in-flight runs reach a terminal status
        await pipeline.wait_idle()
        await repository.close()

    app = FastAPI(
        title="LessonWeaver",
        version="0.1.0",
        debug=settings.app_env == "dev",
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    async def _lesson_summaries(request_id: str) -> list[LessonSummary]:
        out: list[LessonSummary] = []
        for lesson in await repository.list_lessons(request_id):
            latest = await repository.latest_status(lesson.id)
            out.append(
                LessonSummary(
                    id=lesson.id,
                    position=lesson.position,
                    title=lesson.title,
                    status=latest.status if latest is not None else None,
                    validation_attempt_count=lesson.validation_attempt_count,
                )
            )
        return out

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/outline-requests", status_code=202)
    async def submit_outline(req: OutlineSubmission) -> SubmissionAccepted:
        if not req.outline.strip():
            raise HTTPException(status_code=400, detail="outline must not be empty")
        request = await pipeline.submit(req.outline, title=req.title)
        logger.info("API outline submitted", extra={"outline_len": len(req.outline)})
        if settings.process_on_submit:
            await pipeline.schedule(request.id)
        return SubmissionAccepted(
            id=request.id,
            title=request.title,
            status="submitted",
            scheduled=settings.process_on_submit,
        )

    @app.get("/outline-requests/{request_id}")
    async def get_outline_request(request_id: str) -> OutlineRequestView:
        request = await repository.find_outline_request(request_id)
        if request is None:
            raise HTTPException(status_code=404, detail="outline request not found")
        latest = await repository.latest_status(request_id)
        return OutlineRequestView(
            request=request,
            status=latest.status if latest is not None else None,
            lessons=await _lesson_summaries(request_id),
        )

    @app.get("/outline-requests/{request_id}/statuses")
    async def list_outline_statuses(request_id: str) -> list[StatusRecord]:
        if await repository.find_outline_request(request_id) is None:
            raise HTTPException(status_code=404, detail="outline request not found")
        return await repository.list_statuses(request_id)

    @app.post("/outline-requests/{request_id}/resume", status_code=202)
    async def resume_outline_request(request_id: str, wait: bool = False) -> dict[str, Any]:
        try:
            if wait:
                status = await pipeline.process_outline_request(request_id)
                return {"id": request_id, "status": status.value}
            await pipeline.schedule(request_id)
        except OutlineRequestNotFound as e:
            raise HTTPException(status_code=404, detail="outline request not found") from e
        logger.info("API resume scheduled", extra={"request_id": request_id})
        return {"id": request_id, "status": "scheduled"}

    @app.get("/lessons/{lesson_id}")
    async def get_lesson(lesson_id: str) -> LessonView:
        lesson = await repository.find_lesson(lesson_id)
        if lesson is None:
            raise HTTPException(status_code=404, detail="lesson not found")
        return LessonView(lesson=lesson, statuses=await repository.list_statuses(lesson_id))

    return app
