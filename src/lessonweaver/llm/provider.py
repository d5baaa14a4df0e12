"""Generation provider: the typed boundary around the language model.

Every model response is untrusted input. It is parsed and validated once here, and anything that
does not match its contract raises :class:`ProviderOutputError` rather than leaking a half-valid
object into the pipeline.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Sequence, TypeVar

import openai
from pydantic import BaseModel, ValidationError

from lessonweaver.config import Settings
from lessonweaver.errors import BlockLimitExceeded, ProviderError, ProviderOutputError
from lessonweaver.llm.client import ChatMessage, LLMClient
from lessonweaver.logging import get_logger
from lessonweaver.models.lesson import Block, LessonContext, LessonPlan
from lessonweaver.models.outline import ValidationFeedback, ValidationScores
from lessonweaver.models.validation import ValidationIssue
from lessonweaver.prompts import (
    BLOCKS_GENERATION_SYSTEM_PROMPT,
    LESSON_REGENERATION_SYSTEM_PROMPT,
    LESSON_SOURCE_SYSTEM_PROMPT,
    OUTLINE_VALIDATION_SYSTEM_PROMPT,
    build_blocks_generation_prompt,
    build_lesson_regeneration_prompt,
    build_lesson_source_prompt,
    build_outline_validation_prompt,
)
from lessonweaver.utils.parsing import extract_json_object, preview, strip_markdown_fences

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

MIN_SOURCE_CHARS = 50


class GenerationProvider(ABC):
    """Structured content generation used by the pipeline."""

    @abstractmethod
    async def validate_outline(self, outline_text: str) -> ValidationScores:
        """Score an outline for safety, specificity and actionability."""

    @abstractmethod
    async def generate_blocks(self, outline_text: str, feedback: ValidationFeedback) -> LessonPlan:
        """Plan lessons and teaching blocks for an accepted outline."""

    @abstractmethod
    async def generate_lesson_source(
        self,
        title: str,
        blocks: Sequence[Block],
        context: LessonContext,
    ) -> str:
        """Write the TSX source of one lesson page."""

    @abstractmethod
    async def regenerate_lesson_source(
        self,
        original_source: str,
        errors: Sequence[ValidationIssue],
        title: str,
        blocks: Sequence[Block],
        attempt_number: int,
    ) -> str:
        """Rewrite a lesson source so that it no longer has `errors`."""


def check_source_contract(source: str) -> str:
    """Raise ProviderOutputError unless `source` looks like a lesson page module."""

    problems: list[str] = []
    if len(source) < MIN_SOURCE_CHARS:
        problems.append(f"source is shorter than {MIN_SOURCE_CHARS} characters")
    if "export default" not in source:
        problems.append("source has no default export")
    if "function LessonPage" not in source:
        problems.append("source does not declare function LessonPage")
    if problems:
        raise ProviderOutputError("; ".join(problems), raw_preview=preview(source))
    return source


def classify_openai_error(exc: Exception) -> ProviderError:
    """Map an SDK exception to a ProviderError with a kind."""

    if isinstance(exc, openai.APITimeoutError):
        return ProviderError(f"request timed out: {exc}", kind="connection")
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError(f"cannot reach the model endpoint: {exc}", kind="connection")
    if isinstance(exc, openai.RateLimitError):
        return ProviderError(f"rate limited by the model endpoint: {exc}", kind="rate_limit")
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderError(f"model endpoint rejected the credentials: {exc}", kind="auth")
    if isinstance(exc, openai.NotFoundError):
        return ProviderError(f"model not found: {exc}", kind="model_not_found")
    if isinstance(exc, openai.APIStatusError):
        return ProviderError(f"model endpoint returned {exc.status_code}: {exc}", kind="api")
    if isinstance(exc, openai.OpenAIError):
        return ProviderError(str(exc), kind="api")
    return ProviderError(f"unexpected provider failure: {exc}", kind="unknown")


class LLMGenerationProvider(GenerationProvider):
    """GenerationProvider backed by an OpenAI-compatible chat model.

    The sync SDK client is driven from worker threads so the event loop stays free while lessons
    are generated concurrently.
    """

    def __init__(self, llm: LLMClient, settings: Settings) -> None:
        self._llm = llm
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMGenerationProvider":
        return cls(LLMClient(settings), settings)

    async def _complete(self, system: str, user: str, *, temperature: float, json_mode: bool) -> str:
        messages = [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=user),
        ]
        try:
            raw = await asyncio.to_thread(
                self._llm.complete, messages, temperature=temperature, json_mode=json_mode
            )
        except ProviderError:
            raise
        except Exception as e:
            raise classify_openai_error(e) from e
        if not raw or not raw.strip():
            raise ProviderOutputError("model returned an empty response")
        return raw

    def _parse(self, raw: str, model: type[M], *, what: str) -> M:
        obj = extract_json_object(raw)
        if obj is None:
            raise ProviderOutputError(f"{what}: response is not a JSON object", raw_preview=preview(raw))
        try:
            return model.model_validate(obj)
        except ValidationError as e:
            raise ProviderOutputError(
                f"{what}: response does not match schema: {e.error_count()} error(s)",
                raw_preview=preview(raw),
            ) from e

    def _source(self, raw: str) -> str:
        text = strip_markdown_fences(raw)
        # tolerate {"tsxCode": "..."} wrappers
        if text.startswith("{"):
            obj = extract_json_object(text)
            if obj is not None and isinstance(obj.get("tsxCode"), str):
                text = strip_markdown_fences(obj["tsxCode"])
        return check_source_contract(text)

    async def validate_outline(self, outline_text: str) -> ValidationScores:
        raw = await self._complete(
            OUTLINE_VALIDATION_SYSTEM_PROMPT,
            build_outline_validation_prompt(outline_text),
            temperature=self._settings.validation_temperature,
            json_mode=True,
        )
        scores = self._parse(raw, ValidationScores, what="outline validation")
        logger.debug(
            "Outline scored safety=%.2f specificity=%.2f actionable=%s",
            scores.safety_score,
            scores.specificity_score,
            scores.actionable,
        )
        return scores

    async def generate_blocks(self, outline_text: str, feedback: ValidationFeedback) -> LessonPlan:
        raw = await self._complete(
            BLOCKS_GENERATION_SYSTEM_PROMPT,
            build_blocks_generation_prompt(outline_text, feedback),
            temperature=self._settings.blocks_temperature,
            json_mode=True,
        )
        plan = self._parse(raw, LessonPlan, what="block generation")
        total = plan.total_blocks()
        if total > self._settings.max_total_blocks:
            raise BlockLimitExceeded(total, self._settings.max_total_blocks)
        if plan.metadata.total_block_count != total:
            plan = plan.model_copy(
                update={"metadata": plan.metadata.model_copy(update={"total_block_count": total})}
            )
        return plan

    async def generate_lesson_source(
        self,
        title: str,
        blocks: Sequence[Block],
        context: LessonContext,
    ) -> str:
        raw = await self._complete(
            LESSON_SOURCE_SYSTEM_PROMPT,
            build_lesson_source_prompt(title, blocks, context),
            temperature=self._settings.source_temperature,
            json_mode=False,
        )
        return self._source(raw)

    async def regenerate_lesson_source(
        self,
        original_source: str,
        errors: Sequence[ValidationIssue],
        title: str,
        blocks: Sequence[Block],
        attempt_number: int,
    ) -> str:
        raw = await self._complete(
            LESSON_REGENERATION_SYSTEM_PROMPT,
            build_lesson_regeneration_prompt(original_source, errors, title, blocks, attempt_number),
            temperature=self._settings.regeneration_temperature,
            json_mode=False,
        )
        return self._source(raw)
