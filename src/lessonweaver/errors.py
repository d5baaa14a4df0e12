"""Exception hierarchy.

Everything raised here is a *system* error from the pipeline's point of view: content failures
(threshold rejections, exhausted regeneration budgets) are recorded as statuses, not raised.
"""

from __future__ import annotations

from typing import Any, Literal

ProviderErrorKind = Literal[
    "connection",
    "rate_limit",
    "auth",
    "model_not_found",
    "api",
    "output",
    "unknown",
]


class LessonWeaverError(Exception):
    """Base class for all LessonWeaver errors."""


class ProviderError(LessonWeaverError):
    """The generation provider could not produce a result."""

    def __init__(self, message: str, *, kind: ProviderErrorKind = "unknown") -> None:
        super().__init__(message)
        self.kind = kind


class ProviderOutputError(ProviderError):
    """The provider answered, but the answer violates its structural contract."""

    def __init__(self, message: str, *, raw_preview: str | None = None) -> None:
        super().__init__(message, kind="output")
        self.raw_preview = raw_preview


class BlockLimitExceeded(ProviderOutputError):
    """A lesson plan carries more blocks than allowed."""

    def __init__(self, total: int, limit: int) -> None:
        super().__init__(f"lesson plan has {total} blocks, limit is {limit}")
        self.total = total
        self.limit = limit


class CompilationError(LessonWeaverError):
    """Source could not be compiled to a JavaScript module."""

    def __init__(self, message: str, *, diagnostics: list[Any] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = list(diagnostics or [])


class TypeCheckError(LessonWeaverError):
    """The TypeScript compiler could not be run or gave unreadable output."""

class RepositoryError(LessonWeaverError):
    """Persistence failure."""


class OutlineRequestNotFound(RepositoryError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"outline request not found: {request_id}")
        self.request_id = request_id


class LessonNotFound(RepositoryError):
    def __init__(self, lesson_id: str) -> None:
        super().__init__(f"lesson not found: {lesson_id}")
        self.lesson_id = lesson_id


class InvalidTransition(LessonWeaverError):
    """No transition is defined for a (state, event) pair."""

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"no transition from {state!r} on {event!r}")
        self.state = state
        self.event = event


def error_metadata(exc: BaseException, *, stage: str) -> dict[str, Any]:
    """Build the metadata recorded alongside an `error` status."""

    meta: dict[str, Any] = {
        "stage": stage,
        "error": type(exc).__name__,
        "message": str(exc),
    }
    kind = getattr(exc, "kind", None)
    if kind:
        meta["kind"] = kind
    raw_preview = getattr(exc, "raw_preview", None)
    if raw_preview:
        meta["raw_preview"] = raw_preview
    return meta
