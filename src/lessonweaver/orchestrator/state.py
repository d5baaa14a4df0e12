"""Outline pipeline state machine.

The machine is a plain transition table. The driver in :mod:`lessonweaver.orchestrator.pipeline`
looks up `(state, event)`, records the new state and runs the attached effect, if any.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from lessonweaver.errors import InvalidTransition
from lessonweaver.models.status import LessonStatus, OutlineStatus


class PipelineEvent(str, Enum):
    BEGIN = "begin"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    GENERATED = "generated"
    JOINED = "joined"
    ALL_COMPLETED = "all_completed"
    ANY_FAILED = "any_failed"
    ANY_ERROR = "any_error"
    FAULT = "fault"


class Effect(str, Enum):
    VALIDATE_OUTLINE = "validate_outline"
    GENERATE_BLOCKS = "generate_blocks"
    SPAWN_LESSONS = "spawn_lessons"
    JOIN_LESSONS = "join_lessons"
    SETTLE_BATCH = "settle_batch"


@dataclass(frozen=True)
class Transition:
    target: OutlineStatus
    effect: Effect | None = None


S = OutlineStatus
E = PipelineEvent

TRANSITIONS: dict[tuple[OutlineStatus, PipelineEvent], Transition] = {
    (S.SUBMITTED, E.BEGIN): Transition(S.VALIDATING, Effect.VALIDATE_OUTLINE),
    (S.VALIDATING, E.ACCEPTED): Transition(S.VALIDATED),
    (S.VALIDATING, E.REJECTED): Transition(S.FAILED),
    (S.VALIDATING, E.FAULT): Transition(S.ERROR),
    (S.VALIDATED, E.BEGIN): Transition(S.BLOCKS_GENERATING, Effect.GENERATE_BLOCKS),
    (S.BLOCKS_GENERATING, E.GENERATED): Transition(S.BLOCKS_GENERATED),
    (S.BLOCKS_GENERATING, E.FAULT): Transition(S.ERROR),
    (S.BLOCKS_GENERATED, E.BEGIN): Transition(S.LESSONS_GENERATING, Effect.SPAWN_LESSONS),
    (S.LESSONS_GENERATING, E.GENERATED): Transition(S.LESSONS_GENERATED),
    (S.LESSONS_GENERATING, E.FAULT): Transition(S.ERROR),
    (S.LESSONS_GENERATED, E.BEGIN): Transition(S.LESSONS_VALIDATING, Effect.JOIN_LESSONS),
    (S.LESSONS_VALIDATING, E.JOINED): Transition(S.LESSONS_VALIDATED, Effect.SETTLE_BATCH),
    (S.LESSONS_VALIDATING, E.FAULT): Transition(S.ERROR),
    (S.LESSONS_VALIDATED, E.ALL_COMPLETED): Transition(S.COMPLETED),
    (S.LESSONS_VALIDATED, E.ANY_FAILED): Transition(S.FAILED),
    (S.LESSONS_VALIDATED, E.ANY_ERROR): Transition(S.ERROR),
}

del S, E


def transition(state: OutlineStatus, event: PipelineEvent) -> Transition:
    """Look up the transition for `(state, event)`.

    Raises:
        InvalidTransition: If the pair is not in the table.
    """

    found = TRANSITIONS.get((OutlineStatus(state), PipelineEvent(event)))
    if found is None:
        raise InvalidTransition(str(getattr(state, "value", state)), str(getattr(event, "value", event)))
    return found


def classify_batch(statuses: Iterable[LessonStatus | str]) -> PipelineEvent:
    """Batch disposition from terminal lesson statuses.

    Any error wins over any failure; only an all-completed batch completes. An empty batch is
    treated as completed.
    """

    values = {LessonStatus(s) for s in statuses}
    if LessonStatus.ERROR in values:
        return PipelineEvent.ANY_ERROR
    if LessonStatus.FAILED in values:
        return PipelineEvent.ANY_FAILED
    non_terminal = [s for s in values if not s.is_terminal]
    if non_terminal:
        # a lesson that never settled is an infrastructure problem
        return PipelineEvent.ANY_ERROR
    return PipelineEvent.ALL_COMPLETED
