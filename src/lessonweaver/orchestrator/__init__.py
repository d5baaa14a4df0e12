from __future__ import annotations

from lessonweaver.orchestrator.lesson_unit import LessonOutcome, LessonUnitWorkflow
from lessonweaver.orchestrator.pipeline import OutlinePipeline
from lessonweaver.orchestrator.state import TRANSITIONS, Effect, PipelineEvent, classify_batch, transition

__all__ = [
    "Effect",
    "LessonOutcome",
    "LessonUnitWorkflow",
    "OutlinePipeline",
    "PipelineEvent",
    "TRANSITIONS",
    "classify_batch",
    "transition",
]
