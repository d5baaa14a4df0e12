from __future__ import annotations

from lessonweaver.evaluation.thresholds import Decision, ThresholdPolicy, decide, validation_feedback

__all__ = ["Decision", "ThresholdPolicy", "decide", "validation_feedback"]
