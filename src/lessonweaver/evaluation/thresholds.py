"""Accept/reject decision for validated outlines.

The provider only produces scores; this module owns the business thresholds. `decide` is pure
and evaluates every criterion so that a rejection carries its complete reason set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from lessonweaver.config import Settings
from lessonweaver.models.outline import ValidationFeedback, ValidationScores

DecisionSeverity = Literal["none", "low", "high"]


@dataclass(frozen=True)
class ThresholdPolicy:
    safety_floor: float = 0.8
    severe_safety_floor: float = 0.3
    specificity_floor: float = 0.7
    require_catalog_match: bool = False
    min_age: int = 5
    max_age: int = 16

    @classmethod
    def from_settings(cls, settings: Settings) -> "ThresholdPolicy":
        return cls(
            safety_floor=settings.safety_floor,
            severe_safety_floor=settings.severe_safety_floor,
            specificity_floor=settings.specificity_floor,
            require_catalog_match=settings.require_catalog_match,
            min_age=settings.min_age,
            max_age=settings.max_age,
        )


@dataclass(frozen=True)
class Decision:
    accepted: bool
    reasons: list[str] = field(default_factory=list)
    severity: DecisionSeverity = "none"


def decide(scores: ValidationScores, policy: ThresholdPolicy | None = None) -> Decision:
    """Apply the threshold policy to provider scores.

    Args:
        scores: Provider assessment of the outline.
        policy: Thresholds; defaults to :class:`ThresholdPolicy` defaults.

    Returns:
        Decision: `accepted` is true only when no criterion produced a reason.
    """

    policy = policy or ThresholdPolicy()
    reasons: list[str] = []
    severity: DecisionSeverity = "none"

    if scores.safety_score < policy.safety_floor:
        if scores.safety_score < policy.severe_safety_floor:
            severity = "high"
            reasons.append(
                f"Invalid intent: safety score {scores.safety_score:.2f} indicates content "
                "that is not appropriate for learners"
            )
        else:
            severity = "low"
            reasons.append(
                f"Unclear intent: safety score {scores.safety_score:.2f} is below "
                f"{policy.safety_floor:.2f}"
            )

    if scores.specificity_score < policy.specificity_floor:
        reasons.append(
            f"Outline is too vague: specificity score {scores.specificity_score:.2f} is below "
            f"{policy.specificity_floor:.2f}"
        )
        if scores.suggestions:
            reasons.append("Suggestions: " + "; ".join(scores.suggestions))

    if policy.require_catalog_match and not scores.matches_topic_catalog:
        topic = scores.detected_topic or "unknown"
        reasons.append(f"Topic {topic!r} does not match the supported topic catalog")

    if not scores.actionable:
        reasons.append("Outline is not actionable")
        if scores.missing_info:
            reasons.append("Missing: " + ", ".join(scores.missing_info))

    low, high = scores.target_age_range
    if low < policy.min_age or high > policy.max_age:
        reasons.append(
            f"Target age range {low}-{high} is outside the supported range "
            f"{policy.min_age}-{policy.max_age}"
        )

    if reasons and severity == "none":
        severity = "low"
    return Decision(accepted=not reasons, reasons=reasons, severity=severity)


def validation_feedback(scores: ValidationScores) -> ValidationFeedback:
    """Extract the part of an accepted assessment that block generation needs."""

    return ValidationFeedback(
        topic=scores.detected_topic,
        domains=list(scores.detected_domains),
        requirements=list(scores.requirements),
        target_age_range=scores.target_age_range,
        reasoning=scores.reasoning,
        suggestions=list(scores.suggestions),
    )
