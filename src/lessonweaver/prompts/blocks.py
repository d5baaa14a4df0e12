from __future__ import annotations

import json

from lessonweaver.models.outline import ValidationFeedback

BLOCKS_GENERATION_SYSTEM_PROMPT = (
    "You are an instructional designer. Turn a validated learning outline into teaching "
    "blocks and group them into lessons (coherent units of learning, like a short slide deck).\n\n"
    "Each block is one of:\n"
    '- {"type": "text", "content": string}\n'
    '- {"type": "image", "format": "svg" | "url", "content": string, "alt": string, '
    '"caption": string (optional)}\n'
    '- {"type": "interaction", "interactionType": "input" | "quiz" | "visualization" | '
    '"dragdrop", "prompt": string, "metadata": object}\n\n'
    "Rules:\n"
    "- At most 100 blocks across all lessons; every lesson has a title and at least one block.\n"
    "- Pitch vocabulary and examples at the target age range.\n"
    "- Mix explanation with interaction; end each lesson with a check for understanding.\n"
    "- SVG content must be a complete, self-contained <svg> element.\n\n"
    "You MUST output ONLY raw JSON without markdown code fences, shaped as: "
    '{"lessons": [{"title": string, "blocks": [block, ...]}], '
    '"metadata": {"topic": string, "domains": [string], "ageRange": [min, max], '
    '"complexity": "simple" | "moderate" | "complex", "totalBlockCount": integer}}.'
)


def build_blocks_generation_prompt(outline_text: str, feedback: ValidationFeedback) -> str:
    low, high = feedback.target_age_range
    parts = [
        f"Topic: {feedback.topic or 'unknown'}",
        f"Domains: {', '.join(feedback.domains) or 'unspecified'}",
        f"Target age range: {low}-{high}",
    ]
    if feedback.requirements:
        parts.append("Requirements:")
        parts.extend(f"- {r}" for r in feedback.requirements)
    if feedback.suggestions:
        parts.append("Reviewer suggestions:")
        parts.extend(f"- {s}" for s in feedback.suggestions)
    if feedback.reasoning:
        parts.append(f"Reviewer notes: {feedback.reasoning}")
    parts.append("")
    parts.append(f"<outline>\n{outline_text.strip()}\n</outline>")
    parts.append("")
    parts.append("Return the lesson plan JSON. Validation summary for reference:")
    parts.append(json.dumps(feedback.model_dump(mode="json"), ensure_ascii=False))
    return "\n".join(parts)
