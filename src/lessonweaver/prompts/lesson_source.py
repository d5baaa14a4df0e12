from __future__ import annotations

import json
from typing import Sequence, assert_never

from lessonweaver.models.lesson import Block, ImageBlock, InteractionBlock, LessonContext, TextBlock
from lessonweaver.models.validation import ValidationIssue
from lessonweaver.validation.imports import ALLOWED_IMPORTS

_ALLOWED = ", ".join(sorted(ALLOWED_IMPORTS))

_COMPONENT_RULES = (
    "Component rules:\n"
    "- A single self-contained file written in TSX.\n"
    "- It MUST declare `export default function LessonPage()` and take no props.\n"
    f"- Import only from: {_ALLOWED}. No relative imports, no navigation, no data fetching.\n"
    "- Build every quiz, input and visualization inline with React state; do not import "
    "components that do not exist.\n"
    "- Style with Tailwind utility classes.\n"
    "- No enum, namespace, declare or decorators. No eval, new Function or "
    "dangerouslySetInnerHTML. No @ts-ignore.\n"
    "- Inline SVG from image blocks as JSX (camelCase attributes).\n"
)

LESSON_SOURCE_SYSTEM_PROMPT = (
    "You are an expert React developer building interactive lesson pages for children. "
    "Render every teaching block you are given, in order, without dropping or inventing "
    "content.\n\n"
    + _COMPONENT_RULES
    + "\nReturn ONLY the raw TSX source. No JSON wrapper, no markdown code fences, no prose."
)

LESSON_REGENERATION_SYSTEM_PROMPT = (
    "You are an expert React developer fixing a lesson page that failed static validation. "
    "Fix EVERY reported error while keeping the educational content and layout of the original "
    "page. Remove blocked or unlisted imports rather than working around them.\n\n"
    + _COMPONENT_RULES
    + "\nReturn ONLY the corrected raw TSX source. No JSON wrapper, no markdown code fences, "
    "no prose."
)


def describe_block(index: int, block: Block) -> list[str]:
    """Render one block as prompt lines."""

    if isinstance(block, TextBlock):
        return [f"{index}. TEXT", f"   {block.content}"]
    if isinstance(block, ImageBlock):
        lines = [f"{index}. IMAGE ({block.format})", f"   alt: {block.alt}"]
        if block.caption:
            lines.append(f"   caption: {block.caption}")
        lines.append(f"   content: {block.content}")
        return lines
    if isinstance(block, InteractionBlock):
        lines = [f"{index}. INTERACTION ({block.kind})", f"   prompt: {block.prompt}"]
        if block.metadata:
            lines.append(f"   metadata: {json.dumps(block.metadata, ensure_ascii=False)}")
        return lines
    assert_never(block)


def _describe_blocks(blocks: Sequence[Block]) -> str:
    lines: list[str] = []
    for i, block in enumerate(blocks, start=1):
        lines.extend(describe_block(i, block))
    return "\n".join(lines)


def build_lesson_source_prompt(title: str, blocks: Sequence[Block], context: LessonContext) -> str:
    low, high = context.age_range
    return "\n".join(
        [
            f"Lesson title: {title}",
            f"Topic: {context.topic}",
            f"Domains: {', '.join(context.domains) or 'unspecified'}",
            f"Learner ages: {low}-{high}",
            f"Complexity: {context.complexity}",
            "",
            f"Blocks ({len(blocks)}):",
            _describe_blocks(blocks),
        ]
    )


def build_lesson_regeneration_prompt(
    original_source: str,
    errors: Sequence[ValidationIssue],
    title: str,
    blocks: Sequence[Block],
    attempt_number: int,
) -> str:
    error_lines = "\n".join(f"- {e.describe()}" for e in errors) or "- (no details recorded)"
    return "\n".join(
        [
            f"Regeneration attempt {attempt_number} for lesson: {title}",
            "",
            "Validation errors:",
            error_lines,
            "",
            "Original source:",
            original_source,
            "",
            "Blocks the page must still render:",
            _describe_blocks(blocks),
        ]
    )
