from __future__ import annotations

from lessonweaver.prompts.blocks import BLOCKS_GENERATION_SYSTEM_PROMPT, build_blocks_generation_prompt
from lessonweaver.prompts.lesson_source import (
    LESSON_REGENERATION_SYSTEM_PROMPT,
    LESSON_SOURCE_SYSTEM_PROMPT,
    build_lesson_regeneration_prompt,
    build_lesson_source_prompt,
)
from lessonweaver.prompts.outline import OUTLINE_VALIDATION_SYSTEM_PROMPT, build_outline_validation_prompt

__all__ = [
    "BLOCKS_GENERATION_SYSTEM_PROMPT",
    "LESSON_REGENERATION_SYSTEM_PROMPT",
    "LESSON_SOURCE_SYSTEM_PROMPT",
    "OUTLINE_VALIDATION_SYSTEM_PROMPT",
    "build_blocks_generation_prompt",
    "build_lesson_regeneration_prompt",
    "build_lesson_source_prompt",
    "build_outline_validation_prompt",
]
