from __future__ import annotations

from lessonweaver.llm.client import ChatMessage, LLMClient
from lessonweaver.llm.provider import GenerationProvider, LLMGenerationProvider

__all__ = [
    "ChatMessage",
    "GenerationProvider",
    "LLMClient",
    "LLMGenerationProvider",
]
