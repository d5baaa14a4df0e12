"""Application configuration.

Configuration is loaded from environment variables. For local development, you can provide a
`.env` file and set `LESSONWEAVER_ENV_FILE` to point to it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """LessonWeaver settings.

    All fields are environment-configurable. Prefix is `LESSONWEAVER_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="LESSONWEAVER_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    app_env: Literal["dev", "prod"] = Field(default="dev")
    log_level: str = Field(default="INFO")

    # LLM
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_timeout_s: float = Field(default=120.0)
    openai_max_retries: int = Field(default=2, ge=0, le=10)

    # Sampling temperature per generation stage
    validation_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    blocks_temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    source_temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    regeneration_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    # Pipeline
    max_retries: int = Field(default=2, ge=0, le=10)
    lesson_concurrency: int = Field(default=4, ge=1, le=64)
    max_total_blocks: int = Field(default=100, ge=1, le=1000)
    process_on_submit: bool = Field(default=True)

    # Outline thresholds
    safety_floor: float = Field(default=0.8, ge=0.0, le=1.0)
    severe_safety_floor: float = Field(default=0.3, ge=0.0, le=1.0)
    specificity_floor: float = Field(default=0.7, ge=0.0, le=1.0)
    require_catalog_match: bool = Field(default=False)
    min_age: int = Field(default=5, ge=1, le=100)
    max_age: int = Field(default=16, ge=1, le=100)

    # Storage
    storage_backend: Literal["memory", "jsonl", "redis"] = Field(default="jsonl")
    data_dir: Path = Field(default=Path("data"))
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="lessonweaver")

    # Artifacts (page.tsx / page.js per lesson); disabled when unset
    artifacts_dir: Path | None = Field(default=None)

    # TypeScript type check during validation; disabled when unset (e.g. "npx tsc")
    typecheck_command: str | None = Field(default=None)
    # Directory holding node_modules with react and @types/react
    typecheck_project_dir: Path | None = Field(default=None)
    typecheck_timeout_s: float = Field(default=60.0, gt=0)

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        if self.severe_safety_floor > self.safety_floor:
            raise ValueError("severe_safety_floor must not exceed safety_floor")
        return self


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("LESSONWEAVER_ENV_FILE")
    if env_file_override:
        return Settings(_env_file=Path(env_file_override))

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
