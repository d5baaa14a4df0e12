"""Static validation result models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

IssueCategory = Literal["compile", "import"]
Severity = Literal["error", "warning"]


class ValidationIssue(BaseModel):
    """One problem found in a lesson source."""

    category: IssueCategory
    severity: Severity = "error"
    line: int = Field(default=1, ge=1)
    column: int = Field(default=1, ge=1)
    message: str
    code: str | None = None

    def describe(self) -> str:
        """Single-line rendering used in regeneration prompts and the CLI."""

        tag = f" [{self.code}]" if self.code else ""
        return f"{self.line}:{self.column} {self.severity} {self.category}{tag}: {self.message}"


class ValidationReport(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "ValidationReport":
        errors = [i for i in issues if i.severity == "error"]
        warnings = [i for i in issues if i.severity == "warning"]
        return cls(valid=not errors, errors=errors, warnings=warnings)
