"""Compiler-diagnostics pass: syntax errors and lint findings as validation issues."""

from __future__ import annotations

from lessonweaver.compilation.scanner import Diagnostic
from lessonweaver.compilation.transpiler import TranspileResult
from lessonweaver.models.validation import ValidationIssue


def _to_issue(d: Diagnostic) -> ValidationIssue:
    return ValidationIssue(
        category="compile",
        severity=d.severity,
        line=d.line,
        column=d.column,
        message=d.message,
        code=d.code,
    )


def compile_diagnostics(result: TranspileResult) -> list[ValidationIssue]:
    """Syntax errors first, then lint findings in source order."""

    issues = [_to_issue(d) for d in result.errors]
    lint = sorted(result.lint, key=lambda d: (d.line, d.column))
    issues.extend(_to_issue(d) for d in lint)
    return issues
