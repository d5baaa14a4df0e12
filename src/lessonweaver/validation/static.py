"""Static validator for generated lesson sources.

Three passes, in order:

1. Compiler diagnostics (syntax, unsupported TypeScript constructs, lint rules).
2. TypeScript type check, when a `TypeChecker` is configured.
3. Import whitelist.

A pass that reports any error stops the later ones: type and import information from a source
that does not parse is not trustworthy.
"""

from __future__ import annotations

from lessonweaver.compilation.transpiler import transpile
from lessonweaver.config import Settings
from lessonweaver.logging import get_logger
from lessonweaver.models.validation import ValidationReport
from lessonweaver.validation.diagnostics import compile_diagnostics
from lessonweaver.validation.imports import check_imports
from lessonweaver.validation.typecheck import TypeChecker

logger = get_logger(__name__)


class StaticValidator:
    def __init__(self, type_checker: TypeChecker | None = None) -> None:
        self._type_checker = type_checker

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticValidator":
        return cls(TypeChecker.from_settings(settings))

    def validate(self, source: str) -> ValidationReport:
        """Validate a lesson source.

        Args:
            source: TSX source text.

        Returns:
            ValidationReport: `valid` is true iff no error-severity issue was found.

        Raises:
            TypeCheckError: The configured type checker could not be run.
        """

        result = transpile(source)
        report = ValidationReport.from_issues(compile_diagnostics(result))
        if not report.valid:
            logger.debug("Compile diagnostics failed with %d error(s)", len(report.errors))
            return report
        warnings = list(report.warnings)

        if self._type_checker is not None:
            typed = ValidationReport.from_issues(self._type_checker.check(source))
            warnings.extend(typed.warnings)
            if not typed.valid:
                logger.debug("Type check failed with %d error(s)", len(typed.errors))
                return ValidationReport(valid=False, errors=typed.errors, warnings=warnings)

        import_issues = check_imports(result.imports)
        report = ValidationReport(
            valid=not import_issues,
            errors=import_issues,
            warnings=warnings,
        )
        if import_issues:
            logger.debug("Import whitelist rejected %d import(s)", len(import_issues))
        return report


def validate_source(source: str) -> ValidationReport:
    return StaticValidator().validate(source)
