from __future__ import annotations

from lessonweaver.validation.imports import ALLOWED_IMPORTS, BLOCKED_IMPORTS, check_imports
from lessonweaver.validation.static import StaticValidator, validate_source
from lessonweaver.validation.typecheck import TypeChecker, parse_tsc_output

__all__ = [
    "ALLOWED_IMPORTS",
    "BLOCKED_IMPORTS",
    "StaticValidator",
    "TypeChecker",
    "check_imports",
    "parse_tsc_output",
    "validate_source",
]
