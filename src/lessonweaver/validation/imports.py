"""Import whitelist for lesson components.

Lesson components run inside the host page, so they may only pull in UI libraries that the host
already ships. Anything else, including relative imports, is rejected.
"""

from __future__ import annotations

from lessonweaver.compilation.transpiler import ImportRef
from lessonweaver.models.validation import ValidationIssue

ALLOWED_IMPORTS: frozenset[str] = frozenset(
    {
        "react",
        "lucide-react",
        "@radix-ui/react-checkbox",
        "@radix-ui/react-accordion",
        "@radix-ui/react-label",
        "clsx",
        "tailwind-merge",
    }
)

_NAVIGATION = "Navigation is not allowed in lesson components"
_SERVER = "Server-side functionality is not allowed in lesson components"
_DATABASE = "Database access is not allowed in lesson components"

BLOCKED_IMPORTS: dict[str, str] = {
    "next/link": _NAVIGATION,
    "next/navigation": _NAVIGATION,
    "next/router": _NAVIGATION,
    "next/server": _SERVER,
    "next/headers": _SERVER,
    "@supabase/ssr": _SERVER,
    "@supabase/supabase-js": _DATABASE,
}


def check_import(ref: ImportRef) -> ValidationIssue | None:
    """Return an issue when the referenced module is not allowed."""

    if ref.module in ALLOWED_IMPORTS:
        return None
    blocked = BLOCKED_IMPORTS.get(ref.module)
    if blocked is not None:
        return ValidationIssue(
            category="import",
            line=ref.line,
            column=ref.column,
            message=blocked,
            code="blocked-import",
        )
    return ValidationIssue(
        category="import",
        line=ref.line,
        column=ref.column,
        message=(
            f'Import "{ref.module}" is not in the whitelist. '
            "Only approved educational libraries can be imported."
        ),
        code="unlisted-import",
    )


def check_imports(refs: list[ImportRef]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for ref in refs:
        issue = check_import(ref)
        if issue is not None:
            issues.append(issue)
    return issues
