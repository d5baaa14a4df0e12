from __future__ import annotations

from lessonweaver.validation import StaticValidator, validate_source

from fakes import BLOCKED_IMPORT_SOURCE, SYNTAX_ERROR_SOURCE, VALID_SOURCE


def test_valid_source_passes() -> None:
    report = validate_source(VALID_SOURCE)
    assert report.valid is True
    assert report.errors == []


def test_blocked_import_has_specific_message() -> None:
    report = validate_source(BLOCKED_IMPORT_SOURCE)
    assert report.valid is False
    [issue] = report.errors
    assert issue.category == "import"
    assert issue.code == "blocked-import"
    assert issue.message == "Navigation is not allowed in lesson components"
    assert (issue.line, issue.column) == (1, 18)


def test_unlisted_and_relative_imports_are_rejected() -> None:
    source = (
        'import axios from "axios";\n'
        'import Quiz from "./Quiz";\n'
        'import { Check } from "lucide-react";\n'
        "export default function LessonPage() { return null; }\n"
    )
    report = validate_source(source)
    assert [i.code for i in report.errors] == ["unlisted-import", "unlisted-import"]
    assert 'Import "axios" is not in the whitelist.' in report.errors[0].message
    assert report.errors[1].line == 2


def test_type_only_and_dynamic_imports_are_checked_too() -> None:
    source = (
        'import type { Session } from "@supabase/supabase-js";\n'
        'const load = () => import("next/router");\n'
        "export default function LessonPage() { return null; }\n"
    )
    report = validate_source(source)
    assert [i.message for i in report.errors] == [
        "Database access is not allowed in lesson components",
        "Navigation is not allowed in lesson components",
    ]


def test_compile_errors_short_circuit_import_pass() -> None:
    source = 'import Link from "next/link";\n' + SYNTAX_ERROR_SOURCE
    report = validate_source(source)
    assert report.valid is False
    assert {i.category for i in report.errors} == {"compile"}
    assert report.errors[0].code == "jsx-closing-tag-mismatch"


def test_lint_errors_block_and_warnings_do_not() -> None:
    with_eval = VALID_SOURCE.replace('useState<string>("")', 'useState<string>(eval("\'\'"))')
    report = validate_source(with_eval)
    assert report.valid is False
    assert report.errors[0].code == "banned-api"

    with_any = VALID_SOURCE.replace("useState<string>", "useState<any>")
    report = StaticValidator().validate(with_any)
    assert report.valid is True
    assert [w.code for w in report.warnings] == ["no-explicit-any"]


def test_missing_default_export_is_an_error() -> None:
    source = VALID_SOURCE.replace("export default function", "export function")
    report = validate_source(source)
    assert report.valid is False
    assert [i.code for i in report.errors] == ["missing-default-export"]


def test_issue_description_format() -> None:
    [issue] = validate_source(BLOCKED_IMPORT_SOURCE).errors
    assert issue.describe() == "1:18 error import [blocked-import]: Navigation is not allowed in lesson components"
