"""TypeScript type check through an external `tsc`.

The source is written to a scratch directory (inside `project_dir` when set, so that `react` and
`@types/react` resolve from its `node_modules`) and checked with `--noEmit` under strict options.
Diagnostics located in the lesson file become `compile` issues coded `TS<n>`.
"""

from __future__ import annotations

import re
import shlex
import subprocess
import tempfile
from pathlib import Path

from lessonweaver.config import Settings
from lessonweaver.errors import TypeCheckError
from lessonweaver.logging import get_logger
from lessonweaver.models.validation import ValidationIssue

logger = get_logger(__name__)

LESSON_FILE = "lesson.tsx"

TSC_OPTIONS = (
    "--noEmit",
    "--pretty",
    "false",
    "--strict",
    "--target",
    "es2017",
    "--module",
    "esnext",
    "--moduleResolution",
    "bundler",
    "--jsx",
    "react-jsx",
    "--lib",
    "dom,dom.iterable,esnext",
    "--esModuleInterop",
    "--skipLibCheck",
    "--isolatedModules",
    "--forceConsistentCasingInFileNames",
    "--resolveJsonModule",
)

_DIAGNOSTIC_RE = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\): (?P<severity>error|warning) TS(?P<code>\d+): (?P<message>.*)$"
)

# tsc exits 1 or 2 when it reported diagnostics
_DIAGNOSTIC_EXIT_CODES = (1, 2)


def parse_tsc_output(output: str, file_name: str = LESSON_FILE) -> list[ValidationIssue]:
    """Parse `tsc --pretty false` output into issues for `file_name`.

    Indented lines continue the message of the diagnostic above them. Diagnostics for other
    files (library declarations, global errors) are dropped.
    """

    issues: list[ValidationIssue] = []
    current: dict[str, str] | None = None

    def flush() -> None:
        if current is None or Path(current["file"]).name != file_name:
            return
        issues.append(
            ValidationIssue(
                category="compile",
                severity="warning" if current["severity"] == "warning" else "error",
                line=max(int(current["line"]), 1),
                column=max(int(current["column"]), 1),
                message=current["message"].strip(),
                code=f"TS{current['code']}",
            )
        )

    for raw in output.splitlines():
        match = _DIAGNOSTIC_RE.match(raw)
        if match:
            flush()
            current = match.groupdict()
        elif current is not None and raw[:1].isspace() and raw.strip():
            current["message"] += "\n" + raw.strip()
        else:
            flush()
            current = None
    flush()
    return issues


class TypeChecker:
    """Runs `command` (for example `tsc` or `npx tsc`) against one lesson source.

    Args:
        command: Executable plus leading arguments, shell-quoted.
        project_dir: Directory whose `node_modules` supplies React and its types.
        timeout_s: Wall-clock limit for one run.
    """

    def __init__(self, command: str, *, project_dir: Path | None = None, timeout_s: float = 60.0) -> None:
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("typecheck command must not be empty")
        self._project_dir = project_dir
        self._timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "TypeChecker | None":
        if not settings.typecheck_command:
            return None
        return cls(
            settings.typecheck_command,
            project_dir=settings.typecheck_project_dir,
            timeout_s=settings.typecheck_timeout_s,
        )

    def check(self, source: str) -> list[ValidationIssue]:
        with tempfile.TemporaryDirectory(prefix="lw-typecheck-", dir=self._project_dir) as tmp:
            (Path(tmp) / LESSON_FILE).write_text(source, encoding="utf-8")
            try:
                result = subprocess.run(
                    [*self._argv, *TSC_OPTIONS, LESSON_FILE],
                    capture_output=True,
                    text=True,
                    timeout=self._timeout_s,
                    cwd=tmp,
                )
            except subprocess.TimeoutExpired as e:
                raise TypeCheckError(f"type check timed out after {self._timeout_s:g}s") from e
            except OSError as e:
                raise TypeCheckError(f"could not run {self._argv[0]}: {e}") from e

        if result.returncode == 0:
            return []
        output = result.stdout + result.stderr
        issues = parse_tsc_output(output)
        if result.returncode not in _DIAGNOSTIC_EXIT_CODES or not issues:
            preview = output.strip()[:500]
            raise TypeCheckError(f"type check exited with {result.returncode}: {preview}")
        logger.debug("Type check reported %d diagnostic(s)", len(issues))
        return issues
