"""Lesson source compiler.

Turns a validated TSX lesson component into an ES module that renders with the classic
`React.createElement` runtime. No type-checking happens here.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lessonweaver.compilation.transpiler import transpile
from lessonweaver.errors import CompilationError
from lessonweaver.logging import get_logger

logger = get_logger(__name__)


def compile_source(source: str) -> str:
    """Compile TSX source to JavaScript.

    Args:
        source: Lesson component source.

    Returns:
        The compiled module text.

    Raises:
        CompilationError: If the source cannot be transformed.
    """

    result = transpile(source)
    if result.errors:
        first = result.errors[0]
        raise CompilationError(
            f"{first.line}:{first.column} {first.message}",
            diagnostics=result.errors,
        )
    return result.code


@dataclass(frozen=True)
class LessonArtifactPaths:
    root: Path

    @property
    def source_path(self) -> Path:
        return self.root / "page.tsx"

    @property
    def compiled_path(self) -> Path:
        return self.root / "page.js"


class CodeCompiler:
    """Compiles lesson sources and optionally writes them next to each other on disk."""

    def __init__(self, artifacts_dir: Path | None = None) -> None:
        self._artifacts_dir = artifacts_dir

    def compile(self, source: str) -> str:
        return compile_source(source)

    def write_artifacts(self, lesson_id: str, source: str, compiled: str) -> LessonArtifactPaths | None:
        """Write `page.tsx` and `page.js` under `<artifacts_dir>/lessons/<lesson_id>/`.

        Returns None when no artifacts directory is configured.
        """

        if self._artifacts_dir is None:
            return None
        paths = LessonArtifactPaths(root=self._artifacts_dir / "lessons" / lesson_id)
        paths.root.mkdir(parents=True, exist_ok=True)
        paths.source_path.write_text(source, encoding="utf-8")
        paths.compiled_path.write_text(compiled, encoding="utf-8")
        logger.debug("Wrote lesson artifacts to %s", paths.root)
        return paths
