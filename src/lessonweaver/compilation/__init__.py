from __future__ import annotations

from lessonweaver.compilation.compiler import CodeCompiler, LessonArtifactPaths, compile_source
from lessonweaver.compilation.scanner import Diagnostic
from lessonweaver.compilation.transpiler import ImportRef, TranspileResult, transpile

__all__ = [
    "CodeCompiler",
    "Diagnostic",
    "ImportRef",
    "LessonArtifactPaths",
    "TranspileResult",
    "compile_source",
    "transpile",
]
