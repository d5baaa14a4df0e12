"""CLI entrypoints for LessonWeaver."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from lessonweaver.compilation.compiler import compile_source
from lessonweaver.config import Settings, load_settings
from lessonweaver.errors import CompilationError, OutlineRequestNotFound, TypeCheckError
from lessonweaver.llm.provider import LLMGenerationProvider
from lessonweaver.logging import configure_logging, get_logger
from lessonweaver.orchestrator.pipeline import OutlinePipeline
from lessonweaver.storage import create_repository
from lessonweaver.storage.protocol import Repository
from lessonweaver.validation.static import StaticValidator

app = typer.Typer(add_completion=False, help="LessonWeaver outline-to-lesson pipeline CLI")
logger = get_logger(__name__)


def _settings(data_dir: Path | None, artifacts_dir: Path | None) -> Settings:
    settings = load_settings()
    if data_dir is not None:
        settings.data_dir = data_dir
    if artifacts_dir is not None:
        settings.artifacts_dir = artifacts_dir
    configure_logging(settings.log_level)
    return settings


def _build_pipeline(settings: Settings, repository: Repository | None = None) -> OutlinePipeline:
    return OutlinePipeline(
        repository or create_repository(settings),
        LLMGenerationProvider.from_settings(settings),
        settings=settings,
    )


async def _print_trail(repository: Repository, request_id: str) -> None:
    for record in await repository.list_statuses(request_id):
        typer.echo(f"{record.seq:>3} {record.timestamp.isoformat()} {record.status}")
    for lesson in await repository.list_lessons(request_id):
        latest = await repository.latest_status(lesson.id)
        status = latest.status if latest is not None else "-"
        typer.echo(
            f"    lesson {lesson.position} {lesson.id} {status} "
            f"attempts={lesson.validation_attempt_count} {lesson.title}"
        )


@app.command()
def run(
    outline: str = typer.Argument(
        "",
        help="Outline text. If omitted, you must provide --outline-file.",
        show_default=False,
    ),
    outline_file: Path | None = typer.Option(
        None,
        "--outline-file",
        help="Path to a UTF-8 text file containing the outline.",
    ),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Overrides LESSONWEAVER_DATA_DIR"),
    artifacts_dir: Path | None = typer.Option(
        None,
        "--artifacts-dir",
        help="Write page.tsx/page.js per lesson here (overrides LESSONWEAVER_ARTIFACTS_DIR)",
    ),
) -> None:
    """Submit an outline and process it to a terminal status."""

    if not outline:
        if outline_file is None:
            raise typer.BadParameter("Provide either a positional OUTLINE or --outline-file.")
        outline = outline_file.read_text(encoding="utf-8")
    if not outline.strip():
        raise typer.BadParameter("The outline is empty.")

    settings = _settings(data_dir, artifacts_dir)

    async def _main() -> None:
        pipeline = _build_pipeline(settings)
        try:
            request = await pipeline.submit(outline)
            typer.echo(f"outline request {request.id}")
            status = await pipeline.process_outline_request(request.id)
            await _print_trail(pipeline.repository, request.id)
            typer.echo(status.value)
        finally:
            await pipeline.repository.close()

    asyncio.run(_main())


@app.command()
def resume(
    request_id: str = typer.Argument(..., help="Outline request id"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Overrides LESSONWEAVER_DATA_DIR"),
    artifacts_dir: Path | None = typer.Option(None, "--artifacts-dir"),
) -> None:
    """Resume an interrupted outline request from its latest status."""

    settings = _settings(data_dir, artifacts_dir)

    async def _main() -> None:
        pipeline = _build_pipeline(settings)
        try:
            status = await pipeline.process_outline_request(request_id)
            typer.echo(status.value)
        finally:
            await pipeline.repository.close()

    try:
        asyncio.run(_main())
    except OutlineRequestNotFound as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1) from e


@app.command()
def status(
    request_id: str = typer.Argument(..., help="Outline request id"),
    data_dir: Path | None = typer.Option(None, "--data-dir", help="Overrides LESSONWEAVER_DATA_DIR"),
) -> None:
    """Print the status trail of an outline request and its lessons."""

    settings = _settings(data_dir, None)

    async def _main() -> None:
        repository = create_repository(settings)
        try:
            await repository.get_outline_request(request_id)
            await _print_trail(repository, request_id)
        finally:
            await repository.close()

    try:
        asyncio.run(_main())
    except OutlineRequestNotFound as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1) from e


@app.command()
def check(
    source_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="TSX lesson source"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """Statically validate a lesson source. Exits 1 when invalid, 2 when it cannot be checked."""

    validator = StaticValidator.from_settings(load_settings())
    try:
        report = validator.validate(source_file.read_text(encoding="utf-8"))
    except TypeCheckError as e:
        typer.echo(f"type check failed: {e}", err=True)
        raise typer.Exit(code=2) from e
    if as_json:
        typer.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        for issue in report.errors + report.warnings:
            typer.echo(issue.describe())
        typer.echo("valid" if report.valid else "invalid")
    if not report.valid:
        raise typer.Exit(code=1)


@app.command("compile")
def compile_command(
    source_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="TSX lesson source"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output .js file"),
) -> None:
    """Compile a lesson source to JavaScript."""

    try:
        compiled = compile_source(source_file.read_text(encoding="utf-8"))
    except CompilationError as e:
        typer.echo(f"compilation failed: {e}", err=True)
        raise typer.Exit(code=1) from e

    if output is None:
        typer.echo(compiled)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(compiled, encoding="utf-8")
    typer.echo(str(output))


if __name__ == "__main__":
    app()
