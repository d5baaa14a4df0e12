"""Logging utilities."""

from __future__ import annotations

import contextlib
import contextvars
import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


_entity_var: contextvars.ContextVar[str] = contextvars.ContextVar("lessonweaver_entity", default="-")
_stage_var: contextvars.ContextVar[str] = contextvars.ContextVar("lessonweaver_stage", default="-")

_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


class _ContextFilter(logging.Filter):
    """Inject pipeline context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.entity = _entity_var.get()  # type: ignore[attr-defined]
        record.stage = _stage_var.get()  # type: ignore[attr-defined]
        return True


@contextlib.contextmanager
def run_context(*, entity: str, stage: str | None = None) -> Any:
    """Temporarily bind the entity being processed for structured logging.

    Args:
        entity: Outline request or lesson identifier.
        stage: Optional pipeline stage.
    """

    token_entity = _entity_var.set(entity)
    token_stage = _stage_var.set(stage or _stage_var.get())
    try:
        yield
    finally:
        _entity_var.reset(token_entity)
        _stage_var.reset(token_stage)


def set_stage(stage: str) -> None:
    """Update current stage in context."""

    _stage_var.set(stage)


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Records go to stderr so CLI output on stdout stays parseable. SDK and HTTP client loggers are
    held at WARNING unless `level` is DEBUG.

    Args:
        level: Logging level name.
    """

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s entity=%(entity)s stage=%(stage)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)
    rich_handlers = [h for h in root.handlers if isinstance(h, RichHandler)]
    if not rich_handlers:
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_time=True,
            show_level=True,
        )
        root.addHandler(handler)
        rich_handlers = [handler]

    for h in rich_handlers:
        if not any(isinstance(f, _ContextFilter) for f in h.filters):
            h.addFilter(_ContextFilter())
        h.setFormatter(formatter)

    library_level = logging.DEBUG if root.level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""

    return logging.getLogger(name)


def log_exception(logger: logging.Logger, msg: str, **context: Any) -> None:
    """Log an exception with optional structured context."""

    if context:
        logger.exception("%s | context=%s", msg, context)
    else:
        logger.exception("%s", msg)
