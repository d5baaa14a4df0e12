"""LessonWeaver: outline-to-lesson generation pipeline."""

__version__ = "0.1.0"
