"""File-backed repository.

Layout under the data directory:

- `outline_requests/<id>.json`: current value of an outline request
- `lessons/<id>.json`: current value of a lesson unit
- `positions/<outline_request_id>.json`: position -> lesson id
- `statuses/<entity_id>.jsonl`: append-only status trail, one record per line

JSON documents are replaced atomically; status files are only ever appended to, so a crashed
process leaves at worst a truncated last line, which is ignored on read.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lessonweaver.errors import RepositoryError
from lessonweaver.logging import get_logger
from lessonweaver.models.lesson import LessonUnit
from lessonweaver.models.outline import OutlineRequest
from lessonweaver.models.status import StatusRecord
from lessonweaver.storage.protocol import Repository, status_value

logger = get_logger(__name__)


@dataclass(frozen=True)
class JsonlPaths:
    """Filesystem layout for a file-backed repository."""

    root: Path

    @property
    def requests_dir(self) -> Path:
        return self.root / "outline_requests"

    @property
    def lessons_dir(self) -> Path:
        return self.root / "lessons"

    @property
    def positions_dir(self) -> Path:
        return self.root / "positions"

    @property
    def statuses_dir(self) -> Path:
        return self.root / "statuses"


def _safe_name(entity_id: str) -> str:
    if not entity_id or "/" in entity_id or "\\" in entity_id or entity_id.startswith("."):
        raise RepositoryError(f"invalid entity id: {entity_id!r}")
    return entity_id


def _write_atomic(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def _ends_mid_line(path: Path) -> bool:
    if not path.exists() or path.stat().st_size == 0:
        return False
    with path.open("rb") as f:
        f.seek(-1, os.SEEK_END)
        return f.read(1) != b"\n"


class JsonlRepository(Repository):
    """Repository persisting JSON documents and JSONL status trails on local disk."""

    def __init__(self, root_dir: Path) -> None:
        self._paths = JsonlPaths(root=root_dir)
        for d in (
            self._paths.requests_dir,
            self._paths.lessons_dir,
            self._paths.positions_dir,
            self._paths.statuses_dir,
        ):
            d.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._paths.root

    async def _load_request(self, request_id: str) -> OutlineRequest | None:
        path = self._paths.requests_dir / f"{_safe_name(request_id)}.json"
        if not path.exists():
            return None
        return OutlineRequest.model_validate_json(path.read_text(encoding="utf-8"))

    async def _store_request(self, request: OutlineRequest) -> None:
        path = self._paths.requests_dir / f"{_safe_name(request.id)}.json"
        _write_atomic(path, request.model_dump_json(by_alias=True))

    async def _load_lesson(self, lesson_id: str) -> LessonUnit | None:
        path = self._paths.lessons_dir / f"{_safe_name(lesson_id)}.json"
        if not path.exists():
            return None
        return LessonUnit.model_validate_json(path.read_text(encoding="utf-8"))

    async def _store_lesson(self, lesson: LessonUnit) -> None:
        path = self._paths.lessons_dir / f"{_safe_name(lesson.id)}.json"
        _write_atomic(path, lesson.model_dump_json())

    def _read_positions(self, outline_request_id: str) -> dict[int, str]:
        path = self._paths.positions_dir / f"{_safe_name(outline_request_id)}.json"
        if not path.exists():
            return {}
        raw = json.loads(path.read_text(encoding="utf-8"))
        return {int(k): v for k, v in raw.items()}

    async def _claim_position(self, outline_request_id: str, position: int, lesson_id: str) -> str:
        positions = self._read_positions(outline_request_id)
        if position in positions:
            return positions[position]
        positions[position] = lesson_id
        path = self._paths.positions_dir / f"{_safe_name(outline_request_id)}.json"
        _write_atomic(path, json.dumps({str(k): v for k, v in sorted(positions.items())}))
        return lesson_id

    async def _lesson_ids(self, outline_request_id: str) -> list[str]:
        positions = self._read_positions(outline_request_id)
        return [positions[p] for p in sorted(positions)]

    def _status_path(self, entity_id: str) -> Path:
        return self._paths.statuses_dir / f"{_safe_name(entity_id)}.jsonl"

    def _read_statuses(self, path: Path) -> list[StatusRecord]:
        records: list[StatusRecord] = []
        if not path.exists():
            return records
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                records.append(StatusRecord.model_validate_json(line))
            except ValidationError:
                logger.warning("Skipping unreadable status line in %s", path)
        return records

    async def append_status(
        self,
        entity_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> StatusRecord:
        path = self._status_path(entity_id)
        existing = self._read_statuses(path)
        seq = max((r.seq for r in existing), default=0) + 1
        record = StatusRecord(
            seq=seq,
            entity_id=entity_id,
            status=status_value(status),
            metadata=dict(metadata or {}),
        )
        line = json.dumps(record.model_dump(mode="json"), ensure_ascii=False)
        # a torn tail from a crash must not swallow the next record
        prefix = "\n" if _ends_mid_line(path) else ""
        with path.open("a", encoding="utf-8") as f:
            f.write(prefix + line + "\n")
        return record

    async def list_statuses(self, entity_id: str) -> list[StatusRecord]:
        return self._read_statuses(self._status_path(entity_id))
