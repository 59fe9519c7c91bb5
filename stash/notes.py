import os
import re
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import structlog

from stash.errors import NotFoundError, ValidationError
from stash.models import NoteDocument
from stash.paths import resolve_within

logger = structlog.get_logger(__name__)

NOTE_SUFFIX = ".txt"
NOTE_ID_PATTERN = re.compile(r"[a-zA-Z0-9_\-\s]+")
DISALLOWED_TITLE_CHARS = re.compile(r"[^a-zA-Z0-9_\-\s]")


def sanitize_title(title: str) -> str:
    """Reduce a title to the characters allowed in a note id.

    >>> sanitize_title("My Note!")
    'My Note'
    """
    return DISALLOWED_TITLE_CHARS.sub("", title).strip()


class NoteStore:
    """Notes stored as ``<id>.txt`` files; the sanitized title is the primary key."""

    def __init__(self, root_dir: str, *, max_title_length: int = 100, max_content_length: int = 10_000):
        self.root = Path(root_dir)
        self.max_title_length = max_title_length
        self.max_content_length = max_content_length

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, note_id: str) -> Path:
        if not NOTE_ID_PATTERN.fullmatch(note_id):
            raise ValidationError("Invalid note ID")
        return resolve_within(self.root, f"{note_id}{NOTE_SUFFIX}")

    def _read(self, note_id: str, path: Path) -> NoteDocument:
        content = path.read_bytes().decode("utf-8")
        stat = path.stat()
        return NoteDocument(
            id=note_id,
            title=note_id,
            content=content,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size=stat.st_size,
        )

    def list(self) -> list[NoteDocument]:
        if not self.root.is_dir():
            return []
        notes = []
        for path in self.root.glob(f"*{NOTE_SUFFIX}"):
            if path.name.startswith("."):
                continue
            try:
                notes.append(self._read(path.stem, path))
            except FileNotFoundError:
                continue
        notes.sort(key=lambda note: note.last_modified, reverse=True)
        return notes

    def get(self, note_id: str) -> NoteDocument:
        path = self._path_for(note_id)
        try:
            return self._read(note_id, path)
        except FileNotFoundError:
            raise NotFoundError("Note not found") from None

    def upsert(self, title: str, content: str) -> NoteDocument:
        title = title.strip()
        if not title or len(title) > self.max_title_length:
            raise ValidationError(f"Title must be between 1 and {self.max_title_length} characters")
        if len(content) > self.max_content_length:
            raise ValidationError(f"Content must not exceed {self.max_content_length} characters")

        note_id = sanitize_title(title)
        if not note_id:
            raise ValidationError("Invalid title")

        path = self._path_for(note_id)
        self.init()
        tmp = self.root / f".{uuid4().hex}.tmp"
        try:
            tmp.write_bytes(content.encode("utf-8"))
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.info("note_saved", note_id=note_id, size=len(content))
        return self._read(note_id, path)

    def delete(self, note_id: str) -> None:
        path = self._path_for(note_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError("Note not found") from None
        logger.info("note_deleted", note_id=note_id)
