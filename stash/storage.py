import mimetypes
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Protocol
from uuid import uuid4

import structlog

from stash.errors import NotFoundError, PayloadTooLargeError, ValidationError
from stash.models import StoredObject
from stash.paths import resolve_within

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1024 * 1024
STAGING_PREFIX = ".incoming-"
MAX_NAME_BYTES = 200

ALLOWED_TYPES: dict[str, frozenset[str]] = {
    ".jpg": frozenset({"image/jpeg", "image/pjpeg"}),
    ".jpeg": frozenset({"image/jpeg", "image/pjpeg"}),
    ".png": frozenset({"image/png"}),
    ".gif": frozenset({"image/gif"}),
    ".pdf": frozenset({"application/pdf"}),
    ".doc": frozenset({"application/msword"}),
    ".docx": frozenset({"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}),
    ".txt": frozenset({"text/plain"}),
    ".zip": frozenset({"application/zip", "application/x-zip-compressed"}),
    ".rar": frozenset({"application/vnd.rar", "application/x-rar-compressed", "application/x-rar"}),
    ".mp3": frozenset({"audio/mpeg", "audio/mp3"}),
    ".mp4": frozenset({"video/mp4"}),
    ".avi": frozenset({"video/x-msvideo", "video/avi", "video/msvideo"}),
}
GENERIC_CONTENT_TYPE = "application/octet-stream"


class Upload(Protocol):
    """The part of ``fastapi.UploadFile`` the store relies on."""

    filename: str | None
    content_type: str | None
    size: int | None
    file: BinaryIO


def is_allowed_type(filename: str, content_type: str | None) -> bool:
    accepted = ALLOWED_TYPES.get(Path(filename).suffix.lower())
    if accepted is None:
        return False
    declared = (content_type or GENERIC_CONTENT_TYPE).split(";", 1)[0].strip().lower()
    return declared in accepted or declared == GENERIC_CONTENT_TYPE


def make_storage_name(original_name: str) -> str:
    return f"{int(time.time() * 1000)}-{uuid4().hex}-{original_name}"


def parse_storage_name(storage_name: str) -> tuple[datetime, str, str] | None:
    """Split ``<millis>-<hex>-<original>`` into (created_at, id, original_name)."""
    parts = storage_name.split("-", 2)
    if len(parts) != 3 or not parts[0].isdigit() or not parts[2]:
        return None
    try:
        created_at = datetime.fromtimestamp(int(parts[0]) / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return created_at, parts[1], parts[2]


class ObjectStore:
    """Uploaded blobs under a single storage root, which this class alone writes to."""

    def __init__(self, root_dir: str, *, max_size_bytes: int, max_files: int):
        self.root = Path(root_dir)
        self.max_size_bytes = max_size_bytes
        self.max_files = max_files

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _describe(self, path: Path, size: int | None = None) -> StoredObject:
        parsed = parse_storage_name(path.name)
        if parsed is None:
            stat = path.stat()
            created_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            object_id, original_name = path.name, path.name
        else:
            created_at, object_id, original_name = parsed
        content_type, _ = mimetypes.guess_type(original_name)
        return StoredObject(
            id=object_id,
            original_name=original_name,
            storage_name=path.name,
            size=size if size is not None else path.stat().st_size,
            content_type=content_type or GENERIC_CONTENT_TYPE,
            created_at=created_at,
        )

    def _validate_batch(self, files: list[Upload]) -> None:
        if not files:
            raise ValidationError("No files uploaded")
        if len(files) > self.max_files:
            raise ValidationError(f"Too many files: at most {self.max_files} per upload")
        for upload in files:
            name = Path(upload.filename or "").name
            if not name or name.startswith("."):
                raise ValidationError("File name is required")
            if len(name.encode("utf-8")) > MAX_NAME_BYTES:
                raise ValidationError(f"File name is too long: {name[:32]}...")
            if not is_allowed_type(name, upload.content_type):
                raise ValidationError(f"File type not allowed: {name}")
            if upload.size is not None and upload.size > self.max_size_bytes:
                raise PayloadTooLargeError(f"File exceeds max upload size: {name}")

    def _stage(self, upload: Upload, target: Path) -> int:
        total = 0
        with target.open("wb") as f:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > self.max_size_bytes:
                    raise PayloadTooLargeError(f"File exceeds max upload size: {Path(upload.filename or '').name}")
                f.write(chunk)
        return total

    def ingest(self, files: list[Upload]) -> list[StoredObject]:
        """Store a batch of uploads. Either every file is stored or none is."""
        self._validate_batch(files)
        self.init()

        staged: list[tuple[Path, Path, int]] = []
        try:
            for upload in files:
                storage_name = make_storage_name(Path(upload.filename or "").name)
                final = resolve_within(self.root, storage_name)
                staging = self.root / f"{STAGING_PREFIX}{uuid4().hex}"
                staged.append((staging, final, 0))
                size = self._stage(upload, staging)
                staged[-1] = (staging, final, size)
        except BaseException:
            for staging, _, _ in staged:
                staging.unlink(missing_ok=True)
            raise

        placed: list[Path] = []
        try:
            for staging, final, _ in staged:
                os.replace(staging, final)
                placed.append(final)
        except BaseException:
            for path in placed:
                path.unlink(missing_ok=True)
            for staging, _, _ in staged:
                staging.unlink(missing_ok=True)
            raise

        stored = [self._describe(final, size) for _, final, size in staged]
        logger.info("files_uploaded", count=len(stored), total_bytes=sum(obj.size for obj in stored))
        return stored

    def list(self) -> list[StoredObject]:
        if not self.root.is_dir():
            return []
        objects = []
        with os.scandir(self.root) as entries:
            for entry in entries:
                if entry.name.startswith(".") or not entry.is_file(follow_symlinks=False):
                    continue
                try:
                    objects.append(self._describe(Path(entry.path)))
                except FileNotFoundError:
                    continue
        return objects

    def locate(self, storage_name: str) -> Path:
        """Canonical path of an existing object; AccessDeniedError or NotFoundError otherwise."""
        path = resolve_within(self.root, storage_name)
        if path.name.startswith(".") or not path.is_file():
            raise NotFoundError("File not found")
        return path

    def exists(self, storage_name: str) -> bool:
        try:
            self.locate(storage_name)
        except NotFoundError:
            return False
        return True

    def fetch(self, storage_name: str) -> tuple[Path, StoredObject]:
        path = self.locate(storage_name)
        try:
            return path, self._describe(path)
        except FileNotFoundError:
            raise NotFoundError("File not found") from None

    def remove(self, storage_name: str) -> None:
        path = self.locate(storage_name)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError("File not found") from None
        logger.info("file_deleted", storage_name=storage_name)
