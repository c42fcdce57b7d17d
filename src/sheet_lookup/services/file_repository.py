"""File repository: object storage plus a metadata index for uploads.

Objects live under ``<root>/<bucket>/uploads/<epoch-ms>_<sanitized name>``.
Metadata for every stored file is kept in a JSON index next to the bucket.
Index reads and writes are serialized with a re-entrant lock.
"""

from __future__ import annotations

import json
import os
import re
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from sheet_lookup.config import Settings
from sheet_lookup.models import FileKind, StoredFile
from sheet_lookup.utils.exceptions import (
    ErrorCode,
    StorageError,
    StoredFileNotFoundError,
)
from sheet_lookup.utils.logging import get_logger

logger = get_logger(__name__)

UPLOAD_PREFIX = "uploads"
INDEX_FILENAME = "uploaded_files.json"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(name: str) -> str:
    """Replace characters outside ``[A-Za-z0-9.-]`` with underscores."""
    return _UNSAFE_CHARS.sub("_", name)


class FileRepository(Protocol):
    """Byte source and metadata store consumed by the lookup service."""

    def save(
        self,
        content: bytes,
        original_name: str,
        mime_type: str,
        file_type: FileKind,
        sheet_count: int | None = None,
    ) -> StoredFile: ...

    def get(self, file_id: str) -> StoredFile: ...

    def list_files(
        self, page: int = 1, limit: int = 10, file_type: FileKind | None = None
    ) -> list[StoredFile]: ...

    def download(self, file_id: str) -> bytes: ...

    def delete(self, file_id: str) -> None: ...

    def check_health(self) -> dict[str, Any]: ...


class LocalFileRepository:
    """Filesystem-backed repository with a JSON metadata index."""

    def __init__(
        self,
        root: str | Path,
        bucket: str = "uploaded-files",
        public_base_url: str | None = None,
    ) -> None:
        """Initialize the repository.

        Args:
            root: Directory holding the bucket and the metadata index.
            bucket: Name of the bucket directory for stored objects.
            public_base_url: Base URL serving the bucket, used for public_url.
        """
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, s: Settings) -> LocalFileRepository:
        return cls(
            root=s.storage_dir,
            bucket=s.storage_bucket,
            public_base_url=s.public_base_url,
        )

    @property
    def bucket_dir(self) -> Path:
        return self.root / self.bucket

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILENAME

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def save(
        self,
        content: bytes,
        original_name: str,
        mime_type: str,
        file_type: FileKind,
        sheet_count: int | None = None,
    ) -> StoredFile:
        """Store an upload and record its metadata.

        Raises:
            StorageError: If the object or its metadata cannot be written.
        """
        filename = f"{int(time.time() * 1000)}_{sanitize_filename(original_name)}"
        file_path = f"{UPLOAD_PREFIX}/{filename}"
        object_path = self.bucket_dir / file_path

        try:
            object_path.parent.mkdir(parents=True, exist_ok=True)
            with open(object_path, "xb") as f:
                f.write(content)
        except FileExistsError as e:
            raise StorageError(
                f"An object already exists at {file_path}",
                details={"file_path": file_path},
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to store file: {e}",
                details={"file_path": file_path},
            ) from e

        logger.info("Object stored", file_path=file_path, size=len(content))

        stored = StoredFile(
            id=str(uuid.uuid4()),
            filename=filename,
            original_name=original_name,
            file_path=file_path,
            file_size=len(content),
            mime_type=mime_type,
            upload_date=datetime.now(UTC).isoformat(),
            file_type=file_type,
            sheet_count=sheet_count,
            public_url=self._public_url(file_path),
        )

        try:
            with self._lock:
                records = self._load_index()
                records.append(stored.model_dump(mode="json"))
                self._write_index(records)
        except StorageError:
            object_path.unlink(missing_ok=True)
            raise

        logger.info("File metadata saved", file_id=stored.id, filename=filename)
        return stored

    def get(self, file_id: str) -> StoredFile:
        """Return metadata for a stored file.

        Raises:
            StoredFileNotFoundError: If no file has this ID.
        """
        with self._lock:
            for record in self._load_index():
                if record.get("id") == file_id:
                    return StoredFile.model_validate(record)
        raise StoredFileNotFoundError(file_id)

    def list_files(
        self, page: int = 1, limit: int = 10, file_type: FileKind | None = None
    ) -> list[StoredFile]:
        """List stored files, newest first, one page at a time."""
        with self._lock:
            files = [StoredFile.model_validate(r) for r in self._load_index()]

        if file_type is not None:
            files = [f for f in files if f.file_type == file_type]
        files.sort(key=lambda f: f.upload_date, reverse=True)

        offset = (max(page, 1) - 1) * limit
        return files[offset : offset + limit]

    def download(self, file_id: str) -> bytes:
        """Return the content of a stored file.

        Raises:
            StoredFileNotFoundError: If the file or its object does not exist.
        """
        stored = self.get(file_id)
        object_path = self.bucket_dir / stored.file_path
        try:
            return object_path.read_bytes()
        except FileNotFoundError:
            raise StoredFileNotFoundError(
                file_id,
                message="Stored object is missing",
                details={"file_path": stored.file_path},
            ) from None
        except OSError as e:
            raise StorageError(
                f"Failed to read stored file: {e}",
                error_code=ErrorCode.FILE_READ_ERROR,
                file_id=file_id,
            ) from e

    def delete(self, file_id: str) -> None:
        """Remove a stored object and its metadata.

        A missing or undeletable object is logged and does not stop the
        metadata removal.

        Raises:
            StoredFileNotFoundError: If no file has this ID.
            StorageError: If the metadata index cannot be updated.
        """
        stored = self.get(file_id)
        try:
            (self.bucket_dir / stored.file_path).unlink()
        except OSError as e:
            logger.error(
                "Storage deletion error",
                file_id=file_id,
                file_path=stored.file_path,
                error=str(e),
            )

        with self._lock:
            records = [r for r in self._load_index() if r.get("id") != file_id]
            self._write_index(records)

        logger.info("File deleted", file_id=file_id)

    def check_health(self) -> dict[str, Any]:
        """Verify the bucket and metadata index are usable.

        Raises:
            StorageError: If the bucket or index cannot be accessed.
        """
        try:
            self.bucket_dir.mkdir(parents=True, exist_ok=True)
            with self._lock:
                count = len(self._load_index())
        except OSError as e:
            raise StorageError(
                f"Storage connection failed: {e}",
                error_code=ErrorCode.FILE_READ_ERROR,
            ) from e

        if not os.access(self.bucket_dir, os.W_OK):
            raise StorageError(
                f"Storage bucket '{self.bucket}' is not writable",
                details={"bucket": self.bucket},
            )

        return {
            "database": "Connected",
            "storage": "Connected",
            "bucket": f"'{self.bucket}' exists and accessible",
            "file_count": count,
        }

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _public_url(self, file_path: str) -> str | None:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/{self.bucket}/{file_path}"

    def _load_index(self) -> list[dict[str, Any]]:
        if not self.index_path.exists():
            return []
        try:
            records = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                f"Failed to read file metadata: {e}",
                error_code=ErrorCode.FILE_READ_ERROR,
            ) from e
        if not isinstance(records, list):
            raise StorageError(
                "File metadata index is corrupt",
                error_code=ErrorCode.FILE_READ_ERROR,
            )
        return records

    def _write_index(self, records: list[dict[str, Any]]) -> None:
        tmp_path = self.index_path.with_suffix(".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(records, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.index_path)
        except OSError as e:
            raise StorageError(
                f"Failed to save file metadata to database: {e}",
            ) from e
