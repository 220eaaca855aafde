"""
Local File Storage Implementation

DESIGN DECISION: The ledger lives in a single JSON file because:
1. Users can open, back up and sync it with any tool
2. No database setup required
3. Personal-finance volume fits comfortably in memory

TRADEOFFS:
- Last writer wins; there is no locking
- Every save rewrites the whole file (we write to a temp file and
  os.replace() it so a crash never leaves half a document)

Writes are retried a few times on OSError, which covers the transient
failures of synced folders (iCloud Drive, Dropbox) that hold the file open.
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fincalendar.models.audit import AuditEvent
from fincalendar.services.storage.interface import (
    AuditStorageInterface,
    StorageConnectionError,
    StorageError,
    StorageProvider,
)


logger = structlog.get_logger(__name__)


def corrupt_backup_name(data_path: Path, now: Optional[datetime] = None) -> str:
    """``data.json`` -> ``data.corrupt.2024-01-05T10-31-00-123456+00-00.json``."""
    stamp = (now or datetime.now(timezone.utc)).isoformat().replace(":", "-").replace(".", "-")
    return f"{data_path.stem}.corrupt.{stamp}{data_path.suffix}"


class LocalFileStorage(StorageProvider):
    """
    Ledger document stored as one JSON file on the local file system.

    Corrupt documents are archived as timestamped siblings of the file.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_directory(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageConnectionError(
                f"Cannot create ledger folder {self._path.parent}: {e}"
            )

    def read_document(self) -> Optional[bytes]:
        """Read the document bytes, or None if the file does not exist."""
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read ledger document: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _atomic_write(self, target: Path, payload: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{target.stem}_", suffix=".tmp", dir=str(target.parent)
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, target)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def write_document(self, payload: bytes) -> None:
        """Atomically replace the document file."""
        self._ensure_directory()
        try:
            self._atomic_write(self._path, payload)
        except OSError as e:
            raise StorageError(f"Failed to write ledger document: {e}")

    def archive_corrupt(self, payload: bytes) -> str:
        """Write the unreadable bytes to a timestamped sibling file."""
        self._ensure_directory()
        name = corrupt_backup_name(self._path)
        try:
            self._atomic_write(self._path.with_name(name), payload)
        except OSError as e:
            raise StorageError(f"Failed to archive corrupt ledger document: {e}")
        logger.warning("ledger_corrupt_document_archived", backup=name)
        return name


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    Audit trail kept as one JSON object per line.

    Append-only. Lines that fail to parse are skipped on read.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path).expanduser()

    def append_event(self, event: AuditEvent) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(event.to_json_line() + "\n")
            return True
        except OSError as e:
            # Don't raise - audit logging should not break the main flow
            logger.error("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(AuditEvent.model_validate(json.loads(line)))
                except ValueError:
                    continue  # Skip malformed lines
        return events

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events
