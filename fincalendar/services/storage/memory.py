"""
In-Memory Storage

Used by the tests and by callers that embed the ledger and persist it
themselves. Behaves like LocalFileStorage minus the file system.
"""

from typing import Optional

from fincalendar.models.audit import AuditEvent
from fincalendar.services.storage.interface import (
    AuditStorageInterface,
    StorageProvider,
)


class InMemoryStorage(StorageProvider):
    """Holds the document bytes and any archived corrupt copies."""

    def __init__(self, payload: Optional[bytes] = None):
        self.payload = payload
        self.archived: dict[str, bytes] = {}
        self.write_count = 0

    def read_document(self) -> Optional[bytes]:
        return self.payload

    def write_document(self, payload: bytes) -> None:
        self.payload = payload
        self.write_count += 1

    def archive_corrupt(self, payload: bytes) -> str:
        name = f"data.corrupt.{len(self.archived) + 1}.json"
        self.archived[name] = payload
        return name


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list, in arrival order."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
