"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the local JSON file for a synced folder or a cloud drive later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from where the bytes live

The interface is intentionally tiny: the ledger is always read and written
as one whole document, so the provider only moves bytes around. Parsing,
repair and corruption handling belong to the LedgerStore.
"""

from abc import ABC, abstractmethod
from typing import Optional

from fincalendar.models.audit import AuditEvent


class StorageProvider(ABC):
    """
    Abstract interface for ledger document storage.

    Any storage implementation (local file, cloud drive, ...)
    must implement these methods.
    """

    @abstractmethod
    def read_document(self) -> Optional[bytes]:
        """
        Read the persisted document.

        Returns:
            The raw bytes, or None if no document exists yet

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def write_document(self, payload: bytes) -> None:
        """
        Replace the persisted document with ``payload``.

        Must be atomic: a reader sees either the old or the new document,
        never a mix.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def archive_corrupt(self, payload: bytes) -> str:
        """
        Keep a copy of unreadable bytes next to the document.

        Returns:
            The name the backup was stored under
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events, newest first.
        """
        pass

    @abstractmethod
    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        """
        Get all events for a specific record, in chronological order.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
