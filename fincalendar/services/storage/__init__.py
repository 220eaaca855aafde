"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a local JSON file as the backend, but designed to be
swappable.
"""

from fincalendar.services.storage.interface import (
    AuditStorageInterface,
    StorageConnectionError,
    StorageError,
    StorageProvider,
)
from fincalendar.services.storage.local_file import (
    JsonLinesAuditStorage,
    LocalFileStorage,
    corrupt_backup_name,
)
from fincalendar.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "StorageProvider",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    # Local file implementation
    "JsonLinesAuditStorage",
    "LocalFileStorage",
    "corrupt_backup_name",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryStorage",
]
