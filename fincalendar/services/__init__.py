"""Services package."""

from fincalendar.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryStorage,
    JsonLinesAuditStorage,
    LocalFileStorage,
    StorageConnectionError,
    StorageError,
    StorageProvider,
)

__all__ = [
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryStorage",
    "JsonLinesAuditStorage",
    "LocalFileStorage",
    "StorageConnectionError",
    "StorageError",
    "StorageProvider",
]
