"""
Ledger Store

Owns the in-memory LedgerDocument for one load/mutate/save cycle.

DESIGN DECISION: load() never fails because of what is in the file.
- No document yet: a default one is created and persisted.
- Unreadable document (not JSON, or JSON that is not an object): the
  bytes are archived next to the original, and a default document
  replaces it and is persisted. The caller only sees a fresh ledger;
  the backup is the trace.
Errors from the storage backend itself (permissions, disk) still propagate
as StorageError.
"""

import json
from typing import Any, Mapping, Optional

import structlog

from fincalendar.audit import AuditLogger
from fincalendar.ledger.errors import StorageCorruption
from fincalendar.models.audit import AuditEventBuilder
from fincalendar.models.ledger import LedgerDocument, default_document
from fincalendar.services.storage import StorageError, StorageProvider
from fincalendar.validation import normalize, serialize


logger = structlog.get_logger(__name__)


def parse_document(raw: bytes) -> Any:
    """
    Decode persisted bytes into a JSON value.

    Numbers keep their JSON types; money fields become Decimal during
    normalization, and unknown keys are written back exactly as read.

    Raises:
        StorageCorruption: If the bytes are not UTF-8 JSON
    """
    try:
        text = raw.decode("utf-8-sig")
        return json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise StorageCorruption(f"Ledger document is not valid JSON: {e}", raw)


class LedgerStore:
    """
    Load-with-repair and whole-document save.

    Pass one of these to LedgerService; there is no module-level document.
    """

    def __init__(
        self,
        storage: StorageProvider,
        audit_logger: Optional[AuditLogger] = None,
        default_currency: Optional[str] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._default_currency = default_currency
        self._document: Optional[LedgerDocument] = None

    @property
    def document(self) -> LedgerDocument:
        """The loaded document; loads on first access."""
        if self._document is None:
            return self.load()
        return self._document

    def _fresh_document(self) -> LedgerDocument:
        doc = default_document()
        if self._default_currency:
            doc.settings.currency = self._default_currency
        return doc

    def _audit(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    def _replace_corrupt(self, error: StorageCorruption) -> LedgerDocument:
        backup = self._storage.archive_corrupt(error.raw)
        logger.warning("ledger_document_archived", backup=backup, reason=str(error))
        doc = self._fresh_document()
        self.save(doc)
        self._audit(AuditEventBuilder.corrupt_document_archived(backup, str(error)))
        return doc

    def load(self) -> LedgerDocument:
        """
        Read, parse and normalize the persisted document.

        Never raises on missing or corrupt content.
        """
        raw = self._storage.read_document()

        if raw is None:
            doc = self._fresh_document()
            self.save(doc)
            self._audit(AuditEventBuilder.document_created())
            return doc

        try:
            parsed = parse_document(raw)
            if parsed is not None and not isinstance(parsed, Mapping):
                raise StorageCorruption(
                    f"Ledger document is a JSON {type(parsed).__name__}, not an object", raw
                )
        except StorageCorruption as e:
            return self._replace_corrupt(e)

        doc = normalize(parsed)
        self._document = doc
        self._audit(AuditEventBuilder.document_loaded(
            fund_count=len(doc.funds),
            record_count=(
                len(doc.obligations)
                + len(doc.transactions)
                + len(doc.allocations)
                + len(doc.fund_adjustments)
            ),
        ))
        return doc

    def save(self, doc: Optional[LedgerDocument] = None) -> None:
        """
        Normalize and persist the whole document.

        A document passed in becomes the store's current one only once
        the write succeeded; on failure the previous document stays.

        Raises:
            StorageError: If the backend write fails
        """
        target = doc if doc is not None else self._document
        if target is None:
            raise StorageError("Nothing to save: no document loaded")

        payload = serialize(target)
        try:
            self._storage.write_document(payload)
        except StorageError as e:
            if self._audit_logger:
                self._audit_logger.log_error("save_failed", str(e))
            raise
        self._document = target
        logger.debug("ledger_document_saved", size=len(payload))
        self._audit(AuditEventBuilder.document_saved())
