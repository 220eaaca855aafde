"""Tests for the ledger store and the storage providers."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from fincalendar.audit import AuditLogger
from fincalendar.ledger import LedgerStore, StorageCorruption, parse_document
from fincalendar.models.audit import AuditEventType
from fincalendar.models.ledger import Fund
from fincalendar.services.storage import (
    InMemoryAuditStorage,
    InMemoryStorage,
    LocalFileStorage,
    StorageError,
    StorageProvider,
    corrupt_backup_name,
)


class BrokenStorage(StorageProvider):
    """Reads fine, fails every write."""

    def read_document(self):
        return None

    def write_document(self, payload):
        raise StorageError("disk full")

    def archive_corrupt(self, payload):
        raise StorageError("disk full")


class TestParseDocument:

    def test_keeps_json_numbers(self):
        """Test numbers keep their JSON types until normalization."""
        parsed = parse_document(b'{"amount": 12.5, "count": 3}')
        assert parsed == {"amount": 12.5, "count": 3}
        assert isinstance(parsed["amount"], float)

    def test_accepts_utf8_bom(self):
        """Test a UTF-8 byte order mark is tolerated."""
        assert parse_document(b'\xef\xbb\xbf{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe\x00", b""])
    def test_corrupt_bytes(self, raw):
        """Test invalid JSON or UTF-8 raises StorageCorruption with the raw bytes."""
        with pytest.raises(StorageCorruption) as exc_info:
            parse_document(raw)
        assert exc_info.value.raw == raw


class TestLedgerStoreLoad:
    """Tests for load-with-repair."""

    def test_missing_document_is_created(self):
        """Test a default document is created and persisted."""
        storage = InMemoryStorage()
        doc = LedgerStore(storage).load()
        assert [f.id for f in doc.funds] == ["f_ahorro", "f_tarjetas", "f_varios"]
        assert storage.write_count == 1
        assert json.loads(storage.payload)["settings"]["currency"] == "MXN"

    def test_default_currency(self):
        """Test the configured currency is used for new documents."""
        storage = InMemoryStorage()
        doc = LedgerStore(storage, default_currency="USD").load()
        assert doc.settings.currency == "USD"

    def test_corrupt_document_is_archived(self):
        """Test corrupt bytes are archived and replaced by a default document."""
        storage = InMemoryStorage(b"{definitely not json")
        audit_storage = InMemoryAuditStorage()
        doc = LedgerStore(storage, audit_logger=AuditLogger(audit_storage)).load()

        assert len(doc.funds) == 3
        assert list(storage.archived.values()) == [b"{definitely not json"]
        assert json.loads(storage.payload)["funds"][0]["id"] == "f_ahorro"
        assert any(
            e.event_type == AuditEventType.CORRUPT_DOCUMENT_ARCHIVED
            for e in audit_storage.events
        )

    @pytest.mark.parametrize("raw", [b'[{"id": "tx1", "amount": 5}]', b"5", b'"ledger"'])
    def test_non_object_document_is_archived(self, raw):
        """Test JSON that is not an object is backed up before being replaced."""
        storage = InMemoryStorage(raw)
        audit_storage = InMemoryAuditStorage()
        doc = LedgerStore(storage, audit_logger=AuditLogger(audit_storage)).load()

        assert len(doc.funds) == 3
        assert list(storage.archived.values()) == [raw]
        assert storage.write_count == 1
        assert isinstance(json.loads(storage.payload), dict)
        assert audit_storage.events[-1].event_type == AuditEventType.CORRUPT_DOCUMENT_ARCHIVED

    def test_valid_document_is_normalized(self):
        """Test a readable document is repaired but not rewritten on load."""
        raw = {
            "funds": [{"id": "f1", "name": "Ahorro", "balance": -5}],
            "transactions": "nope",
        }
        storage = InMemoryStorage(json.dumps(raw).encode("utf-8"))
        doc = LedgerStore(storage).load()
        assert doc.funds[0].balance == 0
        assert doc.transactions == []
        assert storage.write_count == 0
        assert storage.archived == {}

    def test_document_property_loads_lazily(self):
        """Test the document is loaded on first access only."""
        storage = InMemoryStorage()
        store = LedgerStore(storage)
        first = store.document
        assert store.document is first
        assert storage.write_count == 1


class TestLedgerStoreSave:

    def test_save_round_trip(self):
        """Test a saved document loads back equal."""
        storage = InMemoryStorage()
        store = LedgerStore(storage)
        store.document.funds.append(Fund(id="f_viajes", name="Viajes"))
        store.save()

        reloaded = LedgerStore(storage).load()
        assert reloaded.get_fund("f_viajes").name == "Viajes"

    def test_fractional_extra_keys_survive(self):
        """Test unknown numeric keys are written back as numbers, unchanged."""
        raw = (
            b'{"funds": [{"id": "f1", "name": "Ahorro", "balance": 10, "rate": 0.05}],'
            b' "schemaVersion": 1.5}'
        )
        storage = InMemoryStorage(raw)
        store = LedgerStore(storage)
        store.load()
        store.save()
        first = storage.payload

        saved = json.loads(first)
        assert saved["schemaVersion"] == 1.5
        assert saved["funds"][0]["rate"] == 0.05
        assert saved["funds"][0]["balance"] == 10

        store = LedgerStore(storage)
        store.load()
        store.save()
        assert storage.payload == first

    def test_failed_save_keeps_previous_document(self):
        """Test a document whose write failed does not become current."""
        storage = InMemoryStorage()
        store = LedgerStore(storage)
        current = store.document
        replacement = current.model_copy(deep=True)
        replacement.funds.append(Fund(id="f_viajes", name="Viajes"))

        def fail(payload):
            raise StorageError("disk full")

        storage.write_document = fail
        with pytest.raises(StorageError):
            store.save(replacement)
        assert store.document is current
        assert current.get_fund("f_viajes") is None

    def test_save_error_propagates(self):
        """Test backend write failures are not swallowed."""
        audit_storage = InMemoryAuditStorage()
        store = LedgerStore(BrokenStorage(), audit_logger=AuditLogger(audit_storage))
        with pytest.raises(StorageError):
            store.load()
        assert audit_storage.events[-1].event_type == AuditEventType.SYSTEM_ERROR


class TestLocalFileStorage:
    """Tests for the JSON file backend (tmp_path only)."""

    def test_read_missing_file(self, tmp_path):
        """Test a missing file reads as None."""
        assert LocalFileStorage(tmp_path / "data.json").read_document() is None

    def test_write_creates_folder(self, tmp_path):
        """Test the parent folder is created and no temp files remain."""
        path = tmp_path / "FinCalendar" / "data.json"
        storage = LocalFileStorage(path)
        storage.write_document(b'{"a": 1}')

        assert path.read_bytes() == b'{"a": 1}'
        assert [p.name for p in path.parent.iterdir()] == ["data.json"]

    def test_write_replaces(self, tmp_path):
        """Test a second write replaces the whole file."""
        storage = LocalFileStorage(tmp_path / "data.json")
        storage.write_document(b'{"a": 1, "long": "xxxxxxxx"}')
        storage.write_document(b'{"a": 2}')
        assert storage.read_document() == b'{"a": 2}'

    def test_archive_corrupt(self, tmp_path):
        """Test corrupt bytes land in a timestamped sibling."""
        storage = LocalFileStorage(tmp_path / "data.json")
        name = storage.archive_corrupt(b"garbage")
        assert name.startswith("data.corrupt.")
        assert name.endswith(".json")
        assert (tmp_path / name).read_bytes() == b"garbage"

    def test_backup_name(self):
        """Test the backup name format."""
        stamp = datetime(2024, 1, 5, 10, 31, tzinfo=timezone.utc)
        assert corrupt_backup_name(Path("data.json"), stamp) == "data.corrupt.2024-01-05T10-31-00+00-00.json"

    def test_store_over_corrupt_file(self, tmp_path):
        """Test end to end: a corrupt file is archived and reseeded."""
        path = tmp_path / "data.json"
        path.write_bytes(b"\x00\x01 not json")

        doc = LedgerStore(LocalFileStorage(path)).load()

        assert len(doc.funds) == 3
        backups = [p for p in tmp_path.iterdir() if p.name.startswith("data.corrupt.")]
        assert len(backups) == 1
        assert backups[0].read_bytes() == b"\x00\x01 not json"
        assert json.loads(path.read_text(encoding="utf-8"))["funds"][0]["name"] == "Ahorro"
