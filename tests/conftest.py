"""Shared fixtures: every test runs against in-memory storage."""

import pytest

from fincalendar.audit import AuditLogger
from fincalendar.config import LedgerSettings
from fincalendar.ledger import LedgerService, LedgerStore
from fincalendar.models.ledger import PaymentPolicy
from fincalendar.services.storage import InMemoryAuditStorage, InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def make_service(storage, audit_storage):
    """Factory for a service over the shared in-memory storage."""
    def _make(policy: PaymentPolicy = PaymentPolicy.LAST_PAYMENT) -> LedgerService:
        audit_logger = AuditLogger(audit_storage)
        store = LedgerStore(storage, audit_logger=audit_logger)
        return LedgerService(
            store,
            audit_logger=audit_logger,
            settings=LedgerSettings(payment_policy=policy),
        )
    return _make


@pytest.fixture
def service(make_service):
    return make_service()
