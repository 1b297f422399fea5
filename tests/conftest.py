"""Pytest fixtures for testing"""

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, List, Optional

import pytest

from invoice_delay.config import Settings
from invoice_delay.domain.exceptions import PersistenceError, UpdateError
from invoice_delay.domain.models import Charge, ChargeBatch, Invoice, InvoiceBatch, SessionRecord
from invoice_delay.domain.scheduling import DelayScheme
from invoice_delay.processing.executor import PacedBatchExecutor
from invoice_delay.processing.session import ProcessingSession
from invoice_delay.utils.date_utils import TimeService

# 2025-03-10 18:30:00 in Asia/Dubai (UTC+4)
FIXED_NOW = datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc)


class FakeProvider:
    """In-memory charge source, invoice source and invoice mutator"""

    def __init__(
        self,
        charges: Optional[List[Charge]] = None,
        invoices: Optional[List[Invoice]] = None,
        failures: Optional[Dict[str, str]] = None,
        truncated: bool = False,
        invoices_truncated: bool = False,
    ):
        self.charges = list(charges or [])
        self.invoices = list(invoices or [])
        self.failures = dict(failures or {})  # invoice_id -> error kind
        self.truncated = truncated
        self.invoices_truncated = invoices_truncated
        self.charge_error: Optional[Exception] = None
        self.invoice_error: Optional[Exception] = None
        self.on_update: Optional[Callable[[str], None]] = None
        self.charge_queries: List[tuple] = []
        self.invoice_queries: List[str] = []
        self.updates: List[tuple] = []

    async def list_charges(self, created_gte: int, created_lte: int) -> ChargeBatch:
        self.charge_queries.append((created_gte, created_lte))
        if self.charge_error:
            raise self.charge_error
        return ChargeBatch(charges=list(self.charges), truncated=self.truncated)

    async def list_open_invoices(self, currency: str) -> InvoiceBatch:
        self.invoice_queries.append(currency)
        if self.invoice_error:
            raise self.invoice_error
        invoices = [inv for inv in self.invoices if inv.currency.lower() == currency.lower()]
        return InvoiceBatch(invoices=invoices, truncated=self.invoices_truncated)

    async def update_invoice_due_date(self, invoice_id: str, due_date: int) -> dict:
        if self.on_update:
            self.on_update(invoice_id)
        if invoice_id in self.failures:
            raise UpdateError(invoice_id, self.failures[invoice_id], "rejected by provider")
        self.updates.append((invoice_id, due_date))
        return {"id": invoice_id, "due_date": due_date}


class InMemoryAuditSink:
    """Audit sink keeping records in a list"""

    def __init__(self):
        self.records: List[SessionRecord] = []
        self.fail = False

    def save(self, record: SessionRecord) -> str:
        if self.fail:
            raise PersistenceError("disk full")
        self.records.append(record)
        return f"memory://{record.session_id}"

    def list_recent(self, limit: int = 20) -> List[dict]:
        return [record.to_dict() for record in reversed(self.records)][:limit]


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances"""
    return FakeProvider


@pytest.fixture
def time_service() -> TimeService:
    """Dubai business clock pinned to FIXED_NOW"""
    return TimeService("Asia/Dubai", transfer_hour=12, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_charge() -> Callable[..., Charge]:
    counter = itertools.count(1)

    def _make(amount_cents: int, currency: str = "aed", status: str = "succeeded") -> Charge:
        return Charge(
            id=f"ch_{next(counter)}",
            amount_cents=amount_cents,
            currency=currency,
            status=status,
            created_at=FIXED_NOW - timedelta(hours=1),
        )

    return _make


@pytest.fixture
def make_invoice() -> Callable[..., Invoice]:
    counter = itertools.count(1)

    def _make(
        amount_due_cents: int = 10000,
        currency: str = "aed",
        current_due_date: Optional[datetime] = None,
    ) -> Invoice:
        number = next(counter)
        return Invoice(
            id=f"in_{number}",
            amount_due_cents=amount_due_cents,
            currency=currency,
            customer_ref=f"cus_{number}",
            created_at=FIXED_NOW - timedelta(days=number),
            current_due_date=current_due_date,
        )

    return _make


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def make_session(time_service: TimeService, audit_sink: InMemoryAuditSink):
    """Build a ProcessingSession over a FakeProvider, without pacing delays"""

    def _make(
        provider: FakeProvider,
        volume_limit: Decimal = Decimal("30"),
        scheme=(1, 3, 5, 7, 9),
        cancel_event=None,
    ) -> ProcessingSession:
        return ProcessingSession(
            charge_source=provider,
            invoice_source=provider,
            invoice_mutator=provider,
            audit_sink=audit_sink,
            time_service=time_service,
            volume_limit=volume_limit,
            currency="AED",
            scheme=DelayScheme.of(scheme),
            executor=PacedBatchExecutor(pacing_seconds=0),
            cancel_event=cancel_event,
        )

    return _make


@pytest.fixture
async def session_record(make_session, make_charge, make_invoice, audit_sink) -> SessionRecord:
    """A SessionRecord from a real run: 3 invoices, the second rejected"""
    provider = FakeProvider(
        charges=[make_charge(4500)],
        invoices=[
            make_invoice(12000, current_due_date=FIXED_NOW + timedelta(days=2)),
            make_invoice(5050),
            make_invoice(999),
        ],
        failures={"in_2": "not_found"},
    )
    result = await make_session(provider).run()
    return result.session


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and .env files"""
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_123",
        gross_volume_limit=Decimal("30"),
        account_currency="AED",
        timezone="Asia/Dubai",
        transfer_hour=12,
        delay_scheme=[1, 3, 5, 7, 9],
        logs_dir=None,
        data_dir=tmp_path / "data",
        database_url=f"sqlite:///{tmp_path}/audit.db",
        update_pacing_seconds=0,
    )

