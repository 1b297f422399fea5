"""Contracts for the collaborators a processing session talks to"""

from typing import Any, Dict, List, Protocol

from invoice_delay.domain.models import ChargeBatch, InvoiceBatch, SessionRecord


class ChargeSource(Protocol):
    async def list_charges(self, created_gte: int, created_lte: int) -> ChargeBatch:
        """Charges created in the inclusive epoch-second range; raises SourceFetchError"""
        ...


class InvoiceSource(Protocol):
    async def list_open_invoices(self, currency: str) -> InvoiceBatch:
        """Open invoices in the given currency; raises SourceFetchError"""
        ...


class InvoiceMutator(Protocol):
    async def update_invoice_due_date(self, invoice_id: str, due_date: int) -> Dict[str, Any]:
        """Set an invoice's due date (epoch seconds); raises UpdateError"""
        ...


class AuditSink(Protocol):
    def save(self, record: SessionRecord) -> str:
        """Store the record durably and return where; raises PersistenceError"""
        ...

    def list_recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent stored records, newest first"""
        ...
