"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from invoice_delay.utils.date_utils import DayRange, format_instant

CENTS = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    """Render a major-unit amount with two decimal places"""
    return str(amount.quantize(CENTS))


@dataclass(frozen=True)
class Charge:
    """Payment provider charge (amount in minor units)"""

    id: str
    amount_cents: int
    currency: str
    status: str  # "succeeded" or anything else
    created_at: datetime


@dataclass(frozen=True)
class ChargeBatch:
    """Charges returned by the charge source for one time window"""

    charges: List[Charge]
    truncated: bool = False


@dataclass(frozen=True)
class Invoice:
    """Open (unpaid) invoice from the payment provider"""

    id: str
    amount_due_cents: int
    currency: str
    customer_ref: Optional[str]
    created_at: datetime
    current_due_date: Optional[datetime] = None

    @property
    def amount_due(self) -> Decimal:
        return Decimal(self.amount_due_cents).scaleb(-2)


@dataclass(frozen=True)
class InvoiceBatch:
    """Open invoices returned by the invoice source"""

    invoices: List[Invoice]
    truncated: bool = False


@dataclass(frozen=True)
class VolumeSnapshot:
    """Gross volume for one business day, as seen by the gate"""

    volume: Decimal
    currency: str
    threshold: Decimal
    charges: List[Charge]
    date_range: DayRange
    possibly_truncated: bool = False

    def to_dict(self, tz: tzinfo) -> Dict[str, Any]:
        return {
            "volume": format_amount(self.volume),
            "currency": self.currency,
            "charges": [
                {
                    "id": charge.id,
                    "amount": format_amount(Decimal(charge.amount_cents).scaleb(-2)),
                    "currency": charge.currency,
                    "created": format_instant(charge.created_at, tz),
                }
                for charge in self.charges
            ],
            "date_range": self.date_range.to_dict(),
            "possibly_truncated": self.possibly_truncated,
        }


@dataclass(frozen=True)
class ScheduledInvoice:
    """Delay assignment for one invoice in a batch"""

    invoice: Invoice
    invoice_number: int
    days_offset: int
    cycle_position: int
    due_at: datetime


@dataclass(frozen=True)
class TransferRecord:
    """One applied due-date change"""

    invoice_id: str
    invoice_number: int
    original_due_date: Optional[datetime]
    new_due_date: datetime
    days_offset: int
    cycle_position: int
    amount: Decimal
    currency: str
    transferred_at: datetime

    def to_dict(self, tz: tzinfo) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice_number,
            "original_due_date": (
                format_instant(self.original_due_date, tz) if self.original_due_date else None
            ),
            "new_due_date": format_instant(self.new_due_date, tz),
            "new_due_date_timestamp": int(self.new_due_date.timestamp()),
            "days_offset": self.days_offset,
            "cycle_position": self.cycle_position,
            "amount": format_amount(self.amount),
            "currency": self.currency,
            "transferred_at": format_instant(self.transferred_at, tz),
        }


@dataclass(frozen=True)
class TransferFailure:
    """An invoice whose due-date update was rejected"""

    invoice_id: str
    invoice_number: int
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice_number,
            "kind": self.kind,
            "message": self.message,
        }


@dataclass(frozen=True)
class SessionRecord:
    """Audit record of one processing run"""

    session_id: str
    timestamp: datetime
    timezone: str
    tz: tzinfo
    snapshot: VolumeSnapshot
    total_unpaid_invoices: int
    delay_scheme: List[int]
    transfers: List[TransferRecord]
    failures: List[TransferFailure] = field(default_factory=list)
    total_skipped: int = 0
    cancelled: bool = False
    invoices_possibly_truncated: bool = False

    @property
    def total_transferred(self) -> int:
        return len(self.transfers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "timestamp": format_instant(self.timestamp, self.tz),
            "timezone": self.timezone,
            "trigger": {
                "daily_volume": format_amount(self.snapshot.volume),
                "volume_limit": format_amount(self.snapshot.threshold),
                "currency": self.snapshot.currency,
            },
            "processing": {
                "total_unpaid_invoices": self.total_unpaid_invoices,
                "total_transferred": self.total_transferred,
                "total_failed": len(self.failures),
                "total_skipped": self.total_skipped,
                "cancelled": self.cancelled,
                "invoices_possibly_truncated": self.invoices_possibly_truncated,
                "delay_scheme": list(self.delay_scheme),
            },
            "transfers": [transfer.to_dict(self.tz) for transfer in self.transfers],
            "failures": [failure.to_dict() for failure in self.failures],
            "volume_details": self.snapshot.to_dict(self.tz),
        }


@dataclass
class ProcessingResult:
    """Outcome of ProcessingSession.run()"""

    processed: bool
    snapshot: VolumeSnapshot
    reason: Optional[str] = None
    session: Optional[SessionRecord] = None
    audit_location: Optional[str] = None

    @property
    def transfers(self) -> List[TransferRecord]:
        return self.session.transfers if self.session else []


@dataclass
class ProcessingSummary:
    """Read-only view of the current business day"""

    current_time: str
    timezone: str
    daily_volume: Decimal
    volume_limit: Decimal
    currency: str
    unpaid_invoices_count: int
    limit_reached: bool
    total_charges: int
    possibly_truncated: bool
    invoices_possibly_truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_time": self.current_time,
            "timezone": self.timezone,
            "daily_volume": format_amount(self.daily_volume),
            "volume_limit": format_amount(self.volume_limit),
            "currency": self.currency,
            "unpaid_invoices_count": self.unpaid_invoices_count,
            "limit_reached": self.limit_reached,
            "total_charges": self.total_charges,
            "possibly_truncated": self.possibly_truncated,
            "invoices_possibly_truncated": self.invoices_possibly_truncated,
        }


class RunStatus(str, Enum):
    PROCESSED = "processed"
    NOT_NEEDED = "not_needed"
    FAILED = "failed"


@dataclass
class JobOutcome:
    """Tri-state report of one check-and-process cycle"""

    status: RunStatus
    reason: Optional[str] = None
    result: Optional[ProcessingResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.reason:
            data["reason"] = self.reason
        if self.error:
            data["error"] = self.error
        if self.result and self.result.session:
            session = self.result.session
            data["session_id"] = session.session_id
            data["total_unpaid_invoices"] = session.total_unpaid_invoices
            data["total_transferred"] = session.total_transferred
            data["audit_location"] = self.result.audit_location
        return data
