"""Cyclical delay scheduling for unpaid invoices"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence, Tuple

from invoice_delay.domain.exceptions import ConfigurationError
from invoice_delay.domain.models import Invoice, ScheduledInvoice
from invoice_delay.utils.date_utils import TimeService


@dataclass(frozen=True)
class DelayScheme:
    """
    Ordered day offsets applied by batch position.

    The k-th invoice (1-indexed) uses offsets[(k - 1) % len(offsets)].
    Validated on construction so a bad scheme fails at load time.
    """

    offsets: Tuple[int, ...]

    def __post_init__(self):
        if not self.offsets:
            raise ConfigurationError("Delay scheme must contain at least one offset")
        for offset in self.offsets:
            # bool is an int subclass
            if isinstance(offset, bool) or not isinstance(offset, int) or offset < 1:
                raise ConfigurationError(f"Delay scheme offsets must be integers >= 1, got {offset!r}")

    @classmethod
    def of(cls, offsets: Sequence[int]) -> "DelayScheme":
        return cls(tuple(offsets))

    def __len__(self) -> int:
        return len(self.offsets)

    def cycle_position(self, invoice_number: int) -> int:
        """1-indexed position within one repetition of the scheme"""
        if invoice_number < 1:
            raise ValueError(f"Invoice numbers start at 1, got {invoice_number}")
        return (invoice_number - 1) % len(self.offsets) + 1

    def offset_for(self, invoice_number: int) -> int:
        return self.offsets[self.cycle_position(invoice_number) - 1]


def schedule_invoices(
    invoices: Sequence[Invoice],
    scheme: DelayScheme,
    current_instant: datetime,
    time_service: TimeService,
) -> List[ScheduledInvoice]:
    """
    Assign every invoice a day offset and an absolute due date.

    Requirements:
    - Input order is kept; invoice_number is the 1-indexed input position
    - Offsets cycle through the scheme by position
    - Every due date is measured from current_instant, not from the
      invoice's own history, so one batch lands on at most len(scheme) dates
    - No I/O: same inputs give the same output

    Example:
        scheme [1, 3, 5, 7, 9], 6 invoices
        → offsets 1, 3, 5, 7, 9, 1 (invoice #6 wraps to cycle position 1)
    """
    scheduled = []
    for index, invoice in enumerate(invoices):
        invoice_number = index + 1
        days_offset = scheme.offset_for(invoice_number)
        scheduled.append(
            ScheduledInvoice(
                invoice=invoice,
                invoice_number=invoice_number,
                days_offset=days_offset,
                cycle_position=scheme.cycle_position(invoice_number),
                due_at=time_service.due_date_for(days_offset, current_instant),
            )
        )

    return scheduled
