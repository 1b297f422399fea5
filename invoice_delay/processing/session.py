"""One check-and-process run: volume gate, delay scheduling, due-date updates, audit"""

import asyncio
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from invoice_delay.domain.exceptions import PersistenceError, UpdateError
from invoice_delay.domain.models import (
    ProcessingResult,
    ProcessingSummary,
    ScheduledInvoice,
    SessionRecord,
    TransferFailure,
    TransferRecord,
    VolumeSnapshot,
)
from invoice_delay.domain.ports import AuditSink, ChargeSource, InvoiceMutator, InvoiceSource
from invoice_delay.domain.scheduling import DelayScheme, schedule_invoices
from invoice_delay.domain.volume import evaluate_volume, is_gate_open
from invoice_delay.infrastructure.observability.metrics import (
    record_gate_check,
    transfer_counter,
    transfer_failure_counter,
)
from invoice_delay.processing.executor import PacedBatchExecutor
from invoice_delay.utils.date_utils import TimeService

logger = logging.getLogger(__name__)

REASON_VOLUME_BELOW_LIMIT = "volume below limit"
REASON_NO_UNPAID_INVOICES = "no unpaid invoices"


def new_session_id(instant: datetime) -> str:
    return f"session-{int(instant.timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"


class ProcessingSession:
    """
    Orchestrates a single run.

    Flow:
    1. Sum today's successful charges (business day) and evaluate the gate
    2. Gate closed -> not processed, "volume below limit"
    3. Fetch open invoices; none -> not processed, "no unpaid invoices"
    4. Schedule the batch and apply each due-date update, one failure never
       stopping the rest
    5. Build the SessionRecord and hand it to the audit sink

    Listing failures (SourceFetchError) propagate. Audit write failures are
    logged; the provider-side updates already made stand.
    """

    def __init__(
        self,
        charge_source: ChargeSource,
        invoice_source: InvoiceSource,
        invoice_mutator: InvoiceMutator,
        audit_sink: AuditSink,
        time_service: TimeService,
        volume_limit: Decimal,
        currency: str,
        scheme: DelayScheme,
        executor: Optional[PacedBatchExecutor] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.charge_source = charge_source
        self.invoice_source = invoice_source
        self.invoice_mutator = invoice_mutator
        self.audit_sink = audit_sink
        self.time_service = time_service
        self.volume_limit = volume_limit
        self.currency = currency.upper()
        self.scheme = scheme
        self.executor = executor or PacedBatchExecutor()
        self.cancel_event = cancel_event

    async def check_volume(self, current_instant: datetime) -> VolumeSnapshot:
        """Evaluate the gate for the business day containing current_instant"""
        day_range = self.time_service.day_range(current_instant)
        logger.debug(
            "Fetching daily gross volume",
            extra={"start_date": day_range.start_date, "end_date": day_range.end_date},
        )
        batch = await self.charge_source.list_charges(day_range.start, day_range.end)
        snapshot = evaluate_volume(
            batch.charges,
            self.currency,
            self.volume_limit,
            day_range,
            possibly_truncated=batch.truncated,
        )
        if snapshot.possibly_truncated:
            logger.warning(
                "Charge listing was truncated; daily volume is a lower bound",
                extra={"counted_charges": len(snapshot.charges)},
            )
        logger.info(
            f"Daily gross volume calculated: {snapshot.volume} {snapshot.currency}",
            extra={"total_charges": len(snapshot.charges), "date_range": day_range.to_dict()},
        )
        return snapshot

    async def run(self) -> ProcessingResult:
        current_instant = self.time_service.now()
        logger.info(
            "Starting daily invoice processing check",
            extra={
                "current_time": self.time_service.format(current_instant),
                "timezone": self.time_service.timezone_name,
                "volume_limit": str(self.volume_limit),
                "currency": self.currency,
            },
        )

        snapshot = await self.check_volume(current_instant)
        gate_open = is_gate_open(snapshot)
        record_gate_check(gate_open, snapshot.volume, snapshot.currency)

        if not gate_open:
            logger.info(
                f"Volume {snapshot.volume} is below limit {self.volume_limit}. No invoice processing needed."
            )
            return ProcessingResult(processed=False, snapshot=snapshot, reason=REASON_VOLUME_BELOW_LIMIT)

        logger.warning(f"Volume limit reached! {snapshot.volume} >= {self.volume_limit}")

        batch = await self.invoice_source.list_open_invoices(self.currency)
        invoices = batch.invoices
        if batch.truncated:
            logger.warning(
                "Invoice listing was truncated; remaining invoices wait for the next run",
                extra={"listed_invoices": len(invoices)},
            )
        if not invoices:
            logger.info("No unpaid invoices found. Nothing to process.")
            return ProcessingResult(processed=False, snapshot=snapshot, reason=REASON_NO_UNPAID_INVOICES)

        logger.info(f"Processing {len(invoices)} unpaid invoices with cyclical delay scheme")
        scheduled = schedule_invoices(invoices, self.scheme, current_instant, self.time_service)

        outcomes = await self.executor.run(scheduled, self._apply_transfer, should_stop=self._cancelled)

        transfers: List[TransferRecord] = []
        failures: List[TransferFailure] = []
        skipped = 0
        for outcome in outcomes:
            if outcome.skipped:
                skipped += 1
            elif outcome.error is not None:
                failures.append(self._record_failure(outcome.item, outcome.error))
            else:
                transfers.append(outcome.result)

        if skipped:
            logger.warning(
                "Run cancelled before all invoices were processed",
                extra={"skipped": skipped, "transferred": len(transfers)},
            )

        record = SessionRecord(
            session_id=new_session_id(current_instant),
            timestamp=current_instant,
            timezone=self.time_service.timezone_name,
            tz=self.time_service.tz,
            snapshot=snapshot,
            total_unpaid_invoices=len(invoices),
            delay_scheme=list(self.scheme.offsets),
            transfers=transfers,
            failures=failures,
            total_skipped=skipped,
            cancelled=skipped > 0,
            invoices_possibly_truncated=batch.truncated,
        )
        audit_location = self._persist(record)

        logger.info(
            "INVOICE PROCESSING COMPLETED",
            extra={
                "session_id": record.session_id,
                "processed": f"{record.total_transferred}/{record.total_unpaid_invoices}",
                "failed": len(failures),
                "volume": str(snapshot.volume),
                "currency": snapshot.currency,
            },
        )
        return ProcessingResult(
            processed=True,
            snapshot=snapshot,
            session=record,
            audit_location=audit_location,
        )

    async def summarize(self) -> ProcessingSummary:
        """Current volume and backlog without touching any invoice"""
        current_instant = self.time_service.now()
        snapshot = await self.check_volume(current_instant)
        batch = await self.invoice_source.list_open_invoices(self.currency)
        return ProcessingSummary(
            current_time=self.time_service.format(current_instant),
            timezone=self.time_service.timezone_name,
            daily_volume=snapshot.volume,
            volume_limit=self.volume_limit,
            currency=self.currency,
            unpaid_invoices_count=len(batch.invoices),
            limit_reached=is_gate_open(snapshot),
            total_charges=len(snapshot.charges),
            possibly_truncated=snapshot.possibly_truncated,
            invoices_possibly_truncated=batch.truncated,
        )

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def _apply_transfer(self, entry: ScheduledInvoice) -> TransferRecord:
        invoice = entry.invoice
        try:
            await self.invoice_mutator.update_invoice_due_date(invoice.id, int(entry.due_at.timestamp()))
        except UpdateError:
            raise
        except Exception as e:
            # CancelledError is a BaseException and is not caught here
            logger.exception("Unexpected error updating invoice", extra={"invoice_id": invoice.id})
            raise UpdateError(invoice.id, type(e).__name__, str(e)) from e

        transfer = TransferRecord(
            invoice_id=invoice.id,
            invoice_number=entry.invoice_number,
            original_due_date=invoice.current_due_date,
            new_due_date=entry.due_at,
            days_offset=entry.days_offset,
            cycle_position=entry.cycle_position,
            amount=invoice.amount_due,
            currency=invoice.currency,
            transferred_at=self.time_service.now(),
        )
        transfer_counter.inc()
        logger.info(
            f"Invoice {entry.invoice_number} transferred",
            extra={
                "invoice_id": invoice.id,
                "new_due_date": self.time_service.format(entry.due_at),
                "days_offset": entry.days_offset,
                "cycle_position": entry.cycle_position,
            },
        )
        return transfer

    def _record_failure(self, entry: ScheduledInvoice, error: Exception) -> TransferFailure:
        kind = error.kind if isinstance(error, UpdateError) else type(error).__name__
        message = error.message if isinstance(error, UpdateError) else str(error)
        transfer_failure_counter.labels(kind=kind).inc()
        logger.error(
            f"Failed to transfer invoice {entry.invoice.id}",
            extra={"invoice_id": entry.invoice.id, "invoice_number": entry.invoice_number, "error_kind": kind, "error": message},
        )
        return TransferFailure(
            invoice_id=entry.invoice.id,
            invoice_number=entry.invoice_number,
            kind=kind,
            message=message,
        )

    def _persist(self, record: SessionRecord) -> Optional[str]:
        try:
            location = self.audit_sink.save(record)
        except PersistenceError as e:
            logger.error(
                "Failed to save transfer session",
                extra={"session_id": record.session_id, "error": str(e)},
            )
            return None
        except Exception:
            logger.exception("Audit sink failed unexpectedly", extra={"session_id": record.session_id})
            return None
        logger.info(f"Transfer session saved to {location}", extra={"session_id": record.session_id})
        return location
