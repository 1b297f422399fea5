"""Job wiring and the tri-state run entry point"""

import asyncio
import logging
from typing import Optional

import httpx

from invoice_delay.config import Settings
from invoice_delay.domain.exceptions import SourceFetchError
from invoice_delay.domain.models import JobOutcome, RunStatus
from invoice_delay.domain.ports import AuditSink
from invoice_delay.infrastructure.audit.file_sink import JsonFileAuditSink
from invoice_delay.infrastructure.clients.stripe import StripeClient
from invoice_delay.infrastructure.database.repositories import SessionRepository
from invoice_delay.infrastructure.database.session import get_session_factory
from invoice_delay.infrastructure.observability.metrics import record_run
from invoice_delay.processing.executor import PacedBatchExecutor
from invoice_delay.processing.session import ProcessingSession
from invoice_delay.utils.date_utils import TimeService

logger = logging.getLogger(__name__)

REASON_BEFORE_TRANSFER_WINDOW = "before transfer window"


def build_time_service(settings: Settings) -> TimeService:
    return TimeService(settings.timezone, settings.transfer_hour)


def build_stripe_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> StripeClient:
    return StripeClient(
        api_key=settings.stripe_secret_key,
        base_url=settings.stripe_api_base,
        timeout=settings.http_timeout_seconds,
        page_size=settings.page_size,
        max_pages=settings.max_pages,
        transport=transport,
    )


def build_audit_sink(settings: Settings) -> AuditSink:
    if settings.audit_backend == "database":
        return SessionRepository(get_session_factory(settings.database_url))
    return JsonFileAuditSink(settings.data_dir)


def build_session(
    settings: Settings,
    time_service: Optional[TimeService] = None,
    stripe_client: Optional[StripeClient] = None,
    audit_sink: Optional[AuditSink] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> ProcessingSession:
    """Assemble a ProcessingSession from settings; any collaborator can be supplied"""
    client = stripe_client or build_stripe_client(settings)
    return ProcessingSession(
        charge_source=client,
        invoice_source=client,
        invoice_mutator=client,
        audit_sink=audit_sink or build_audit_sink(settings),
        time_service=time_service or build_time_service(settings),
        volume_limit=settings.gross_volume_limit,
        currency=settings.account_currency,
        scheme=settings.scheme,
        executor=PacedBatchExecutor(
            concurrency=settings.update_concurrency,
            pacing_seconds=settings.update_pacing_seconds,
        ),
        cancel_event=cancel_event,
    )


async def run_once(session: ProcessingSession, require_transfer_window: bool = False) -> JobOutcome:
    """
    Perform one check-and-process cycle and report processed / not_needed / failed.

    Never raises for run-level failures; they come back as FAILED with the
    error message so the scheduler can retry on the next invocation.
    """
    if require_transfer_window and not session.time_service.is_past_transfer_time(session.time_service.now()):
        logger.info("Transfer window not reached yet; skipping run")
        outcome = JobOutcome(status=RunStatus.NOT_NEEDED, reason=REASON_BEFORE_TRANSFER_WINDOW)
        record_run(outcome.status.value)
        return outcome

    try:
        result = await session.run()
    except SourceFetchError as e:
        logger.error("Invoice processing failed", extra={"source": e.source, "error": e.message})
        outcome = JobOutcome(status=RunStatus.FAILED, error=str(e))
    except Exception as e:
        logger.exception("Invoice processing failed unexpectedly")
        outcome = JobOutcome(status=RunStatus.FAILED, error=f"{type(e).__name__}: {e}")
    else:
        if result.processed:
            outcome = JobOutcome(status=RunStatus.PROCESSED, result=result)
        else:
            outcome = JobOutcome(status=RunStatus.NOT_NEEDED, reason=result.reason, result=result)

    record_run(outcome.status.value)
    return outcome
