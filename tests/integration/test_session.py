"""Integration tests for a full processing session over fake collaborators"""

import asyncio
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from invoice_delay.domain.exceptions import SourceFetchError
from invoice_delay.domain.models import RunStatus
from invoice_delay.processing.jobs import REASON_BEFORE_TRANSFER_WINDOW, run_once
from invoice_delay.processing.session import REASON_NO_UNPAID_INVOICES, REASON_VOLUME_BELOW_LIMIT
from invoice_delay.utils.date_utils import TimeService

DUBAI = ZoneInfo("Asia/Dubai")


async def test_volume_below_limit_makes_no_changes(fake_provider, make_session, make_charge, make_invoice, audit_sink):
    """Test threshold 30, volume 29.99: gate closed, no invoice listing, no updates"""
    provider = fake_provider(charges=[make_charge(2999)], invoices=[make_invoice()])

    result = await make_session(provider, volume_limit=Decimal("30")).run()

    assert result.processed is False
    assert result.reason == REASON_VOLUME_BELOW_LIMIT
    assert result.snapshot.volume == Decimal("29.99")
    assert provider.invoice_queries == []
    assert provider.updates == []
    assert audit_sink.records == []


async def test_volume_at_limit_transfers_all_invoices(fake_provider, make_session, make_charge, make_invoice, audit_sink):
    """Test threshold 30, volume 30.00, 3 invoices, every update succeeds"""
    provider = fake_provider(
        charges=[make_charge(1000), make_charge(2000)],
        invoices=[make_invoice(), make_invoice(), make_invoice()],
    )

    result = await make_session(provider, volume_limit=Decimal("30")).run()

    assert result.processed is True
    assert len(result.transfers) == 3
    assert result.session.total_transferred == 3
    assert result.session.to_dict()["processing"]["total_transferred"] == 3
    for transfer in result.transfers:
        local = transfer.new_due_date.astimezone(DUBAI)
        assert (local.hour, local.minute, local.second) == (12, 0, 0)
    assert audit_sink.records == [result.session]
    assert result.audit_location == f"memory://{result.session.session_id}"


async def test_updates_send_epoch_seconds_of_scheduled_due_dates(fake_provider, make_session, make_charge, make_invoice):
    provider = fake_provider(charges=[make_charge(5000)], invoices=[make_invoice(), make_invoice()])

    await make_session(provider, scheme=(1, 3)).run()

    assert provider.updates == [
        ("in_1", int(datetime(2025, 3, 11, 12, 0, tzinfo=DUBAI).timestamp())),
        ("in_2", int(datetime(2025, 3, 13, 12, 0, tzinfo=DUBAI).timestamp())),
    ]


async def test_second_update_failure_keeps_first_transfer(fake_provider, make_session, make_charge, make_invoice):
    """Test 2 invoices, second update fails: processed with 1 of 2 transferred"""
    provider = fake_provider(
        charges=[make_charge(3000)],
        invoices=[make_invoice(), make_invoice()],
        failures={"in_2": "not_found"},
    )

    result = await make_session(provider).run()

    assert result.processed is True
    assert [t.invoice_id for t in result.transfers] == ["in_1"]
    assert result.session.total_transferred == 1
    assert result.session.total_unpaid_invoices == 2
    assert [(f.invoice_id, f.kind) for f in result.session.failures] == [("in_2", "not_found")]


async def test_failures_do_not_shift_other_offsets(fake_provider, make_session, make_charge, make_invoice):
    """Test N invoices with failed subset: N - failures transfers, positions unchanged"""
    provider = fake_provider(
        charges=[make_charge(3000)],
        invoices=[make_invoice() for _ in range(5)],
        failures={"in_2": "rate_limited", "in_4": "invoice_not_open"},
    )

    result = await make_session(provider, scheme=(1, 3, 5, 7, 9)).run()

    assert [(t.invoice_number, t.cycle_position, t.days_offset) for t in result.transfers] == [
        (1, 1, 1),
        (3, 3, 5),
        (5, 5, 9),
    ]


async def test_unexpected_update_error_is_scoped_to_one_invoice(
    fake_provider, make_session, make_charge, make_invoice, audit_sink
):
    """Test a non-provider exception on one update is recorded and the run still completes"""
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice() for _ in range(3)])

    def explode(invoice_id):
        if invoice_id == "in_2":
            raise RuntimeError("serializer bug")

    provider.on_update = explode

    outcome = await run_once(make_session(provider))

    assert outcome.status is RunStatus.PROCESSED
    session = outcome.result.session
    assert [t.invoice_id for t in session.transfers] == ["in_1", "in_3"]
    assert [(f.invoice_id, f.kind, f.message) for f in session.failures] == [("in_2", "RuntimeError", "serializer bug")]
    assert audit_sink.records == [session]


async def test_truncated_invoice_listing_is_surfaced(fake_provider, make_session, make_charge, make_invoice):
    """Test an invoice listing cut at the page cap is flagged in the audit record and summary"""
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()], invoices_truncated=True)
    session = make_session(provider)

    result = await session.run()
    summary = await session.summarize()

    assert result.processed is True
    assert result.session.invoices_possibly_truncated is True
    assert result.session.to_dict()["processing"]["invoices_possibly_truncated"] is True
    assert summary.invoices_possibly_truncated is True
    assert summary.to_dict()["invoices_possibly_truncated"] is True


async def test_broken_audit_sink_does_not_fail_run(fake_provider, make_session, make_charge, make_invoice, audit_sink, monkeypatch):
    """Test an audit sink raising outside its contract still leaves the run processed"""
    def broken(record):
        raise TypeError("Object of type Decimal is not JSON serializable")

    monkeypatch.setattr(audit_sink, "save", broken)
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()])

    outcome = await run_once(make_session(provider))

    assert outcome.status is RunStatus.PROCESSED
    assert outcome.result.audit_location is None
    assert len(provider.updates) == 1


async def test_no_unpaid_invoices(fake_provider, make_session, make_charge, make_invoice, audit_sink):
    provider = fake_provider(charges=[make_charge(9000)], invoices=[make_invoice(currency="usd")])

    result = await make_session(provider).run()

    assert result.processed is False
    assert result.reason == REASON_NO_UNPAID_INVOICES
    assert provider.invoice_queries == ["AED"]
    assert audit_sink.records == []


async def test_volume_query_bounded_to_business_day(fake_provider, make_session, make_charge, time_service):
    provider = fake_provider(charges=[make_charge(100)])

    await make_session(provider).run()

    day = time_service.day_range(time_service.now())
    assert provider.charge_queries == [(day.start, day.end)]


async def test_audit_failure_does_not_undo_processing(fake_provider, make_session, make_charge, make_invoice, audit_sink):
    """Test a failed audit write leaves the run processed"""
    audit_sink.fail = True
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()])

    result = await make_session(provider).run()

    assert result.processed is True
    assert result.audit_location is None
    assert len(provider.updates) == 1


async def test_truncated_charge_listing_is_surfaced(fake_provider, make_session, make_charge, make_invoice):
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()], truncated=True)

    result = await make_session(provider).run()

    assert result.snapshot.possibly_truncated is True
    assert result.session.to_dict()["volume_details"]["possibly_truncated"] is True


async def test_cancellation_stops_batch_and_still_audits(fake_provider, make_session, make_charge, make_invoice, audit_sink):
    """Test a stop signal mid-batch keeps applied updates and records the rest as skipped"""
    cancel_event = asyncio.Event()
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice() for _ in range(4)])
    provider.on_update = lambda invoice_id: cancel_event.set()

    result = await make_session(provider, cancel_event=cancel_event).run()

    assert [t.invoice_id for t in result.transfers] == ["in_1"]
    assert result.session.cancelled is True
    assert result.session.total_skipped == 3
    assert audit_sink.records == [result.session]


async def test_session_record_document(session_record, time_service):
    """Test the audit document carries trigger, counts, transfers and failures"""
    document = session_record.to_dict()

    assert document["timestamp"] == "2025-03-10 18:30:00"
    assert document["timezone"] == "Asia/Dubai"
    assert document["trigger"] == {"daily_volume": "45.00", "volume_limit": "30.00", "currency": "AED"}
    assert document["processing"] == {
        "total_unpaid_invoices": 3,
        "total_transferred": 2,
        "total_failed": 1,
        "total_skipped": 0,
        "cancelled": False,
        "invoices_possibly_truncated": False,
        "delay_scheme": [1, 3, 5, 7, 9],
    }
    first, third = document["transfers"]
    assert first["original_due_date"] == "2025-03-12 18:30:00"
    assert first["new_due_date"] == "2025-03-11 12:00:00"
    assert first["amount"] == "120.00"
    assert first["transferred_at"] == "2025-03-10 18:30:00"
    assert third["invoice_number"] == 3
    assert third["original_due_date"] is None
    assert third["new_due_date"] == "2025-03-15 12:00:00"
    assert third["amount"] == "9.99"
    assert document["failures"] == [
        {"invoice_id": "in_2", "invoice_number": 2, "kind": "not_found", "message": "rejected by provider"}
    ]
    assert document["volume_details"]["date_range"]["start_date"] == "2025-03-10"
    assert document["volume_details"]["charges"][0]["amount"] == "45.00"


async def test_summary_reports_without_mutating(fake_provider, make_session, make_charge, make_invoice):
    provider = fake_provider(
        charges=[make_charge(3500), make_charge(100, status="failed")],
        invoices=[make_invoice(), make_invoice()],
    )

    summary = await make_session(provider).summarize()

    assert summary.current_time == "2025-03-10 18:30:00"
    assert summary.daily_volume == Decimal("35.00")
    assert summary.limit_reached is True
    assert summary.unpaid_invoices_count == 2
    assert summary.total_charges == 1
    assert provider.updates == []


async def test_run_once_reports_processed(fake_provider, make_session, make_charge, make_invoice):
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice(), make_invoice()], failures={"in_2": "auth"})

    outcome = await run_once(make_session(provider))

    assert outcome.status is RunStatus.PROCESSED
    report = outcome.to_dict()
    assert report["total_transferred"] == 1
    assert report["total_unpaid_invoices"] == 2


async def test_run_once_reports_not_needed(fake_provider, make_session, make_charge):
    outcome = await run_once(make_session(fake_provider(charges=[make_charge(100)])))

    assert outcome.status is RunStatus.NOT_NEEDED
    assert outcome.reason == REASON_VOLUME_BELOW_LIMIT


async def test_run_once_reports_source_failure(fake_provider, make_session, make_invoice):
    """Test a charge listing failure aborts the run before any update"""
    provider = fake_provider(invoices=[make_invoice()])
    provider.charge_error = SourceFetchError("charges", "HTTP 503 (provider_error): down")

    outcome = await run_once(make_session(provider))

    assert outcome.status is RunStatus.FAILED
    assert "charges" in outcome.error
    assert provider.updates == []


async def test_run_once_reports_invoice_listing_failure(fake_provider, make_session, make_charge):
    provider = fake_provider(charges=[make_charge(3000)])
    provider.invoice_error = SourceFetchError("invoices", "timeout after 10.0s")

    outcome = await run_once(make_session(provider))

    assert outcome.status is RunStatus.FAILED
    assert "invoices" in outcome.error


async def test_run_once_waits_for_transfer_window(fake_provider, make_session, make_charge, make_invoice):
    morning = datetime(2025, 3, 10, 8, 0, tzinfo=DUBAI)
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()])
    session = make_session(provider)
    session.time_service = TimeService("Asia/Dubai", transfer_hour=12, clock=lambda: morning)

    outcome = await run_once(session, require_transfer_window=True)

    assert outcome.status is RunStatus.NOT_NEEDED
    assert outcome.reason == REASON_BEFORE_TRANSFER_WINDOW
    assert provider.charge_queries == []


async def test_run_once_inside_transfer_window_processes(fake_provider, make_session, make_charge, make_invoice):
    provider = fake_provider(charges=[make_charge(3000)], invoices=[make_invoice()])

    outcome = await run_once(make_session(provider), require_transfer_window=True)

    assert outcome.status is RunStatus.PROCESSED
    assert outcome.result.session.transfers[0].transferred_at == outcome.result.session.timestamp
    assert outcome.result.session.timestamp == datetime(2025, 3, 10, 18, 30, tzinfo=DUBAI)
