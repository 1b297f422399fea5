"""Data access layer for the session audit trail"""

from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from invoice_delay.domain.exceptions import PersistenceError
from invoice_delay.domain.models import SessionRecord
from invoice_delay.infrastructure.database.models import InvoiceTransfer, TransferSession


class SessionRepository:
    """Audit sink storing each SessionRecord with its transfers"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, record: SessionRecord) -> str:
        """Persist one session record; returns its session_id"""
        db = self.session_factory()
        try:
            db_session = TransferSession(
                session_id=record.session_id,
                started_at=record.timestamp,
                timezone=record.timezone,
                currency=record.snapshot.currency,
                daily_volume=record.snapshot.volume,
                volume_limit=record.snapshot.threshold,
                total_unpaid_invoices=record.total_unpaid_invoices,
                total_transferred=record.total_transferred,
                total_failed=len(record.failures),
                cancelled=record.cancelled,
                delay_scheme=list(record.delay_scheme),
                document=record.to_dict(),
            )
            db.add(db_session)
            db.flush()  # Get ID without committing

            for transfer in record.transfers:
                db.add(
                    InvoiceTransfer(
                        session_pk=db_session.id,
                        invoice_id=transfer.invoice_id,
                        invoice_number=transfer.invoice_number,
                        days_offset=transfer.days_offset,
                        cycle_position=transfer.cycle_position,
                        original_due_date=transfer.original_due_date,
                        new_due_date=int(transfer.new_due_date.timestamp()),
                        amount=transfer.amount,
                        currency=transfer.currency,
                        transferred_at=transfer.transferred_at,
                    )
                )

            db.commit()
            return record.session_id
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not store session {record.session_id}: {e}") from e
        finally:
            db.close()

    def list_recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Fetch recent session documents, newest first"""
        db = self.session_factory()
        try:
            rows = (
                db.query(TransferSession)
                .order_by(TransferSession.started_at.desc())
                .limit(limit)
                .all()
            )
            return [row.document for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read sessions: {e}") from e
        finally:
            db.close()

