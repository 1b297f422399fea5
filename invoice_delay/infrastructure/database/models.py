"""SQLAlchemy ORM models for the session audit trail"""

import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class TransferSession(Base):
    """One processing run that moved invoice due dates"""

    __tablename__ = "transfer_session"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(String(64), nullable=False, unique=True, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(Text, nullable=False)
    currency = Column(String(3), nullable=False)
    daily_volume = Column(Numeric(18, 2), nullable=False)
    volume_limit = Column(Numeric(18, 2), nullable=False)
    total_unpaid_invoices = Column(Integer, nullable=False)
    total_transferred = Column(Integer, nullable=False)
    total_failed = Column(Integer, nullable=False, default=0)
    cancelled = Column(Boolean, nullable=False, default=False)
    delay_scheme = Column(JSON, nullable=False)
    document = Column(JSON, nullable=False)  # full audit record as written to disk
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transfers = relationship("InvoiceTransfer", back_populates="session", cascade="all, delete-orphan")


class InvoiceTransfer(Base):
    """A single applied due-date change"""

    __tablename__ = "invoice_transfer"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_pk = Column(Uuid, ForeignKey("transfer_session.id", ondelete="CASCADE"), nullable=False)
    invoice_id = Column(Text, nullable=False, index=True)
    invoice_number = Column(Integer, nullable=False)
    days_offset = Column(Integer, nullable=False)
    cycle_position = Column(Integer, nullable=False)
    original_due_date = Column(DateTime(timezone=True), nullable=True)
    new_due_date = Column(BigInteger, nullable=False)  # epoch seconds sent to the provider
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    transferred_at = Column(DateTime(timezone=True), nullable=False)

    session = relationship("TransferSession", back_populates="transfers")
