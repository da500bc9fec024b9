"""Payments database models.

This DB is the source of truth for STK push transactions and the audit trail
of their status changes.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from stkpay.common.db import Base
from stkpay.common.state_machine import PENDING

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class ReconciliationSource(str, Enum):
    """What produced a status change, recorded on the timeline."""

    INITIATION = "INITIATION"
    CALLBACK = "CALLBACK"
    POLL = "POLL"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    """One STK push, keyed for reconciliation by the gateway's checkout id."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    phone_number: Mapped[str] = mapped_column(String, index=True)
    amount: Mapped[int] = mapped_column(Integer)
    account_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, index=True, default=PENDING)
    merchant_request_id: Mapped[str] = mapped_column(String)
    checkout_request_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    mpesa_receipt_number: Mapped[str | None] = mapped_column(String, nullable=True)
    result_code: Mapped[str | None] = mapped_column(String, nullable=True)
    result_desc: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    initiated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    callback_received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Kept verbatim for audit/debugging; never read by the state machine.
    raw_callback: Mapped[dict | None] = mapped_column(JSONPayload, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )


class TransactionTimeline(Base):
    """Immutable audit trail of every status change."""

    __tablename__ = "transaction_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_id: Mapped[str] = mapped_column(ForeignKey("transactions.id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    source: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
