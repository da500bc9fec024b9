"""Transaction store helpers over an async session.

Status changes go through `transition_if_pending`, a single conditional
UPDATE; callers never read-then-write the status column.
"""

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stkpay.common.state_machine import COMPLETED, PENDING, validate_transition
from stkpay.services.daraja.schemas import PaymentRequest, PushAcknowledgement
from stkpay.services.payments.callbacks import CallbackMetadata
from stkpay.services.payments.models import ReconciliationSource, Transaction, TransactionTimeline


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _metadata_values(metadata: CallbackMetadata | None) -> dict:
    if metadata is None:
        return {}
    values = {
        "mpesa_receipt_number": metadata.receipt_number,
        # Gateway-reported amount and phone win over what was initiated.
        "amount": metadata.amount,
        "phone_number": metadata.phone_number,
        "transaction_date": metadata.transaction_date,
    }
    return {key: value for key, value in values.items() if value is not None}


def add_timeline(
    db: AsyncSession,
    transaction_id: str,
    from_state: str | None,
    to_state: str,
    source: ReconciliationSource,
    reason: str,
) -> None:
    db.add(
        TransactionTimeline(
            transaction_id=transaction_id,
            from_state=from_state,
            to_state=to_state,
            source=source.value,
            reason=reason[:255],
        )
    )


async def create_pending(db: AsyncSession, request: PaymentRequest, ack: PushAcknowledgement) -> Transaction:
    """Persist an accepted push as PENDING; only called after the gateway accepted it."""

    transaction = Transaction(
        phone_number=request.phone_number,
        amount=request.amount,
        account_reference=request.account_reference,
        status=PENDING,
        merchant_request_id=ack.merchant_request_id,
        checkout_request_id=ack.checkout_request_id,
    )
    db.add(transaction)
    await db.flush()
    add_timeline(
        db,
        transaction.id,
        None,
        PENDING,
        ReconciliationSource.INITIATION,
        ack.description or "push_accepted",
    )
    return transaction


async def get_by_checkout_id(db: AsyncSession, checkout_request_id: str) -> Transaction | None:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.checkout_request_id == checkout_request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_id(db: AsyncSession, transaction_id: str) -> Transaction | None:
    return await db.get(Transaction, transaction_id)


async def list_recent(db: AsyncSession, limit: int = 100) -> list[Transaction]:
    result = await db.execute(select(Transaction).order_by(Transaction.initiated_at.desc()).limit(limit))
    return list(result.scalars())


async def list_by_phone(db: AsyncSession, phone_number: str, limit: int = 100) -> list[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.phone_number == phone_number)
        .order_by(Transaction.initiated_at.desc())
        .limit(limit)
    )
    return list(result.scalars())


async def transition_if_pending(
    db: AsyncSession,
    checkout_request_id: str,
    new_status: str,
    result_code: str,
    result_desc: str,
    source: ReconciliationSource,
    metadata: CallbackMetadata | None = None,
    raw_payload: dict | None = None,
) -> bool:
    """Move a PENDING row to `new_status` in one conditional UPDATE.

    Returns True only for the caller whose UPDATE matched the row; any
    concurrent caller sees zero rows and must treat the record as terminal.
    """

    validate_transition(PENDING, new_status)
    now = _now()
    values = {
        "status": new_status,
        "result_code": result_code,
        "result_desc": result_desc,
        "updated_at": now,
    }
    if source is ReconciliationSource.CALLBACK:
        values["callback_received_at"] = now
        values["raw_callback"] = raw_payload
    else:
        values["last_checked_at"] = now
    if new_status == COMPLETED:
        values.update(_metadata_values(metadata))

    result = await db.execute(
        update(Transaction)
        .where(
            Transaction.checkout_request_id == checkout_request_id,
            Transaction.status == PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def record_late_callback(
    db: AsyncSession,
    checkout_request_id: str,
    terminal_status: str,
    raw_payload: dict | None,
    metadata: CallbackMetadata | None = None,
) -> bool:
    """Store the first callback that arrives after the row already went terminal.

    Status, result code and description are left alone. Metadata is filled
    only when the caller passes it, i.e. for a success callback on a
    COMPLETED row. Later duplicates match nothing.
    """

    now = _now()
    values = {"callback_received_at": now, "raw_callback": raw_payload, "updated_at": now}
    values.update(_metadata_values(metadata))
    result = await db.execute(
        update(Transaction)
        .where(
            Transaction.checkout_request_id == checkout_request_id,
            Transaction.status == terminal_status,
            Transaction.callback_received_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def touch_last_checked(db: AsyncSession, checkout_request_id: str) -> None:
    now = _now()
    await db.execute(
        update(Transaction)
        .where(Transaction.checkout_request_id == checkout_request_id)
        .values(last_checked_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
