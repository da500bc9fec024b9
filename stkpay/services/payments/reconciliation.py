"""Reconciliation of STK push outcomes.

Two independent paths finalize a transaction: the gateway's callback and a
caller-initiated status poll. Both end in `apply_result`, whose only
correctness mechanism is the conditional PENDING -> terminal UPDATE in the
store. Whichever path commits that UPDATE first decides the status; the other
lands in the no-op path, which may still record data the winner did not have
(the raw callback, receipt metadata, `last_checked_at`).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from stkpay.common.errors import GatewayError, NotFound
from stkpay.common.logging import checkout_request_id_ctx, logger
from stkpay.common.metrics import reconciliation_total, transaction_e2e_seconds, transaction_terminal_total
from stkpay.common.state_machine import COMPLETED, PENDING, status_for_result
from stkpay.services.daraja.client import DarajaClient
from stkpay.services.daraja.request_builder import PaymentRequestBuilder
from stkpay.services.payments import store
from stkpay.services.payments.callbacks import CallbackMetadata, parse_callback
from stkpay.services.payments.models import ReconciliationSource, Transaction
from stkpay.services.payments.schemas import CallbackAck, PollResult


@dataclass
class ReconciliationOutcome:
    transaction: Transaction
    transitioned: bool


class ReconciliationCoordinator:
    """Applies callback and poll results to the transaction store."""

    def __init__(
        self,
        session_factory,
        client: DarajaClient,
        builder: PaymentRequestBuilder,
        service_name: str = "stkpay",
        utc_offset_hours: int = 3,
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.builder = builder
        self.service_name = service_name
        self.utc_offset_hours = utc_offset_hours

    def _observe_terminal(self, transaction: Transaction) -> None:
        transaction_terminal_total.labels(service=self.service_name, status=transaction.status).inc()
        initiated_at = transaction.initiated_at
        if initiated_at is None:
            return
        if initiated_at.tzinfo is None:
            initiated_at = initiated_at.replace(tzinfo=timezone.utc)
        elapsed = max(0.0, (datetime.now(timezone.utc) - initiated_at).total_seconds())
        transaction_e2e_seconds.labels(service=self.service_name, terminal_state=transaction.status).observe(elapsed)

    async def apply_result(
        self,
        checkout_request_id: str,
        result_code,
        result_desc: str,
        source: ReconciliationSource,
        metadata: CallbackMetadata | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> ReconciliationOutcome:
        """Finalize one transaction from a definitive gateway result.

        Idempotent: once the row is terminal, repeated or conflicting results
        never change its status or result description.
        """

        result_code = str(result_code).strip()
        new_status = status_for_result(result_code)
        async with self.session_factory() as db:
            existing = await store.get_by_checkout_id(db, checkout_request_id)
            if existing is None:
                logger.warning("reconciliation_unknown_checkout source=%s", source.value)
                raise NotFound("Transaction not found for the given CheckoutRequestID")

            transitioned = False
            if existing.status == PENDING:
                transitioned = await store.transition_if_pending(
                    db,
                    checkout_request_id,
                    new_status,
                    result_code,
                    result_desc,
                    source,
                    metadata=metadata if new_status == COMPLETED else None,
                    raw_payload=raw_payload,
                )
            if transitioned:
                store.add_timeline(db, existing.id, PENDING, new_status, source, result_desc or result_code)
            else:
                await self._record_noop(db, checkout_request_id, source, new_status, metadata, raw_payload)
            await db.commit()
            transaction = await store.get_by_checkout_id(db, checkout_request_id)

        reconciliation_total.labels(
            service=self.service_name,
            source=source.value,
            outcome="transitioned" if transitioned else "noop",
        ).inc()
        if transitioned:
            self._observe_terminal(transaction)
            logger.info(
                "transaction_finalized source=%s status=%s result_code=%s",
                source.value,
                transaction.status,
                result_code,
            )
        else:
            logger.info(
                "reconciliation_noop source=%s stored_status=%s incoming_result_code=%s",
                source.value,
                transaction.status,
                result_code,
            )
        return ReconciliationOutcome(transaction=transaction, transitioned=transitioned)

    async def _record_noop(
        self,
        db,
        checkout_request_id: str,
        source: ReconciliationSource,
        new_status: str,
        metadata: CallbackMetadata | None,
        raw_payload: dict[str, Any] | None,
    ) -> None:
        """Secondary-field bookkeeping for a result that lost or arrived late."""

        if source is not ReconciliationSource.CALLBACK:
            await store.touch_last_checked(db, checkout_request_id)
            return
        current = await store.get_by_checkout_id(db, checkout_request_id)
        fill = metadata if current.status == COMPLETED and new_status == COMPLETED else None
        recorded = await store.record_late_callback(db, checkout_request_id, current.status, raw_payload, fill)
        if recorded and fill is not None:
            logger.info("late_callback_metadata_recorded receipt=%s", fill.receipt_number)

    async def handle_callback(self, payload: Any) -> CallbackAck:
        """Parse a raw callback body and apply it; malformed bodies never reach the store."""

        parsed = parse_callback(payload, self.utc_offset_hours)
        checkout_request_id_ctx.set(parsed.checkout_request_id)
        logger.info(
            "callback_received merchant_request_id=%s result_code=%s",
            parsed.merchant_request_id,
            parsed.result_code,
        )
        outcome = await self.apply_result(
            parsed.checkout_request_id,
            parsed.result_code,
            parsed.result_desc,
            ReconciliationSource.CALLBACK,
            metadata=parsed.metadata,
            raw_payload=payload,
        )
        return CallbackAck(status=outcome.transaction.status, transaction_id=outcome.transaction.id)

    async def poll(self, checkout_request_id: str) -> PollResult:
        """Ask the gateway for the outcome and apply it.

        Gateway failures are re-raised unchanged after stamping
        `last_checked_at`, so a timeout stays distinguishable from a
        rejection and the transaction stays PENDING.
        """

        query = self.builder.build_status_query(checkout_request_id)
        checkout_request_id = query.checkout_request_id
        checkout_request_id_ctx.set(checkout_request_id)
        async with self.session_factory() as db:
            if await store.get_by_checkout_id(db, checkout_request_id) is None:
                raise NotFound("Transaction not found for the given CheckoutRequestID")

        try:
            result = await self.client.query_status(query)
        except GatewayError as exc:
            async with self.session_factory() as db:
                await store.touch_last_checked(db, checkout_request_id)
                await db.commit()
            logger.warning("poll_gateway_error error=%s retryable=%s", exc.error, exc.retryable)
            raise

        outcome = await self.apply_result(
            checkout_request_id,
            result.result_code,
            result.result_desc,
            ReconciliationSource.POLL,
        )
        transaction = outcome.transaction
        return PollResult(
            checkout_request_id=checkout_request_id,
            status=transaction.status,
            result_code=transaction.result_code,
            result_desc=transaction.result_desc,
            receipt_number=transaction.mpesa_receipt_number,
            transaction_date=transaction.transaction_date,
        )
