"""STK push initiation.

Validates and signs the request, dispatches it once, and records a PENDING
transaction only after the gateway acknowledged it with ResponseCode "0".
"""

from stkpay.common.errors import GatewayRejected, NotFound
from stkpay.common.logging import checkout_request_id_ctx, logger
from stkpay.common.metrics import stk_push_rejected_total, stk_push_requests_total
from stkpay.services.daraja.client import DarajaClient
from stkpay.services.daraja.request_builder import PaymentRequestBuilder
from stkpay.services.payments import store
from stkpay.services.payments.models import Transaction
from stkpay.services.payments.schemas import InitiationResult


class PaymentService:
    """Owns the initiate-then-record path and the minimal lookups."""

    def __init__(
        self,
        session_factory,
        client: DarajaClient,
        builder: PaymentRequestBuilder,
        service_name: str = "stkpay",
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.builder = builder
        self.service_name = service_name

    async def initiate(self, phone_number, amount, reference: str | None = None) -> InitiationResult:
        stk_push_requests_total.labels(service=self.service_name).inc()
        request = self.builder.build(phone_number, amount, reference)
        ack = await self.client.initiate_push(request)
        if not ack.accepted:
            stk_push_rejected_total.labels(service=self.service_name).inc()
            logger.warning(
                "stk_push_not_accepted response_code=%s description=%s",
                ack.response_code,
                ack.description,
            )
            raise GatewayRejected(ack.response_code, ack.description)

        checkout_request_id_ctx.set(ack.checkout_request_id)
        async with self.session_factory() as db:
            transaction = await store.create_pending(db, request, ack)
            await db.commit()
        logger.info(
            "stk_push_accepted transaction_id=%s merchant_request_id=%s amount=%s",
            transaction.id,
            ack.merchant_request_id,
            request.amount,
        )
        return InitiationResult(
            accepted=True,
            transaction_id=transaction.id,
            checkout_request_id=ack.checkout_request_id,
            merchant_request_id=ack.merchant_request_id,
            description=ack.description,
        )

    async def get_transaction(self, transaction_id: str) -> Transaction:
        async with self.session_factory() as db:
            transaction = await store.get_by_id(db, transaction_id)
        if transaction is None:
            raise NotFound("Transaction not found")
        return transaction

    async def list_transactions(self, limit: int = 100) -> list[Transaction]:
        async with self.session_factory() as db:
            return await store.list_recent(db, limit)

    async def transactions_for_phone(self, phone_number) -> list[Transaction]:
        phone = self.builder.normalize_phone(phone_number)
        async with self.session_factory() as db:
            transactions = await store.list_by_phone(db, phone)
        if not transactions:
            raise NotFound("No transactions found for this phone number")
        return transactions
