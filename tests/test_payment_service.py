"""STK push initiation and the minimal transaction lookups."""

import httpx
import pytest

from stkpay.common.errors import GatewayRejected, GatewayTimeout, NotFound, ValidationError
from stkpay.common.state_machine import PENDING
from stkpay.services.daraja.client import AUTH_PATH, STK_PUSH_PATH
from stkpay.services.payments import store


async def test_accepted_push_is_recorded_pending(payment_service, session_factory):
    result = await payment_service.initiate("0712345678", 70000, "BuyGoods")

    assert result.accepted
    assert result.checkout_request_id == "ws_CO_191220191020363925"
    assert result.merchant_request_id == "29115-34620561-1"
    async with session_factory() as db:
        tx = await store.get_by_checkout_id(db, result.checkout_request_id)
    assert tx.id == result.transaction_id
    assert tx.status == PENDING
    assert tx.amount == 70000
    assert tx.phone_number == "254712345678"
    assert tx.initiated_at is not None
    assert tx.callback_received_at is None


async def test_reference_defaults_to_phone(payment_service):
    result = await payment_service.initiate("712345678", "250")

    tx = await payment_service.get_transaction(result.transaction_id)
    assert tx.account_reference == "254712345678"
    assert tx.amount == 250


async def test_not_accepted_push_records_nothing(payment_service, fake_daraja):
    fake_daraja.push_response = (200, {"ResponseCode": "1", "ResponseDescription": "Unable to lock subscriber"})

    with pytest.raises(GatewayRejected) as exc_info:
        await payment_service.initiate("0712345678", 10)

    assert exc_info.value.code == "1"
    assert await payment_service.list_transactions() == []


async def test_gateway_http_error_records_nothing(payment_service, fake_daraja):
    fake_daraja.push_response = (400, {"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"})

    with pytest.raises(GatewayRejected):
        await payment_service.initiate("0712345678", 10)

    assert await payment_service.list_transactions() == []


async def test_push_timeout_records_nothing(payment_service, fake_daraja):
    fake_daraja.push_response = httpx.ReadTimeout("timed out")

    with pytest.raises(GatewayTimeout):
        await payment_service.initiate("0712345678", 10)

    assert await payment_service.list_transactions() == []


@pytest.mark.parametrize(
    "phone,amount",
    [("071234567", 10), ("+255712345678", 10), ("0712345678", 0), (None, 10), ("0712345678", "ten")],
)
async def test_invalid_input_never_reaches_gateway(payment_service, fake_daraja, phone, amount):
    with pytest.raises(ValidationError):
        await payment_service.initiate(phone, amount)

    assert fake_daraja.calls_to(AUTH_PATH) == []
    assert fake_daraja.calls_to(STK_PUSH_PATH) == []


async def test_unknown_transaction_id(payment_service):
    with pytest.raises(NotFound):
        await payment_service.get_transaction("does-not-exist")


async def test_lookup_by_phone_accepts_any_accepted_shape(payment_service, fake_daraja):
    first = await payment_service.initiate("0712345678", 10)
    fake_daraja.push_response = (
        200,
        {"MerchantRequestID": "m-2", "CheckoutRequestID": "ws_CO_2", "ResponseCode": "0"},
    )
    second = await payment_service.initiate("+254712345678", 20)

    found = await payment_service.transactions_for_phone("712345678")

    assert {tx.id for tx in found} == {first.transaction_id, second.transaction_id}


async def test_lookup_by_phone_without_transactions(payment_service):
    with pytest.raises(NotFound):
        await payment_service.transactions_for_phone("0799999999")


async def test_list_respects_limit(payment_service, fake_daraja):
    for index in range(3):
        fake_daraja.push_response = (
            200,
            {"MerchantRequestID": f"m-{index}", "CheckoutRequestID": f"ws_CO_{index}", "ResponseCode": "0"},
        )
        await payment_service.initiate("0712345678", 10 + index)

    assert len(await payment_service.list_transactions(limit=2)) == 2
    assert len(await payment_service.list_transactions()) == 3
