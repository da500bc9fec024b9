"""HTTP surface: routing, request parsing and error rendering."""

import httpx
import pytest_asyncio
from fastapi import FastAPI

from stkpay.common.state_machine import COMPLETED, PENDING
from stkpay.services.payments.api import metrics_middleware, register_error_handlers, router


@pytest_asyncio.fixture
async def api(payment_service, coordinator):
    app = FastAPI()
    app.middleware("http")(metrics_middleware)
    register_error_handlers(app)
    app.include_router(router)
    app.state.payments = payment_service
    app.state.reconciliation = coordinator
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_push_returns_initiation_result(api):
    resp = await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 70000, "reference": "BuyGoods"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["accepted"] is True
    assert body["checkout_request_id"] == "ws_CO_191220191020363925"
    assert body["transaction_id"]


async def test_invalid_phone_is_a_400_with_field_and_reason(api, fake_daraja):
    resp = await api.post("/api/stkpush", json={"phone_number": "12345", "amount": 10})

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "ValidationError",
        "message": resp.json()["message"],
        "field": "phone_number",
        "reason": "InvalidPhoneNumber",
    }
    assert fake_daraja.requests == []


async def test_gateway_rejection_is_a_502_with_provider_code(api, fake_daraja):
    fake_daraja.push_response = (400, {"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Amount"})

    resp = await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 10})

    assert resp.status_code == 502
    assert resp.json()["gateway_code"] == "400.002.02"


async def test_callback_completes_transaction(api, success_callback):
    pushed = (await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 70000})).json()

    resp = await api.post("/api/callback", json=success_callback())

    assert resp.status_code == 200
    assert resp.json() == {"status": COMPLETED, "transaction_id": pushed["transaction_id"]}
    tx = (await api.get(f"/api/transactions/{pushed['transaction_id']}")).json()
    assert tx["status"] == COMPLETED
    assert tx["mpesa_receipt_number"] == "NLJ7RT61SV"
    assert "raw_callback" not in tx


async def test_structurally_invalid_callback_is_a_400(api):
    resp = await api.post("/api/callback", json={"Body": {"somethingElse": {}}})

    assert resp.status_code == 400
    assert resp.json()["error"] == "StructuralCallbackError"


async def test_non_json_callback_is_a_400(api):
    resp = await api.post("/api/callback", content=b"not json", headers={"content-type": "application/json"})

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "StructuralCallbackError",
        "message": "Callback body is not valid JSON",
    }


async def test_callback_for_unknown_checkout_is_a_404(api, success_callback):
    resp = await api.post("/api/callback", json=success_callback(checkout_request_id="ws_CO_unknown"))

    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


async def test_poll_timeout_is_a_504(api, fake_daraja):
    await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 10})
    fake_daraja.query_response = httpx.ReadTimeout("timed out")

    resp = await api.post("/api/stkquery", json={"checkout_request_id": "ws_CO_191220191020363925"})

    assert resp.status_code == 504
    assert resp.json()["error"] == "GatewayTimeout"


async def test_poll_returns_status(api):
    await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 10})

    resp = await api.post("/api/stkquery", json={"checkout_request_id": "ws_CO_191220191020363925"})

    assert resp.status_code == 200
    assert resp.json()["status"] == COMPLETED


async def test_poll_without_checkout_id_is_a_400(api):
    resp = await api.post("/api/stkquery", json={})

    assert resp.status_code == 400
    assert resp.json()["field"] == "checkout_request_id"


async def test_lookups(api):
    pushed = (await api.post("/api/stkpush", json={"phone_number": "0712345678", "amount": 10})).json()

    listed = await api.get("/api/transactions")
    by_phone = await api.get("/api/transactions/by-phone/0712345678")
    missing = await api.get("/api/transactions/nope")

    assert [tx["id"] for tx in listed.json()] == [pushed["transaction_id"]]
    assert by_phone.json()[0]["status"] == PENDING
    assert missing.status_code == 404


async def test_correlation_id_is_echoed(api):
    resp = await api.get("/api/transactions", headers={"x-correlation-id": "corr-123"})

    assert resp.headers["x-correlation-id"] == "corr-123"


async def test_correlation_id_is_generated_when_missing(api):
    first = await api.get("/api/transactions")
    second = await api.get("/api/transactions")

    assert first.headers["x-correlation-id"]
    assert first.headers["x-correlation-id"] != second.headers["x-correlation-id"]
