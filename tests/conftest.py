"""Shared fixtures: throwaway SQLite databases and an in-process fake Daraja."""

import json
import os
from datetime import datetime, timezone

os.environ.setdefault("DATABASE_DSN", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from stkpay.common.db import init_db
from stkpay.services.daraja.client import AUTH_PATH, STK_PUSH_PATH, STK_QUERY_PATH, DarajaClient
from stkpay.services.daraja.request_builder import PaymentRequestBuilder
from stkpay.services.payments.reconciliation import ReconciliationCoordinator
from stkpay.services.payments.service import PaymentService

BASE_URL = "https://sandbox.safaricom.co.ke"
FIXED_NOW = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)


class FakeDaraja:
    """Scriptable stand-in for the three Daraja endpoints.

    Each response slot is either `(status_code, json_body)` or an exception
    instance to raise for that call.
    """

    def __init__(self) -> None:
        self.token_calls = 0
        self.token_response = (200, {"access_token": "tok-1", "expires_in": "3599"})
        self.push_response = (
            200,
            {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": "ws_CO_191220191020363925",
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            },
        )
        self.query_response = (
            200,
            {
                "ResponseCode": "0",
                "ResponseDescription": "The service request has been accepted successsfully",
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": "ws_CO_191220191020363925",
                "ResultCode": "0",
                "ResultDesc": "The service request is processed successfully.",
            },
        )
        self.requests: list[httpx.Request] = []

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def bodies_to(self, path: str) -> list[dict]:
        return [json.loads(request.content) for request in self.calls_to(path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == AUTH_PATH:
            self.token_calls += 1
            slot = self.token_response
        elif path == STK_PUSH_PATH:
            slot = self.push_response
        elif path == STK_QUERY_PATH:
            slot = self.query_response
        else:
            return httpx.Response(404, json={"errorMessage": "unknown path"})
        if isinstance(slot, Exception):
            raise slot
        status_code, body = slot
        return httpx.Response(status_code, json=body)


@pytest.fixture
def fake_daraja() -> FakeDaraja:
    return FakeDaraja()


@pytest_asyncio.fixture
async def http_client(fake_daraja):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_daraja.handler)) as client:
        yield client


@pytest.fixture
def daraja_client(http_client) -> DarajaClient:
    return DarajaClient(
        http_client,
        base_url=BASE_URL,
        consumer_key="test_consumer_key",
        consumer_secret="test_consumer_secret",
        push_timeout_seconds=30.0,
        query_timeout_seconds=10.0,
    )


@pytest.fixture
def builder() -> PaymentRequestBuilder:
    return PaymentRequestBuilder(
        short_code="174379",
        passkey="test_passkey",
        callback_url="https://example.com/api/callback",
        clock=lambda: FIXED_NOW,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stkpay.db'}")
    await init_db(engine)
    yield async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def payment_service(session_factory, daraja_client, builder) -> PaymentService:
    return PaymentService(session_factory, daraja_client, builder)


@pytest.fixture
def coordinator(session_factory, daraja_client, builder) -> ReconciliationCoordinator:
    return ReconciliationCoordinator(session_factory, daraja_client, builder)


def _success_callback(
    checkout_request_id: str = "ws_CO_191220191020363925",
    amount=70000,
    receipt: str = "NLJ7RT61SV",
    phone_number=254712345678,
) -> dict:
    items = [
        {"Name": "MpesaReceiptNumber", "Value": receipt},
        {"Name": "Balance"},
        {"Name": "TransactionDate", "Value": 20261019120102},
        {"Name": "PhoneNumber", "Value": phone_number},
    ]
    if amount is not None:
        items.insert(0, {"Name": "Amount", "Value": amount})
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {"Item": items},
            }
        }
    }


def _failed_callback(checkout_request_id: str = "ws_CO_191220191020363925", result_code: int = 1032) -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result_code,
                "ResultDesc": "Request cancelled by user",
            }
        }
    }


@pytest.fixture
def success_callback():
    """Factory for a ResultCode 0 envelope with the usual metadata items."""

    return _success_callback


@pytest.fixture
def failed_callback():
    return _failed_callback
