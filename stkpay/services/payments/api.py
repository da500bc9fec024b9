"""HTTP routes for push initiation, callbacks, polling and minimal lookups.

Routes read their collaborators from `request.app.state` so the same router
serves the real process and tests.
"""

from time import perf_counter
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from stkpay.common.config import settings
from stkpay.common.errors import PaymentError, StructuralCallbackError
from stkpay.common.logging import logger, trace_id_ctx
from stkpay.common.metrics import http_request_duration_seconds, http_requests_total
from stkpay.services.payments.reconciliation import ReconciliationCoordinator
from stkpay.services.payments.schemas import (
    CallbackAck,
    InitiationResult,
    PollResult,
    StkPushRequest,
    StkQueryRequest,
    TransactionResponse,
)
from stkpay.services.payments.service import PaymentService

router = APIRouter(prefix="/api")


def _payments(request: Request) -> PaymentService:
    return request.app.state.payments


def _coordinator(request: Request) -> ReconciliationCoordinator:
    return request.app.state.reconciliation


async def payment_error_handler(_: Request, exc: PaymentError) -> JSONResponse:
    """Render any core failure as `{success: false, error, message, ...}`."""

    if exc.http_status >= 500:
        logger.error("request_failed error=%s message=%s", exc.error, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content={"success": False, "error": exc.error, "message": exc.message, **exc.details()},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PaymentError, payment_error_handler)


async def metrics_middleware(request: Request, call_next):
    """Record request count and latency for every HTTP call."""

    start = perf_counter()
    route = request.url.path
    method = request.method
    status_code = 500
    trace_id = request.headers.get("x-correlation-id") or str(uuid4())
    trace_id_ctx.set(trace_id)
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["x-correlation-id"] = trace_id
        route_obj = request.scope.get("route")
        if route_obj is not None and getattr(route_obj, "path", None):
            route = route_obj.path
        return response
    finally:
        elapsed = max(0.0, perf_counter() - start)
        http_request_duration_seconds.labels(
            service=settings.service_name,
            route=route,
            method=method,
        ).observe(elapsed)
        http_requests_total.labels(
            service=settings.service_name,
            route=route,
            method=method,
            status_code=str(status_code),
        ).inc()


@router.post("/stkpush", response_model=InitiationResult)
async def stk_push(req: StkPushRequest, request: Request):
    """Send an STK push prompt to the payer's phone."""

    return await _payments(request).initiate(req.phone_number, req.amount, req.reference)


@router.post("/callback", response_model=CallbackAck)
async def stk_callback(request: Request):
    """Gateway webhook carrying the final result of one STK push."""

    try:
        payload = await request.json()
    except ValueError as exc:
        raise StructuralCallbackError("Callback body is not valid JSON") from exc
    return await _coordinator(request).handle_callback(payload)


@router.post("/stkquery", response_model=PollResult)
async def stk_query(req: StkQueryRequest, request: Request):
    """Poll the gateway for a transaction whose callback has not arrived."""

    return await _coordinator(request).poll(req.checkout_request_id)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(request: Request, limit: int = Query(default=100, ge=1, le=500)):
    return await _payments(request).list_transactions(limit)


@router.get("/transactions/by-phone/{phone_number}", response_model=list[TransactionResponse])
async def transactions_by_phone(phone_number: str, request: Request):
    return await _payments(request).transactions_for_phone(phone_number)


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: str, request: Request):
    return await _payments(request).get_transaction(transaction_id)
