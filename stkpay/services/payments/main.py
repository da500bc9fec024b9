"""Process entrypoint: wires config, logging, tracing, DB and the gateway client."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from stkpay.common.config import settings
from stkpay.common.db import SessionLocal, engine
from stkpay.common.logging import configure_logging
from stkpay.common.metrics import metrics_response
from stkpay.common.startup import log_startup_config
from stkpay.common.tracing import instrument_app, instrument_gateway_client, setup_tracing
from stkpay.services.daraja.client import DarajaClient
from stkpay.services.daraja.request_builder import PaymentRequestBuilder
from stkpay.services.payments.api import metrics_middleware, register_error_handlers, router
from stkpay.services.payments.reconciliation import ReconciliationCoordinator
from stkpay.services.payments.service import PaymentService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(settings.service_name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Share one HTTP connection pool and one token cache for the process lifetime."""

    http = httpx.AsyncClient()
    instrument_gateway_client(http)
    client = DarajaClient.from_settings(http)
    builder = PaymentRequestBuilder.from_settings()
    app.state.payments = PaymentService(SessionLocal, client, builder, settings.service_name)
    app.state.reconciliation = ReconciliationCoordinator(
        SessionLocal,
        client,
        builder,
        service_name=settings.service_name,
        utc_offset_hours=settings.daraja_utc_offset_hours,
    )
    yield
    await http.aclose()
    await engine.dispose()


app = FastAPI(title="STK Push Payments", lifespan=lifespan)
app.middleware("http")(metrics_middleware)
register_error_handlers(app)
app.include_router(router)
instrument_app(app)


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()
