"""Async Daraja client: OAuth token fetch, STK push, STK push status query.

Every call is bounded by its own timeout and performed once; retrying is the
caller's decision. Provider error codes are passed through untouched.
"""

import time
from typing import Any

import httpx

from stkpay.common.config import settings
from stkpay.common.errors import (
    AuthenticationFailure,
    GatewayProtocolError,
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
)
from stkpay.common.logging import logger
from stkpay.common.metrics import gateway_request_duration_seconds, token_refresh_total
from stkpay.common.state_machine import is_success_code
from stkpay.services.daraja.schemas import (
    PaymentRequest,
    PushAcknowledgement,
    StatusQueryRequest,
    StatusQueryResult,
)
from stkpay.services.daraja.token_cache import CredentialTokenCache

AUTH_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"


class DarajaClient:
    """Owns the shared credential cache and the three outbound calls."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        auth_timeout_seconds: float = 10.0,
        push_timeout_seconds: float = 30.0,
        query_timeout_seconds: float = 10.0,
        token_refresh_margin_seconds: float = 60.0,
        service_name: str = "stkpay",
    ) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.auth_timeout = auth_timeout_seconds
        self.push_timeout = push_timeout_seconds
        self.query_timeout = query_timeout_seconds
        self.service_name = service_name
        self.tokens = CredentialTokenCache(self.fetch_token, refresh_margin_seconds=token_refresh_margin_seconds)

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient) -> "DarajaClient":
        return cls(
            http,
            base_url=settings.daraja_base_url,
            consumer_key=settings.daraja_consumer_key,
            consumer_secret=settings.daraja_consumer_secret,
            auth_timeout_seconds=settings.auth_timeout_seconds,
            push_timeout_seconds=settings.push_timeout_seconds,
            query_timeout_seconds=settings.query_timeout_seconds,
            token_refresh_margin_seconds=settings.token_refresh_margin_seconds,
            service_name=settings.service_name,
        )

    async def fetch_token(self) -> tuple[str, float]:
        """Request a fresh bearer credential; any failure is an AuthenticationFailure."""

        try:
            resp = await self.http.get(
                f"{self.base_url}{AUTH_PATH}",
                params={"grant_type": "client_credentials"},
                auth=httpx.BasicAuth(self.consumer_key, self.consumer_secret),
                timeout=self.auth_timeout,
            )
        except httpx.HTTPError as exc:
            token_refresh_total.labels(service=self.service_name, outcome="transport_error").inc()
            logger.error("token_fetch_failed error=%s", type(exc).__name__)
            raise AuthenticationFailure("Failed to authenticate with the payment gateway") from exc

        if resp.status_code >= 400:
            token_refresh_total.labels(service=self.service_name, outcome="rejected").inc()
            logger.error("token_fetch_rejected status_code=%s", resp.status_code)
            raise AuthenticationFailure(f"Gateway auth endpoint answered {resp.status_code}")

        try:
            body = resp.json()
            access_token = body["access_token"]
            expires_in = float(body["expires_in"])
        except (ValueError, KeyError, TypeError) as exc:
            token_refresh_total.labels(service=self.service_name, outcome="malformed").inc()
            logger.error("token_fetch_malformed_body")
            raise AuthenticationFailure("Gateway auth response was malformed") from exc
        if not isinstance(access_token, str) or not access_token:
            token_refresh_total.labels(service=self.service_name, outcome="malformed").inc()
            raise AuthenticationFailure("Gateway auth response was malformed")

        token_refresh_total.labels(service=self.service_name, outcome="ok").inc()
        return access_token, expires_in

    async def initiate_push(self, req: PaymentRequest) -> PushAcknowledgement:
        body = await self._post("stk_push", STK_PUSH_PATH, req.to_wire(), self.push_timeout)
        response_code = body.get("ResponseCode")
        if response_code is None:
            raise GatewayProtocolError("STK push response carried no ResponseCode")
        accepted = is_success_code(response_code)
        checkout_request_id = body.get("CheckoutRequestID")
        merchant_request_id = body.get("MerchantRequestID")
        if accepted and not (checkout_request_id and merchant_request_id):
            raise GatewayProtocolError("Accepted STK push response carried no request ids")
        return PushAcknowledgement(
            checkout_request_id=checkout_request_id or "",
            merchant_request_id=merchant_request_id or "",
            accepted=accepted,
            response_code=str(response_code),
            description=body.get("ResponseDescription") or body.get("CustomerMessage") or "",
        )

    async def query_status(self, query: StatusQueryRequest) -> StatusQueryResult:
        body = await self._post("stk_query", STK_QUERY_PATH, query.to_wire(), self.query_timeout)
        result_code = body.get("ResultCode")
        if result_code is None:
            raise GatewayProtocolError("STK query response carried no ResultCode")
        return StatusQueryResult(result_code=str(result_code), result_desc=str(body.get("ResultDesc") or ""))

    async def _post(self, operation: str, path: str, payload: dict, timeout: float) -> dict[str, Any]:
        token = await self.tokens.get_token()
        started = time.perf_counter()
        outcome = "ok"
        try:
            resp = await self.http.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            outcome = "timeout"
            logger.warning("gateway_timeout operation=%s timeout_s=%s", operation, timeout)
            raise GatewayTimeout(f"Gateway did not answer {operation} within {timeout}s") from exc
        except httpx.TransportError as exc:
            outcome = "unavailable"
            logger.warning("gateway_unavailable operation=%s error=%s", operation, type(exc).__name__)
            raise GatewayUnavailable(f"Gateway unreachable during {operation}") from exc
        finally:
            gateway_request_duration_seconds.labels(
                service=self.service_name,
                operation=operation,
                outcome=outcome,
            ).observe(max(0.0, time.perf_counter() - started))

        body = _json_or_empty(resp)
        if resp.status_code == 401:
            self.tokens.invalidate()
        if resp.status_code >= 400:
            code = body.get("errorCode") or body.get("ResponseCode") or str(resp.status_code)
            description = body.get("errorMessage") or body.get("ResponseDescription") or resp.text
            logger.warning(
                "gateway_rejected operation=%s status_code=%s gateway_code=%s",
                operation,
                resp.status_code,
                code,
            )
            raise GatewayRejected(str(code), str(description))
        if not body:
            raise GatewayProtocolError(f"Gateway returned an empty or non-JSON {operation} body")
        return body


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
