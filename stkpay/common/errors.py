"""Typed failures raised by the payment core.

Every error carries the HTTP status and machine-readable code the router
renders; none of them is fatal to the process.
"""

from typing import Any


class PaymentError(Exception):
    """Base class for per-request failures."""

    http_status = 500
    error = "PaymentError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}


class ValidationError(PaymentError):
    """Caller-fixable input problem on one field."""

    http_status = 400
    error = "ValidationError"

    def __init__(self, field: str, reason: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.reason = reason

    def details(self) -> dict[str, Any]:
        return {"field": self.field, "reason": self.reason}


class AuthenticationFailure(PaymentError):
    """The gateway credential could not be obtained."""

    http_status = 502
    error = "AuthenticationFailure"


class GatewayError(PaymentError):
    """Outbound gateway call did not produce a usable answer."""

    http_status = 502
    error = "GatewayError"
    retryable = False


class GatewayTimeout(GatewayError):
    """The gateway did not answer within the bounded timeout."""

    http_status = 504
    error = "GatewayTimeout"
    retryable = True


class GatewayUnavailable(GatewayError):
    """Connection-level failure before any response arrived."""

    http_status = 503
    error = "GatewayUnavailable"
    retryable = True


class GatewayRejected(GatewayError):
    """The gateway answered and said no; code and description are opaque."""

    error = "GatewayRejected"

    def __init__(self, code: str | None, description: str) -> None:
        super().__init__(description or "gateway rejected the request")
        self.code = code
        self.description = description

    def details(self) -> dict[str, Any]:
        return {"gateway_code": self.code, "gateway_description": self.description}


class GatewayProtocolError(GatewayError):
    """A 2xx gateway response was missing fields the protocol requires."""

    error = "GatewayProtocolError"


class StructuralCallbackError(PaymentError):
    """Callback body does not carry the `Body.stkCallback` envelope."""

    http_status = 400
    error = "StructuralCallbackError"


class NotFound(PaymentError):
    http_status = 404
    error = "NotFound"
