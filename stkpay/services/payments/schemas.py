"""API request/response schemas for the payments endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class StkPushRequest(BaseModel):
    """Push initiation intent; field validation happens in the request builder."""

    phone_number: str | int | None = None
    amount: str | int | float | None = None
    reference: str | None = None


class StkQueryRequest(BaseModel):
    checkout_request_id: str | None = None


class InitiationResult(BaseModel):
    accepted: bool
    transaction_id: str
    checkout_request_id: str
    merchant_request_id: str
    description: str
    message: str = "Payment has been initiated, please check your phone to proceed."


class CallbackAck(BaseModel):
    status: str
    transaction_id: str


class PollResult(BaseModel):
    checkout_request_id: str
    status: str
    result_code: str | None = None
    result_desc: str | None = None
    receipt_number: str | None = None
    transaction_date: datetime | None = None


class TransactionResponse(BaseModel):
    """Read model for lookups; the raw callback payload is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    phone_number: str
    amount: int
    account_reference: str | None
    status: str
    merchant_request_id: str
    checkout_request_id: str
    mpesa_receipt_number: str | None
    result_code: str | None
    result_desc: str | None
    transaction_date: datetime | None
    initiated_at: datetime
    callback_received_at: datetime | None
    last_checked_at: datetime | None
