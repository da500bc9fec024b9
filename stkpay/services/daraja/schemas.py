"""Daraja wire payloads and the typed results the client hands back."""

from pydantic import BaseModel, Field


class PaymentRequest(BaseModel):
    """Signed, timestamped STK push request; built per call, never persisted."""

    phone_number: str
    amount: int
    account_reference: str
    transaction_desc: str
    business_short_code: str
    transaction_type: str
    callback_url: str
    timestamp: str
    password: str = Field(repr=False)

    def to_wire(self) -> dict:
        return {
            "BusinessShortCode": self.business_short_code,
            "Password": self.password,
            "Timestamp": self.timestamp,
            "TransactionType": self.transaction_type,
            "Amount": self.amount,
            "PartyA": self.phone_number,
            "PartyB": self.business_short_code,
            "PhoneNumber": self.phone_number,
            "CallBackURL": self.callback_url,
            "AccountReference": self.account_reference,
            "TransactionDesc": self.transaction_desc,
        }


class StatusQueryRequest(BaseModel):
    """STK push status query for one checkout id."""

    business_short_code: str
    checkout_request_id: str
    timestamp: str
    password: str = Field(repr=False)

    def to_wire(self) -> dict:
        return {
            "BusinessShortCode": self.business_short_code,
            "Password": self.password,
            "Timestamp": self.timestamp,
            "CheckoutRequestID": self.checkout_request_id,
        }


class PushAcknowledgement(BaseModel):
    """Gateway answer to a push request; `accepted` only for ResponseCode "0"."""

    checkout_request_id: str
    merchant_request_id: str
    accepted: bool
    response_code: str
    description: str


class StatusQueryResult(BaseModel):
    result_code: str
    result_desc: str
