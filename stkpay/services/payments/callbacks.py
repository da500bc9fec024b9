"""Boundary parser for Daraja STK callbacks.

Turns the raw `Body.stkCallback` envelope into a typed `ParsedCallback`
before anything reaches reconciliation. Free-form `CallbackMetadata.Item`
name/value pairs are mapped through a fixed table of known fields.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from stkpay.common.errors import StructuralCallbackError
from stkpay.common.logging import logger
from stkpay.common.state_machine import is_success_code


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CallbackItem(_WireModel):
    name: str = Field(alias="Name")
    value: Any = Field(default=None, alias="Value")


class CallbackMetadataBlock(_WireModel):
    items: list[CallbackItem] = Field(default_factory=list, alias="Item")


class StkCallback(_WireModel):
    merchant_request_id: str = Field(alias="MerchantRequestID", min_length=1)
    checkout_request_id: str = Field(alias="CheckoutRequestID", min_length=1)
    result_code: int | str = Field(alias="ResultCode")
    result_desc: str = Field(alias="ResultDesc")
    callback_metadata: CallbackMetadataBlock | None = Field(default=None, alias="CallbackMetadata")


class CallbackBody(_WireModel):
    stk_callback: StkCallback = Field(alias="stkCallback")


class CallbackEnvelope(_WireModel):
    body: CallbackBody = Field(alias="Body")


class CallbackMetadata(BaseModel):
    """Success-only details the gateway reports about the actual charge."""

    receipt_number: str | None = None
    amount: int | None = None
    phone_number: str | None = None
    transaction_date: datetime | None = None


class ParsedCallback(BaseModel):
    merchant_request_id: str
    checkout_request_id: str
    result_code: str
    result_desc: str
    metadata: CallbackMetadata | None = None

    @property
    def succeeded(self) -> bool:
        return is_success_code(self.result_code)


def _as_text(value: Any, _: timezone) -> str:
    text = str(value).strip()
    if not text:
        raise ValueError("empty value")
    return text


def _as_whole_amount(value: Any, _: timezone) -> int:
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def _as_gateway_datetime(value: Any, tz: timezone) -> datetime:
    return datetime.strptime(str(value).strip(), "%Y%m%d%H%M%S").replace(tzinfo=tz)


_METADATA_FIELDS: dict[str, tuple[str, Callable[[Any, timezone], Any]]] = {
    "MpesaReceiptNumber": ("receipt_number", _as_text),
    "Amount": ("amount", _as_whole_amount),
    "PhoneNumber": ("phone_number", _as_text),
    "TransactionDate": ("transaction_date", _as_gateway_datetime),
}


def extract_metadata(block: CallbackMetadataBlock | None, tz: timezone) -> CallbackMetadata | None:
    if block is None:
        return None
    fields: dict[str, Any] = {}
    for item in block.items:
        known = _METADATA_FIELDS.get(item.name)
        if known is None or item.value is None:
            continue
        attr, convert = known
        try:
            fields[attr] = convert(item.value, tz)
        except ValueError as exc:
            logger.warning("callback_metadata_item_ignored name=%s error=%s", item.name, exc)
    return CallbackMetadata(**fields)


def parse_callback(payload: Any, utc_offset_hours: int = 3) -> ParsedCallback:
    """Validate the callback envelope; raise StructuralCallbackError on any shape problem."""

    if not isinstance(payload, dict):
        raise StructuralCallbackError("Invalid callback structure")
    try:
        envelope = CallbackEnvelope.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise StructuralCallbackError(f"Invalid callback structure: {exc.error_count()} error(s)") from exc

    callback = envelope.body.stk_callback
    result_code = str(callback.result_code).strip()
    metadata = None
    if is_success_code(result_code):
        metadata = extract_metadata(
            callback.callback_metadata,
            timezone(timedelta(hours=utc_offset_hours)),
        )
    return ParsedCallback(
        merchant_request_id=callback.merchant_request_id,
        checkout_request_id=callback.checkout_request_id,
        result_code=result_code,
        result_desc=callback.result_desc,
        metadata=metadata,
    )
