"""Validation and signing of outbound STK push / status query requests."""

import base64
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from stkpay.common.config import settings
from stkpay.common.errors import ValidationError
from stkpay.services.daraja.schemas import PaymentRequest, StatusQueryRequest

MAX_REFERENCE_LENGTH = 12
CANONICAL_PHONE_LENGTH = 12


def normalize_phone_number(raw, country_prefix: str = "254") -> str:
    """Return the 12-digit canonical subscriber number.

    Accepted shapes: `07XXXXXXXX`, `7XXXXXXXX`, `+2547XXXXXXXX` and the
    canonical `2547XXXXXXXX` itself.
    """

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("phone_number", "MissingField", "Phone number is required")
    if isinstance(raw, bool):
        raise ValidationError("phone_number", "InvalidPhoneNumber", "Phone number must be digits")
    phone = str(raw).strip()

    if phone.startswith("0") and re.fullmatch(r"0[0-9]{9}", phone):
        phone = country_prefix + phone[1:]
    elif re.fullmatch(r"7[0-9]{8}", phone):
        phone = country_prefix + phone
    elif phone.startswith("+" + country_prefix):
        phone = phone[1:]

    if (
        len(phone) != CANONICAL_PHONE_LENGTH
        or not phone.startswith(country_prefix)
        or not re.fullmatch(r"[0-9]+", phone)
    ):
        raise ValidationError(
            "phone_number",
            "InvalidPhoneNumber",
            f"Invalid phone number format. Use format: {country_prefix}7XXXXXXXX",
        )
    return phone


def parse_amount(raw, min_amount: int, max_amount: int) -> int:
    """Parse, range-check against the closed bounds, then round to whole units."""

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("amount", "MissingField", "Amount is required")
    if isinstance(raw, bool):
        raise ValidationError("amount", "InvalidAmount", "Amount must be a valid number")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValidationError("amount", "InvalidAmount", "Amount must be a valid number") from None
    if not value.is_finite():
        raise ValidationError("amount", "InvalidAmount", "Amount must be a valid number")

    if value < min_amount or value > max_amount:
        raise ValidationError(
            "amount",
            "AmountOutOfRange",
            f"Amount must be between {min_amount} and {max_amount}",
        )
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def encode_password(short_code: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{short_code}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


class PaymentRequestBuilder:
    """Builds signed gateway requests from raw caller input.

    The password embeds the timestamp, so it is derived again for every
    request and never reused.
    """

    def __init__(
        self,
        short_code: str,
        passkey: str,
        callback_url: str,
        transaction_type: str = "CustomerPayBillOnline",
        transaction_desc: str = "Payment",
        country_prefix: str = "254",
        min_amount: int = 1,
        max_amount: int = 150_000,
        utc_offset_hours: int = 3,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.short_code = short_code
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_type = transaction_type
        self.transaction_desc = transaction_desc
        self.country_prefix = country_prefix
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.gateway_tz = timezone(timedelta(hours=utc_offset_hours))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls) -> "PaymentRequestBuilder":
        return cls(
            short_code=settings.daraja_short_code,
            passkey=settings.daraja_passkey,
            callback_url=settings.daraja_callback_url,
            transaction_type=settings.daraja_transaction_type,
            transaction_desc=settings.daraja_transaction_desc,
            country_prefix=settings.phone_country_prefix,
            min_amount=settings.min_amount,
            max_amount=settings.max_amount,
            utc_offset_hours=settings.daraja_utc_offset_hours,
        )

    def timestamp(self) -> str:
        return self._clock().astimezone(self.gateway_tz).strftime("%Y%m%d%H%M%S")

    def normalize_phone(self, raw) -> str:
        return normalize_phone_number(raw, self.country_prefix)

    def build(self, phone_number, amount, reference: str | None = None) -> PaymentRequest:
        phone = self.normalize_phone(phone_number)
        whole_amount = parse_amount(amount, self.min_amount, self.max_amount)
        account_reference = self._account_reference(reference, phone)
        timestamp = self.timestamp()
        return PaymentRequest(
            phone_number=phone,
            amount=whole_amount,
            account_reference=account_reference,
            transaction_desc=self.transaction_desc,
            business_short_code=self.short_code,
            transaction_type=self.transaction_type,
            callback_url=self.callback_url,
            timestamp=timestamp,
            password=encode_password(self.short_code, self.passkey, timestamp),
        )

    def build_status_query(self, checkout_request_id: str) -> StatusQueryRequest:
        if not checkout_request_id or not str(checkout_request_id).strip():
            raise ValidationError("checkout_request_id", "MissingField", "CheckoutRequestID is required")
        timestamp = self.timestamp()
        return StatusQueryRequest(
            business_short_code=self.short_code,
            checkout_request_id=str(checkout_request_id).strip(),
            timestamp=timestamp,
            password=encode_password(self.short_code, self.passkey, timestamp),
        )

    def _account_reference(self, reference: str | None, phone: str) -> str:
        if reference is None:
            return phone
        value = str(reference).strip()
        if not value or len(value) > MAX_REFERENCE_LENGTH:
            raise ValidationError(
                "reference",
                "InvalidReference",
                f"Reference must be 1 to {MAX_REFERENCE_LENGTH} characters",
            )
        return value
