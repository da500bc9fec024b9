"""Post a synthetic Daraja STK callback to the running service.

Useful in sandbox runs where the gateway cannot reach a local callback URL,
and for duplicate / out-of-order delivery testing.
"""

import argparse
import json
from datetime import datetime

import httpx


def build_envelope(
    checkout_request_id: str,
    merchant_request_id: str,
    result_code: int,
    amount: int | None,
    phone_number: str | None,
    receipt: str,
) -> dict:
    """Return a callback body shaped like the gateway's `Body.stkCallback`."""

    callback = {
        "MerchantRequestID": merchant_request_id,
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": (
            "The service request is processed successfully."
            if result_code == 0
            else "Request cancelled by user"
        ),
    }
    if result_code == 0:
        items = [
            {"Name": "MpesaReceiptNumber", "Value": receipt},
            {"Name": "TransactionDate", "Value": int(datetime.now().strftime("%Y%m%d%H%M%S"))},
        ]
        if amount is not None:
            items.insert(0, {"Name": "Amount", "Value": amount})
        if phone_number is not None:
            items.append({"Name": "PhoneNumber", "Value": int(phone_number)})
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}


def main() -> None:
    """Parse CLI args and post one callback envelope."""

    parser = argparse.ArgumentParser(description="Send a synthetic STK callback.")
    parser.add_argument("checkout_request_id")
    parser.add_argument("--merchant-request-id", default="simulated-merchant-request")
    parser.add_argument("--result-code", type=int, default=0, help="0 for success, e.g. 1032 for cancelled")
    parser.add_argument("--amount", type=int, default=None)
    parser.add_argument("--phone-number", default=None)
    parser.add_argument("--receipt", default="SIM0000000")
    parser.add_argument("--base-url", default="http://localhost:9000")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same callback N times")
    args = parser.parse_args()

    envelope = build_envelope(
        args.checkout_request_id,
        args.merchant_request_id,
        args.result_code,
        args.amount,
        args.phone_number,
        args.receipt,
    )
    with httpx.Client(timeout=10.0) as client:
        for attempt in range(1, args.repeat + 1):
            resp = client.post(f"{args.base_url}/api/callback", json=envelope)
            print(f"attempt={attempt} status_code={resp.status_code} body={json.dumps(resp.json())}")


if __name__ == "__main__":
    main()
