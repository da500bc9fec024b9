"""Poll one STK push through the running service and print the result JSON."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for manual reconciliation of a stuck transaction."""

    parser = argparse.ArgumentParser(description="Query STK push status for a CheckoutRequestID.")
    parser.add_argument("checkout_request_id")
    parser.add_argument("--base-url", default="http://localhost:9000")
    parser.add_argument("--timeout", type=float, default=15.0)
    args = parser.parse_args()

    resp = httpx.post(
        f"{args.base_url}/api/stkquery",
        json={"checkout_request_id": args.checkout_request_id},
        timeout=args.timeout,
    )
    print(json.dumps(resp.json(), indent=2))
    if resp.status_code >= 400:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
