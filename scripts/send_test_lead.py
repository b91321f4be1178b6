#!/usr/bin/env python3
"""
Dev helper: send a sample lead to a lead-source webhook on the local backend.

Builds a payload in the shape a typical integration sends (flat form post,
WooCommerce order, Zapier hook, deeply nested custom payload) and POSTs it to
/api/webhooks/leads/<token>.

Usage
-----
# Flat form payload to localhost:8000
python scripts/send_test_lead.py --token <webhook_token>

# WooCommerce-style order (billing.* fields)
python scripts/send_test_lead.py --token <webhook_token> --shape woocommerce

# Nested payload that heuristic detection cannot read (exercises the AI layer)
python scripts/send_test_lead.py --token <webhook_token> --shape nested

# Send your own JSON file
python scripts/send_test_lead.py --token <webhook_token> --file payload.json

# Only check that the webhook URL is configured
python scripts/send_test_lead.py --token <webhook_token> --check

Environment / .env
------------------
LEAD_WEBHOOK_TOKEN   Default webhook token when --token is omitted.
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------

def _form_payload(email: str) -> dict:
    """Flat contact-form post (WordPress, Typeform, Webflow)."""
    return {
        "Full Name": "Jane Smith",
        "Email": email,
        "Phone Number": "+1 (555) 123-4567",
        "Company": "Acme Corp",
        "message": "Interested in a demo",
    }


def _woocommerce_payload(email: str) -> dict:
    """WooCommerce order webhook: contact details live under billing."""
    return {
        "id": 7341,
        "status": "processing",
        "currency": "USD",
        "total": "129.00",
        "billing": {
            "first_name": "Jane",
            "last_name": "Smith",
            "company": "Acme Corp",
            "email": email,
            "phone": "555-123-4567",
        },
    }


def _zapier_payload(email: str) -> dict:
    """Zapier catch-hook style: snake_case keys at the top level."""
    return {
        "first_name": "Jane",
        "last_name": "Smith",
        "customer_email": email,
        "contact_number": "5551234567",
        "organization": "Acme Corp",
    }


def _nested_payload(email: str) -> dict:
    """Unusual nested shape; no recognizable top-level keys."""
    return {
        "event": "submission.created",
        "data": {
            "respondent": {
                "contact": {"primary_address": email, "tel": "+44 20 7946 0958"},
                "identity": {"display": "Jane Smith"},
            },
            "meta": {"employer": "Acme Corp"},
        },
    }


_PAYLOAD_BUILDERS = {
    "form": _form_payload,
    "woocommerce": _woocommerce_payload,
    "zapier": _zapier_payload,
    "nested": _nested_payload,
}


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status < 300 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_lead.py",
        description="Send a sample lead to an IQLead webhook.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_lead.py --token abc123
              python scripts/send_test_lead.py --token abc123 --shape nested
              python scripts/send_test_lead.py --token abc123 --file payload.json
        """),
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--token",
        default=os.getenv("LEAD_WEBHOOK_TOKEN"),
        help="Lead source webhook token (default: LEAD_WEBHOOK_TOKEN env var)",
    )
    parser.add_argument(
        "--shape",
        default="form",
        choices=list(_PAYLOAD_BUILDERS),
        help="Sample payload shape (default: form)",
    )
    parser.add_argument(
        "--email",
        default="jane.smith@example.com",
        help="Email address placed in the sample payload",
    )
    parser.add_argument(
        "--file",
        default=None,
        metavar="PATH",
        help="Send the JSON in this file instead of a generated sample.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="GET the webhook URL to verify the token instead of sending a lead.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload JSON without sending it.",
    )

    args = parser.parse_args()

    if not args.token:
        print(
            "ERROR: No webhook token. Pass --token or set LEAD_WEBHOOK_TOKEN.",
            file=sys.stderr,
        )
        return 1

    endpoint = f"{args.url.rstrip('/')}/api/webhooks/leads/{args.token}"

    if args.file:
        file_path = Path(args.file)
        if not file_path.exists():
            print(f"ERROR: File not found: {file_path}", file=sys.stderr)
            return 1
        payload = json.loads(file_path.read_text())
    else:
        payload = _PAYLOAD_BUILDERS[args.shape](args.email)

    print(f"Endpoint: {endpoint}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    try:
        if args.check:
            response = httpx.get(endpoint, timeout=30)
        else:
            response = httpx.post(endpoint, json=payload, timeout=30)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1

    _print_response(response)
    return 0 if response.status_code < 300 else 1


if __name__ == "__main__":
    sys.exit(main())
