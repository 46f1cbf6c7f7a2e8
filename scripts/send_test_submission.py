#!/usr/bin/env python3
"""
Dev helper: post a sample form submission to the local Zira Forms backend.

Builds a contact or career form payload and POST-s it to
/api/form-emails/send with a bearer token and an Origin header, then
prints the per-rule summary the backend returns.

Usage
-----
# Contact form against localhost:8000
python scripts/send_test_submission.py --token $ACCESS_TOKEN

# Career application with a CV link
python scripts/send_test_submission.py --form-type career_application --email me@example.com

# Product-specific contact form
python scripts/send_test_submission.py --form-type zira_homes_contact

# Extra fields
python scripts/send_test_submission.py --field budget_range='$5k-$10k' --field timeline=Q3

Environment / .env
------------------
FORM_TEST_ACCESS_TOKEN   Supabase access token used when --token is omitted.
FORM_TEST_ORIGIN         Origin header to send (default: http://localhost:5173).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


_SAMPLE_FIELDS = {
    "contact": {
        "name": "Jane Doe",
        "phone": "+254700000000",
        "company": "Acme Ltd",
        "service_interest": "Website development",
        "message": "We would like a quote for a new company website.",
    },
    "career": {
        "name": "Jane Doe",
        "phone": "+254700000000",
        "position": "Backend Engineer",
        "cv_file_url": "https://example.com/cv/jane-doe.pdf",
        "message": "I would love to join the Zira engineering team.",
    },
}


def build_payload(form_type: str, email: str, extra_fields: list[str]) -> dict:
    """Sample fields for the form type, overridden by ``key=value`` pairs."""
    sample = "career" if any(m in form_type.lower() for m in ("career", "job", "application")) else "contact"
    payload = {"form_type": form_type, "email": email, **_SAMPLE_FIELDS[sample]}
    for pair in extra_fields:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"--field expects key=value, got {pair!r}")
        payload[key.strip()] = value
    return payload


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_submission.py",
        description="Post a sample form submission to the Zira Forms backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_submission.py --token $ACCESS_TOKEN
              python scripts/send_test_submission.py --form-type career_application
              python scripts/send_test_submission.py --dry-run
        """),
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--form-type", default="contact", help="Raw form type (default: contact)")
    parser.add_argument("--email", default="jane@example.com", help="Submitter email address")
    parser.add_argument(
        "--field",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra submission field; may be repeated",
    )
    parser.add_argument("--token", default=None, help="Supabase access token")
    parser.add_argument(
        "--origin",
        default=os.getenv("FORM_TEST_ORIGIN", "http://localhost:5173"),
        help="Origin header (default: http://localhost:5173)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the payload without sending it.")

    args = parser.parse_args()

    try:
        payload = build_payload(args.form_type, args.email, args.field)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    endpoint = f"{args.url.rstrip('/')}/api/form-emails/send"
    print(f"Endpoint  : {endpoint}")
    print(f"Form type : {args.form_type}")
    print(f"Origin    : {args.origin}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    token = args.token or os.getenv("FORM_TEST_ACCESS_TOKEN")
    if not token:
        print(
            "ERROR: No access token found.\n"
            "Set FORM_TEST_ACCESS_TOKEN in your environment or .env file, or pass --token.",
            file=sys.stderr,
        )
        return 1

    headers = {"Authorization": f"Bearer {token}", "Origin": args.origin}
    try:
        response = httpx.post(endpoint, json=payload, headers=headers, timeout=30.0)
    except httpx.HTTPError as e:
        print(f"\n[FAIL] Request error: {e}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
