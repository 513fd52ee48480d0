"""Build a signed PayFast notification body for a pending donation.

Usage:
    PAYFAST_MERCHANT_ID=... PAYFAST_MERCHANT_KEY=... [PAYFAST_PASSPHRASE=...] \
        uv run python scripts/sign_test_notification.py <m_payment_id> <amount> [STATUS]

Prints a form-encoded body that can be POSTed to /webhooks/payfast/notify:

    curl -X POST -d "$(uv run python scripts/sign_test_notification.py CP-abc 99.99)" \
        -H "Content-Type: application/x-www-form-urlencoded" \
        http://localhost:8000/webhooks/payfast/notify

This script is for local/staging E2E validation only.
"""

from __future__ import annotations

import os
import sys
import uuid
from decimal import Decimal
from urllib.parse import urlencode


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: uv run python scripts/sign_test_notification.py <m_payment_id> <amount> [STATUS]")
        sys.exit(2)

    m_payment_id = sys.argv[1]
    amount = sys.argv[2]
    status = sys.argv[3] if len(sys.argv) > 3 else "COMPLETE"

    # Import after argument validation so usage errors stay cheap
    from churpay.payfast.config import ConfigurationError, load_config
    from churpay.payfast.intent import IntentBuildError, format_amount
    from churpay.payfast.signature import generate_signature

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if not config.sandbox and os.environ.get("ALLOW_LIVE") != "1":
        print("ERROR: refusing to sign for a live merchant (set ALLOW_LIVE=1)", file=sys.stderr)
        sys.exit(1)

    try:
        gross = Decimal(format_amount(amount))
    except IntentBuildError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    # Sandbox-like fee: 3.5% + R2.00, reported as a negative amount
    fee = -(gross * Decimal("0.035") + Decimal("2.00")).quantize(Decimal("0.01"))

    fields = {
        "m_payment_id": m_payment_id,
        "pf_payment_id": str(uuid.uuid4().int)[:7],
        "payment_status": status,
        "item_name": "ChurPay Donation",
        "amount_gross": f"{gross:.2f}",
        "amount_fee": f"{fee:.2f}",
        "amount_net": f"{gross + fee:.2f}",
        "merchant_id": config.merchant_id,
    }
    fields["signature"] = generate_signature(fields, config.passphrase)

    print(urlencode(fields))


if __name__ == "__main__":
    main()
