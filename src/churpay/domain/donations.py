"""Donation start: persist a pending transaction and build the PayFast redirect.

The pending row must exist before the donor leaves for the gateway, so the
notification has something to reconcile against. Both steps share the
caller's transaction; a build failure rolls the insert back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from churpay.domain.fees import calculate_platform_fees
from churpay.infra.repositories.transactions_repository import insert_pending_transaction
from churpay.payfast.config import PayFastConfig
from churpay.payfast.intent import PaymentIntentRequest, build_payment_url, format_amount

DEFAULT_CURRENCY = "ZAR"


@dataclass(frozen=True)
class Donation:
    church_id: str
    amount: Decimal
    item_name: str
    project_id: str | None = None
    user_id: str | None = None
    item_description: str | None = None
    donation_type: str = "general"


@dataclass(frozen=True)
class StartedDonation:
    transaction_id: str
    payment_reference: str
    payment_url: str
    amount: Decimal
    platform_fee: Decimal


def _new_payment_reference() -> str:
    return f"CP-{uuid.uuid4().hex}"


def start_donation(cur: PgCursor, donation: Donation, config: PayFastConfig) -> StartedDonation:
    """Create the pending transaction and return the signed redirect URL.

    Correlation fields echoed back by the gateway:
    - m_payment_id: payment reference
    - custom_str1: church id
    - custom_str2: project id
    - custom_str3: transaction id
    - custom_str4: donor user id

    Raises:
        IntentBuildError: If the amount or any intent field is invalid.
    """
    # Validate and normalise before touching the database
    amount = Decimal(format_amount(donation.amount))
    fees = calculate_platform_fees(amount)
    payment_reference = _new_payment_reference()

    transaction_id = insert_pending_transaction(
        cur,
        church_id=donation.church_id,
        project_id=donation.project_id,
        user_id=donation.user_id,
        amount=amount,
        currency=DEFAULT_CURRENCY,
        description=donation.item_description,
        donation_type=donation.donation_type,
        payment_reference=payment_reference,
        platform_fee=fees.platform_fee,
    )

    intent = PaymentIntentRequest(
        amount=amount,
        item_name=donation.item_name,
        item_description=donation.item_description,
        m_payment_id=payment_reference,
        custom_str=[
            donation.church_id,
            donation.project_id,
            transaction_id,
            donation.user_id,
        ],
    )
    payment_url = build_payment_url(intent, config)

    return StartedDonation(
        transaction_id=transaction_id,
        payment_reference=payment_reference,
        payment_url=payment_url,
        amount=amount,
        platform_fee=fees.platform_fee,
    )
