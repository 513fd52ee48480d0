"""Donation endpoints - start a PayFast payment for a church donation.

Donors only ever see "could not start payment" on failure; details stay in
the logs.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from churpay.domain.donations import Donation, start_donation
from churpay.infra.db import txn
from churpay.observability.correlation import get_correlation_id
from churpay.observability.logging import get_logger
from churpay.observability.redaction import safe_log_context
from churpay.payfast.intent import IntentBuildError

router = APIRouter(prefix="/donations", tags=["donations"])

logger = get_logger(__name__)

_GENERIC_FAILURE = "could not start payment"


class PayFastDonationRequest(BaseModel):
    church_id: UUID
    amount: Decimal
    item_name: str = Field(default="ChurPay Donation", min_length=1, max_length=200)
    item_description: str | None = Field(default=None, max_length=500)
    project_id: UUID | None = None
    user_id: str | None = Field(default=None, max_length=255)
    donation_type: Literal["general", "tithe", "offering", "project"] = "general"


class PayFastDonationResponse(BaseModel):
    transaction_id: str
    payment_reference: str
    payment_url: str
    amount: str
    platform_fee: str


@router.post("/payfast", response_model=PayFastDonationResponse, status_code=201)
def create_payfast_donation(
    body: PayFastDonationRequest,
    request: Request,
) -> PayFastDonationResponse:
    """Create a pending transaction and return the PayFast redirect URL.

    Raises:
        400: Amount or intent fields rejected.
        500: Database error.
    """
    correlation_id = get_correlation_id()
    config = request.app.state.payfast_config

    donation = Donation(
        church_id=str(body.church_id),
        project_id=str(body.project_id) if body.project_id else None,
        user_id=body.user_id,
        amount=body.amount,
        item_name=body.item_name,
        item_description=body.item_description,
        donation_type=body.donation_type,
    )

    try:
        with txn() as cur:
            started = start_donation(cur, donation, config)
    except IntentBuildError as e:
        logger.warning(
            "payfast intent rejected",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    church_id=donation.church_id,
                    reason=str(e),
                )
            },
        )
        raise HTTPException(status_code=400, detail=_GENERIC_FAILURE)
    except Exception:
        logger.exception(
            "payfast intent persistence failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    church_id=donation.church_id,
                )
            },
        )
        raise HTTPException(status_code=500, detail=_GENERIC_FAILURE)

    logger.info(
        "payfast donation started",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                church_id=donation.church_id,
                transaction_id=started.transaction_id,
                amount=str(started.amount),
            )
        },
    )

    return PayFastDonationResponse(
        transaction_id=started.transaction_id,
        payment_reference=started.payment_reference,
        payment_url=started.payment_url,
        amount=str(started.amount),
        platform_fee=str(started.platform_fee),
    )
