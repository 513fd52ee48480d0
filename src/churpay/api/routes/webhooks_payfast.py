"""PayFast webhook routes - public endpoint for instant payment notifications.

Security rules:
- Validate structure, signature and merchant id before any database access.
- Never log the raw body; notification fields go through redact_gateway_params.
- Rejections answer 200 "ok" (externally identical, no retry storms).
- Return 5xx only when the store fails, so the gateway retries delivery.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response

from churpay.domain.reconciliation import OUTCOME_DUPLICATE, reconcile_notification
from churpay.infra.db import txn
from churpay.notifications.receipts import OutboxReceiptNotifier, ReceiptNotifier
from churpay.observability.correlation import get_correlation_id
from churpay.observability.logging import get_logger
from churpay.observability.redaction import redact_gateway_params, safe_log_context
from churpay.payfast.notification import (
    RejectedNotification,
    RejectionKind,
    parse_notification_body,
    validate_notification,
)

router = APIRouter(prefix="/webhooks/payfast", tags=["webhooks"])

logger = get_logger(__name__)


def _get_receipt_notifier(correlation_id: str | None) -> ReceiptNotifier:
    """Get receipt notifier instance (allows test injection)."""
    return OutboxReceiptNotifier(correlation_id=correlation_id)


def _log_rejection(rejection: RejectedNotification, correlation_id: str) -> None:
    # Malformed input is routine bot traffic; a bad signature or foreign
    # merchant id is either an attack or a misconfiguration.
    level = logging.WARNING if rejection.kind is RejectionKind.MALFORMED else logging.ERROR
    context = safe_log_context(
        correlationId=correlation_id,
        kind=rejection.kind.value,
        reason=rejection.reason,
    )
    context["notification"] = redact_gateway_params(rejection.fields)
    logger.log(level, "payfast notification rejected", extra={"extra_fields": context})


@router.post("/notify")
async def payfast_notify(request: Request) -> Response:
    """Receive a PayFast notification.

    Returns:
        200 "ok" if processed or rejected.
        200 "duplicate" if this notification was already processed.
        400 if the request body could not be read.
        500 if persistence failed (gateway retries).
    """
    correlation_id = get_correlation_id()

    try:
        body = await request.body()
    except Exception:
        logger.warning(
            "failed to read request body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid body")

    raw = parse_notification_body(body, request.headers.get("content-type"))
    config = request.app.state.payfast_config

    result = validate_notification(raw, config)
    if isinstance(result, RejectedNotification):
        _log_rejection(result, correlation_id)
        return Response(status_code=200, content="ok")

    notification = result.notification

    logger.info(
        "payfast notification verified",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                pf_payment_id=notification.pf_payment_id,
                payment_status=notification.payment_status,
            )
        },
    )

    try:
        with txn() as cur:
            outcome = reconcile_notification(
                cur,
                notification,
                receipt_notifier=_get_receipt_notifier(correlation_id),
                correlation_id=correlation_id,
            )
    except Exception:
        # Transaction rolled back - do NOT return 2xx
        logger.exception(
            "payfast notification processing failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    pf_payment_id=notification.pf_payment_id,
                )
            },
        )
        return Response(status_code=500, content="processing failed")

    if outcome.outcome == OUTCOME_DUPLICATE:
        return Response(status_code=200, content="duplicate")

    return Response(status_code=200, content="ok")
