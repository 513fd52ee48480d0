"""Apply an authenticated PayFast notification to the donation transaction.

Only AuthenticNotification payloads reach this module; the webhook route
rejects everything else before opening a database transaction.

Guarantees:
- Redelivery of the same (pf_payment_id, payment_status) is a no-op.
- A pending transaction moves to a terminal status at most once
  (conditional UPDATE ... WHERE status = 'pending').
- The receipt notifier is called exactly once, on first-time completion.
- Terminal transactions are never overwritten; disagreements are logged
  for manual review.
- A settled transaction reported again under a different pf_payment_id is a
  second gateway payment, not a redelivery, and is flagged the same way.
- Nothing is created from notification data alone.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from churpay.infra.repositories.notifications_repository import (
    record_notification,
    set_notification_outcome,
)
from churpay.infra.repositories.transactions_repository import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    get_transaction_by_id,
    get_transaction_by_reference,
    transition_pending_transaction,
)
from churpay.notifications.receipts import ReceiptNotifier
from churpay.observability.logging import get_logger
from churpay.observability.redaction import redact_gateway_params, safe_log_context
from churpay.payfast.notification import GatewayNotification

logger = get_logger(__name__)

# Gateway payment_status -> transactions.status
PAYMENT_STATUS_MAP = {
    "COMPLETE": STATUS_COMPLETED,
    "FAILED": STATUS_FAILED,
    "CANCELLED": STATUS_FAILED,
    "PENDING": STATUS_PENDING,
}

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_PENDING = "pending"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_ORPHANED = "orphaned"
OUTCOME_UNKNOWN_STATUS = "unknown_status"
OUTCOME_CONFLICT = "conflict"
OUTCOME_AMOUNT_MISMATCH = "amount_mismatch"
OUTCOME_SECOND_PAYMENT = "second_payment"

ANOMALY_OUTCOMES = {
    OUTCOME_ORPHANED,
    OUTCOME_UNKNOWN_STATUS,
    OUTCOME_CONFLICT,
    OUTCOME_AMOUNT_MISMATCH,
    OUTCOME_SECOND_PAYMENT,
}

# custom_str3 carries the transaction id when m_payment_id is not a known reference
_TRANSACTION_ID_SLOT = 2


@dataclass(frozen=True)
class ReconcileResult:
    outcome: str
    transaction_id: str | None = None
    detail: str = ""

    @property
    def is_anomaly(self) -> bool:
        return self.outcome in ANOMALY_OUTCOMES


def map_payment_status(payment_status: str) -> str | None:
    """Map a gateway payment_status to a transaction status, None if unknown."""
    return PAYMENT_STATUS_MAP.get(payment_status)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _find_transaction(cur: PgCursor, notification: GatewayNotification) -> dict[str, Any] | None:
    transaction = get_transaction_by_reference(cur, notification.m_payment_id)
    if transaction is not None:
        return transaction

    echoed = notification.custom_str
    fallback_id = echoed[_TRANSACTION_ID_SLOT] if len(echoed) > _TRANSACTION_ID_SLOT else None
    if fallback_id and _is_uuid(fallback_id):
        return get_transaction_by_id(cur, fallback_id)
    return None


def _classify_settled(
    transaction: dict[str, Any] | None,
    target: str,
    transaction_id: str,
    pf_payment_id: str,
) -> ReconcileResult:
    """Classify a notification against a transaction that is no longer pending."""
    current = transaction["status"] if transaction else None
    if current == target:
        settled_by = transaction.get("gateway_payment_id")
        # A different gateway payment for a settled transaction is a second charge
        if settled_by and settled_by != pf_payment_id:
            return ReconcileResult(
                OUTCOME_SECOND_PAYMENT,
                transaction_id,
                f"already {current} by another gateway payment",
            )
        return ReconcileResult(OUTCOME_DUPLICATE, transaction_id, f"already {current}")
    return ReconcileResult(
        OUTCOME_CONFLICT,
        transaction_id,
        f"transaction is {current}, notification says {target}",
    )


def _apply(
    cur: PgCursor,
    notification: GatewayNotification,
    receipt_notifier: ReceiptNotifier,
) -> ReconcileResult:
    target = map_payment_status(notification.payment_status)
    if target is None:
        return ReconcileResult(
            OUTCOME_UNKNOWN_STATUS,
            detail=f"unmapped payment_status {notification.payment_status!r}",
        )

    transaction = _find_transaction(cur, notification)
    if transaction is None:
        return ReconcileResult(OUTCOME_ORPHANED, detail="no transaction matches notification")

    transaction_id = transaction["id"]
    current = transaction["status"]

    if target == STATUS_PENDING:
        if current == STATUS_PENDING:
            return ReconcileResult(OUTCOME_PENDING, transaction_id, "awaiting final status")
        return _classify_settled(transaction, target, transaction_id, notification.pf_payment_id)

    if current in TERMINAL_STATUSES:
        return _classify_settled(transaction, target, transaction_id, notification.pf_payment_id)

    if transaction["amount"] != notification.amount_gross:
        return ReconcileResult(
            OUTCOME_AMOUNT_MISMATCH,
            transaction_id,
            f"expected {transaction['amount']}, gateway reported {notification.amount_gross}",
        )

    if target == STATUS_COMPLETED:
        processing_fee = abs(notification.amount_fee)
        won = transition_pending_transaction(
            cur,
            transaction_id=transaction_id,
            status=STATUS_COMPLETED,
            gateway_payment_id=notification.pf_payment_id,
            amount_gross=notification.amount_gross,
            processing_fee=processing_fee,
            net_amount=notification.amount_net,
        )
    else:
        won = transition_pending_transaction(
            cur,
            transaction_id=transaction_id,
            status=target,
            gateway_payment_id=notification.pf_payment_id,
        )

    if not won:
        # Lost a race with a concurrent delivery; report what it wrote
        refreshed = get_transaction_by_id(cur, transaction_id)
        return _classify_settled(refreshed, target, transaction_id, notification.pf_payment_id)

    if target == STATUS_COMPLETED:
        transaction.update(
            status=STATUS_COMPLETED,
            amount_gross=notification.amount_gross,
            processing_fee=processing_fee,
            net_amount=notification.amount_net,
        )
        receipt_notifier.send_receipt(cur, transaction)
        return ReconcileResult(OUTCOME_COMPLETED, transaction_id)

    return ReconcileResult(OUTCOME_FAILED, transaction_id)


def reconcile_notification(
    cur: PgCursor,
    notification: GatewayNotification,
    *,
    receipt_notifier: ReceiptNotifier,
    correlation_id: str | None = None,
) -> ReconcileResult:
    """Apply an authenticated notification to its transaction.

    Must run inside a single txn(); store errors propagate so the caller
    can answer 5xx and let the gateway retry.

    Args:
        cur: Database cursor (within transaction).
        notification: Verified gateway notification.
        receipt_notifier: Collaborator that requests the donor receipt.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        ReconcileResult describing what happened.
    """
    receipt_id = record_notification(
        cur,
        pf_payment_id=notification.pf_payment_id,
        payment_status=notification.payment_status,
        m_payment_id=notification.m_payment_id,
        amount_gross=notification.amount_gross,
        amount_fee=notification.amount_fee,
        amount_net=notification.amount_net,
        correlation_id=correlation_id,
    )

    if receipt_id is None:
        logger.info(
            "duplicate payfast notification ignored",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    pf_payment_id=notification.pf_payment_id,
                    payment_status=notification.payment_status,
                )
            },
        )
        return ReconcileResult(OUTCOME_DUPLICATE, detail="notification already recorded")

    result = _apply(cur, notification, receipt_notifier)

    set_notification_outcome(
        cur,
        notification_id=receipt_id,
        outcome=result.outcome,
        transaction_id=result.transaction_id,
    )

    context = safe_log_context(
        correlationId=correlation_id,
        outcome=result.outcome,
        detail=result.detail,
        transaction_id=result.transaction_id,
    )
    if result.is_anomaly:
        logger.warning(
            "payfast notification needs manual review",
            extra={
                "extra_fields": {
                    **context,
                    "notification": redact_gateway_params(notification.fields),
                }
            },
        )
    else:
        logger.info("payfast notification reconciled", extra={"extra_fields": context})

    return result
