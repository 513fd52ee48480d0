"""Donation receipt dispatch.

The reconciliation handler receives a ReceiptNotifier instead of reaching
for a global email service. The default implementation writes an outbox
event inside the caller's transaction, so the receipt request commits or
rolls back together with the status change that triggered it.
"""

from __future__ import annotations

from typing import Any, Protocol

from psycopg2.extensions import cursor as PgCursor

from churpay.infra.repositories.outbox_repository import (
    EVENT_DONATION_RECEIPT_REQUESTED,
    emit_event,
)


class ReceiptNotifier(Protocol):
    """Sends (or schedules) the donor receipt for a completed donation."""

    def send_receipt(self, cur: PgCursor, transaction: dict[str, Any]) -> None:
        """Called exactly once per first-time completion."""
        ...


class OutboxReceiptNotifier:
    """Request a receipt email through the transactional outbox."""

    def __init__(self, correlation_id: str | None = None) -> None:
        self._correlation_id = correlation_id

    def send_receipt(self, cur: PgCursor, transaction: dict[str, Any]) -> None:
        # ids and amounts only; the email service resolves the donor itself
        payload = {
            "transaction_id": transaction["id"],
            "church_id": transaction.get("church_id"),
            "project_id": transaction.get("project_id"),
            "amount": str(transaction.get("amount")),
            "net_amount": str(transaction.get("net_amount")),
            "currency": transaction.get("currency"),
        }
        emit_event(
            cur,
            event_type=EVENT_DONATION_RECEIPT_REQUESTED,
            aggregate_type="transaction",
            aggregate_id=transaction["id"],
            payload=payload,
            correlation_id=self._correlation_id,
        )
