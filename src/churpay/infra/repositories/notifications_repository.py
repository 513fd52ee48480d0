"""PayFast notification receipts - one row per (pf_payment_id, payment_status).

The unique key makes gateway redelivery visible: a second insert for the
same pair is a no-op and the caller treats the delivery as a duplicate.

Uses raw SQL with psycopg2 (no ORM).
"""

from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor


def record_notification(
    cur: PgCursor,
    *,
    pf_payment_id: str,
    payment_status: str,
    m_payment_id: str,
    amount_gross: Decimal,
    amount_fee: Decimal,
    amount_net: Decimal,
    correlation_id: str | None = None,
) -> int | None:
    """Insert a receipt for an authenticated notification.

    Returns:
        The receipt id, or None if the same notification was already recorded.
    """
    cur.execute(
        """
        INSERT INTO payfast_notifications (
            pf_payment_id, payment_status, m_payment_id,
            amount_gross, amount_fee, amount_net, correlation_id
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (pf_payment_id, payment_status) DO NOTHING
        RETURNING id
        """,
        (
            pf_payment_id,
            payment_status,
            m_payment_id,
            amount_gross,
            amount_fee,
            amount_net,
            correlation_id,
        ),
    )
    row = cur.fetchone()
    return row[0] if row is not None else None


def set_notification_outcome(
    cur: PgCursor,
    *,
    notification_id: int,
    outcome: str,
    transaction_id: str | None = None,
) -> None:
    """Store how a recorded notification was resolved (audit trail)."""
    cur.execute(
        """
        UPDATE payfast_notifications
        SET outcome = %s, transaction_id = %s
        WHERE id = %s
        """,
        (outcome, transaction_id, notification_id),
    )
