"""Transactions repository - persistence for donation transactions.

Uses raw SQL with psycopg2 (no ORM).

Status changes only ever go through transition_pending_transaction(), a
conditional UPDATE guarded by `status = 'pending'`, so two concurrent
handlers for the same notification cannot both win.
"""

from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REFUNDED = "refunded"

VALID_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_REFUNDED}
TERMINAL_STATUSES = {STATUS_COMPLETED, STATUS_FAILED, STATUS_REFUNDED}

_SELECT_COLUMNS = """
    SELECT id, church_id, project_id, user_id, amount, currency,
           payment_reference, status, platform_fee, gateway_payment_id
    FROM transactions
"""


def _row_to_dict(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "church_id": str(row[1]),
        "project_id": str(row[2]) if row[2] else None,
        "user_id": row[3],
        "amount": row[4],
        "currency": row[5],
        "payment_reference": row[6],
        "status": row[7],
        "platform_fee": row[8],
        "gateway_payment_id": row[9],
    }


def insert_pending_transaction(
    cur: PgCursor,
    *,
    church_id: str,
    amount: Decimal,
    payment_reference: str,
    platform_fee: Decimal,
    currency: str = "ZAR",
    project_id: str | None = None,
    user_id: str | None = None,
    description: str | None = None,
    donation_type: str = "general",
    payment_method: str = "payfast",
) -> str:
    """Insert a pending donation transaction.

    Returns:
        Transaction UUID string.
    """
    cur.execute(
        """
        INSERT INTO transactions (
            church_id, project_id, user_id, amount, currency, description,
            donation_type, payment_method, payment_reference, platform_fee,
            status
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending')
        RETURNING id
        """,
        (
            church_id,
            project_id,
            user_id,
            amount,
            currency,
            description,
            donation_type,
            payment_method,
            payment_reference,
            platform_fee,
        ),
    )
    return str(cur.fetchone()[0])


def get_transaction_by_reference(
    cur: PgCursor,
    payment_reference: str,
) -> dict[str, Any] | None:
    """Get a transaction by the merchant payment reference (m_payment_id)."""
    cur.execute(
        _SELECT_COLUMNS + " WHERE payment_reference = %s",
        (payment_reference,),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row is not None else None


def get_transaction_by_id(
    cur: PgCursor,
    transaction_id: str,
) -> dict[str, Any] | None:
    """Get a transaction by its UUID. Caller must pass a well-formed UUID."""
    cur.execute(
        _SELECT_COLUMNS + " WHERE id = %s",
        (transaction_id,),
    )
    row = cur.fetchone()
    return _row_to_dict(row) if row is not None else None


def transition_pending_transaction(
    cur: PgCursor,
    *,
    transaction_id: str,
    status: str,
    gateway_payment_id: str,
    amount_gross: Decimal | None = None,
    processing_fee: Decimal | None = None,
    net_amount: Decimal | None = None,
) -> bool:
    """Move a pending transaction to a terminal status.

    Atomic conditional update: only succeeds while the row is still pending.

    Returns:
        True if this call performed the transition, False if the row was not
        pending anymore (another handler got there first, or it never was).

    Raises:
        ValueError: If status is not a terminal status.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Invalid status: {status}. Must be one of {TERMINAL_STATUSES}")

    cur.execute(
        """
        UPDATE transactions
        SET status = %s,
            gateway_payment_id = %s,
            amount_gross = COALESCE(%s, amount_gross),
            processing_fee = COALESCE(%s, processing_fee),
            net_amount = COALESCE(%s, net_amount),
            updated_at = now()
        WHERE id = %s AND status = 'pending'
        RETURNING id
        """,
        (
            status,
            gateway_payment_id,
            amount_gross,
            processing_fee,
            net_amount,
            transaction_id,
        ),
    )
    return cur.fetchone() is not None
