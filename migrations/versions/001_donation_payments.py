"""Donation transactions, PayFast notification receipts and outbox.

Revision ID: 001_donation_payments
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op

revision = "001_donation_payments"
down_revision = None
branch_labels = None
depends_on = None

_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'transaction_status') THEN
        CREATE TYPE transaction_status AS ENUM ('pending', 'completed', 'failed', 'refunded');
    END IF;
END
$$;

CREATE TABLE IF NOT EXISTS transactions (
    id                  uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    church_id           uuid NOT NULL,
    project_id          uuid,
    user_id             varchar(255),
    amount              numeric(12, 2) NOT NULL CHECK (amount > 0),
    currency            varchar(3) NOT NULL DEFAULT 'ZAR',
    description         text,
    donation_type       varchar(50) NOT NULL DEFAULT 'general',
    payment_method      varchar(50),
    payment_reference   varchar(255) NOT NULL,
    gateway_payment_id  varchar(255),
    amount_gross        numeric(12, 2),
    processing_fee      numeric(8, 2),
    platform_fee        numeric(8, 2),
    net_amount          numeric(12, 2),
    status              transaction_status NOT NULL DEFAULT 'pending',
    created_at          timestamptz NOT NULL DEFAULT now(),
    updated_at          timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT uq_transactions_payment_reference UNIQUE (payment_reference)
);

CREATE INDEX IF NOT EXISTS ix_transactions_church_status
    ON transactions (church_id, status);

CREATE TABLE IF NOT EXISTS payfast_notifications (
    id              bigserial PRIMARY KEY,
    pf_payment_id   varchar(255) NOT NULL,
    payment_status  varchar(50) NOT NULL,
    m_payment_id    varchar(255) NOT NULL,
    amount_gross    numeric(12, 2) NOT NULL,
    amount_fee      numeric(12, 2) NOT NULL,
    amount_net      numeric(12, 2) NOT NULL,
    transaction_id  uuid REFERENCES transactions (id),
    outcome         varchar(50),
    correlation_id  varchar(64),
    received_at     timestamptz NOT NULL DEFAULT now(),
    CONSTRAINT uq_payfast_notifications_delivery UNIQUE (pf_payment_id, payment_status)
);

CREATE INDEX IF NOT EXISTS ix_payfast_notifications_outcome
    ON payfast_notifications (outcome)
    WHERE outcome IN ('orphaned', 'unknown_status', 'conflict', 'amount_mismatch', 'second_payment');

CREATE TABLE IF NOT EXISTS outbox_events (
    id              bigserial PRIMARY KEY,
    event_type      varchar(100) NOT NULL,
    aggregate_type  varchar(50) NOT NULL,
    aggregate_id    varchar(255) NOT NULL,
    payload         jsonb,
    correlation_id  varchar(64),
    created_at      timestamptz NOT NULL DEFAULT now(),
    processed_at    timestamptz
);

CREATE INDEX IF NOT EXISTS ix_outbox_events_unprocessed
    ON outbox_events (created_at)
    WHERE processed_at IS NULL;
"""


def upgrade() -> None:
    # Raw execution to support DO $$ ... $$ blocks.
    conn = op.get_bind()
    conn.exec_driver_sql(_SQL)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS outbox_events")
    op.execute("DROP TABLE IF EXISTS payfast_notifications")
    op.execute("DROP TABLE IF EXISTS transactions")
    op.execute("DROP TYPE IF EXISTS transaction_status")
