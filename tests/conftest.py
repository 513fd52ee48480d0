"""Shared pytest fixtures for ChurPay payment tests."""
import sys
sys.dont_write_bytecode = True

import uuid  # noqa: E402
from contextlib import contextmanager  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from churpay.payfast.config import PayFastConfig  # noqa: E402
from churpay.payfast.signature import generate_signature  # noqa: E402

TEST_MERCHANT_ID = "10000100"
TEST_MERCHANT_KEY = "46f0cd694581a"
TEST_PASSPHRASE = "jt7NOE43FZPn"
TEST_CHURCH_ID = "0f8b3c1e-5a7d-4c2b-9e61-3d2f8a9b7c10"


# ---------------------------------------------------------------------------
# Fake DB: understands exactly the SQL issued by churpay.infra.repositories
# ---------------------------------------------------------------------------


class FakeStore:
    """In-memory stand-in for the transactions/notifications/outbox tables."""

    def __init__(self) -> None:
        self.transactions: dict[str, dict] = {}
        self.notifications: dict[int, dict] = {}
        self.outbox: list[dict] = []
        self.executed: list[str] = []
        self.fail_on: str | None = None

    def add_transaction(
        self,
        *,
        amount: str = "99.99",
        status: str = "pending",
        payment_reference: str | None = None,
        church_id: str = TEST_CHURCH_ID,
    ) -> dict:
        tx_id = str(uuid.uuid4())
        row = {
            "id": tx_id,
            "church_id": church_id,
            "project_id": None,
            "user_id": None,
            "amount": Decimal(amount),
            "currency": "ZAR",
            "payment_reference": payment_reference or f"CP-{uuid.uuid4().hex}",
            "status": status,
            "platform_fee": Decimal("6.90"),
            "gateway_payment_id": None,
            "amount_gross": None,
            "processing_fee": None,
            "net_amount": None,
        }
        self.transactions[tx_id] = row
        return row

    def statuses(self) -> dict[str, str]:
        return {tx_id: row["status"] for tx_id, row in self.transactions.items()}

    def cursor(self) -> "FakeCursor":
        return FakeCursor(self)


def _select_row(row: dict | None) -> tuple | None:
    if row is None:
        return None
    return (
        row["id"],
        row["church_id"],
        row["project_id"],
        row["user_id"],
        row["amount"],
        row["currency"],
        row["payment_reference"],
        row["status"],
        row["platform_fee"],
        row["gateway_payment_id"],
    )


class FakeCursor:
    def __init__(self, store: FakeStore) -> None:
        self._store = store
        self._result: tuple | None = None
        self.rowcount = 0

    def execute(self, query: str, params: tuple = ()) -> None:
        q = " ".join(query.split())
        store = self._store
        store.executed.append(q)
        self._result = None

        if store.fail_on and store.fail_on in q:
            raise RuntimeError("simulated store failure")

        if q.startswith("INSERT INTO transactions"):
            (church_id, project_id, user_id, amount, currency, description,
             donation_type, payment_method, payment_reference, platform_fee) = params
            row = store.add_transaction(
                amount=str(amount),
                payment_reference=payment_reference,
                church_id=church_id,
            )
            row.update(
                project_id=project_id,
                user_id=user_id,
                currency=currency,
                description=description,
                donation_type=donation_type,
                payment_method=payment_method,
                platform_fee=platform_fee,
            )
            self._result = (row["id"],)
        elif q.startswith("SELECT") and "WHERE payment_reference = %s" in q:
            matches = [
                row for row in store.transactions.values()
                if row["payment_reference"] == params[0]
            ]
            self._result = _select_row(matches[0] if matches else None)
        elif q.startswith("SELECT") and "FROM transactions WHERE id = %s" in q:
            self._result = _select_row(store.transactions.get(params[0]))
        elif q.startswith("UPDATE transactions"):
            status, gateway_payment_id, gross, fee, net, tx_id = params
            row = store.transactions.get(tx_id)
            if row is None or row["status"] != "pending":
                self.rowcount = 0
                return
            row.update(status=status, gateway_payment_id=gateway_payment_id)
            if gross is not None:
                row["amount_gross"] = gross
            if fee is not None:
                row["processing_fee"] = fee
            if net is not None:
                row["net_amount"] = net
            self.rowcount = 1
            self._result = (tx_id,)
        elif q.startswith("INSERT INTO payfast_notifications"):
            pf_payment_id, payment_status = params[0], params[1]
            for existing in store.notifications.values():
                if (existing["pf_payment_id"], existing["payment_status"]) == (pf_payment_id, payment_status):
                    self.rowcount = 0
                    return
            receipt_id = len(store.notifications) + 1
            store.notifications[receipt_id] = {
                "pf_payment_id": pf_payment_id,
                "payment_status": payment_status,
                "m_payment_id": params[2],
                "outcome": None,
                "transaction_id": None,
            }
            self.rowcount = 1
            self._result = (receipt_id,)
        elif q.startswith("UPDATE payfast_notifications"):
            outcome, tx_id, receipt_id = params
            store.notifications[receipt_id].update(outcome=outcome, transaction_id=tx_id)
        elif q.startswith("INSERT INTO outbox_events"):
            event_type, aggregate_type, aggregate_id, payload, correlation_id = params
            store.outbox.append({
                "event_type": event_type,
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "payload": payload,
                "correlation_id": correlation_id,
            })
            self._result = (len(store.outbox),)
        else:
            raise AssertionError(f"unexpected query: {q}")

    def fetchone(self) -> tuple | None:
        return self._result


class CountingReceiptNotifier:
    """ReceiptNotifier fake that records every call."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def send_receipt(self, cur, transaction: dict) -> None:
        self.calls.append(dict(transaction))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def payfast_config() -> PayFastConfig:
    return PayFastConfig(
        merchant_id=TEST_MERCHANT_ID,
        merchant_key=TEST_MERCHANT_KEY,
        passphrase=TEST_PASSPHRASE,
        sandbox=True,
        return_url="https://churpay.example.com/donations/thanks",
        cancel_url="https://churpay.example.com/donations/cancelled",
        notify_url="https://api.churpay.example.com/webhooks/payfast/notify",
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cur(store):
    return store.cursor()


@pytest.fixture
def receipt_notifier() -> CountingReceiptNotifier:
    return CountingReceiptNotifier()


@pytest.fixture
def fake_txn(store):
    """Drop-in replacement for churpay.infra.db.txn backed by the fake store."""

    @contextmanager
    def _fake_txn(conn=None):
        yield store.cursor()

    return _fake_txn


@pytest.fixture
def sign_notification():
    """Factory building a correctly signed notification field map."""

    def _sign(
        *,
        passphrase: str | None = TEST_PASSPHRASE,
        drop: tuple[str, ...] = (),
        **overrides: str,
    ) -> dict[str, str]:
        fields = {
            "m_payment_id": "CP-test-reference",
            "pf_payment_id": "1089250",
            "payment_status": "COMPLETE",
            "item_name": "Tithe",
            "item_description": "Monthly tithe",
            "amount_gross": "99.99",
            "amount_fee": "-2.28",
            "amount_net": "97.71",
            "custom_str1": "church-42",
            "name_first": "Thandi",
            "name_last": "Mokoena",
            "email_address": "thandi@example.com",
            "merchant_id": TEST_MERCHANT_ID,
        }
        fields.update(overrides)
        for name in drop:
            fields.pop(name, None)
        fields["signature"] = generate_signature(fields, passphrase)
        return fields

    return _sign


@pytest.fixture
def captured_logs(caplog):
    """Route churpay JSON loggers (propagate=False) into caplog."""
    import logging

    # Importing creates and configures the module loggers before we attach
    import churpay.api.routes.webhooks_payfast  # noqa: F401
    import churpay.domain.reconciliation  # noqa: F401

    loggers = [
        logging.getLogger("churpay.api.routes.webhooks_payfast"),
        logging.getLogger("churpay.domain.reconciliation"),
    ]
    for logger in loggers:
        logger.addHandler(caplog.handler)
    try:
        yield caplog
    finally:
        for logger in loggers:
            logger.removeHandler(caplog.handler)


def all_log_text(caplog) -> str:
    """Messages plus structured extra fields, for leak assertions."""
    parts = list(caplog.messages)
    for record in caplog.records:
        if hasattr(record, "extra_fields"):
            parts.append(str(record.extra_fields))
    return " ".join(parts)


@pytest.fixture
def log_text():
    return all_log_text
