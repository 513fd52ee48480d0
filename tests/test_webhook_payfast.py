"""Tests for the PayFast notification webhook endpoint."""

import json
import logging
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from churpay.api.factory import create_app

NOTIFY_PATH = "/webhooks/payfast/notify"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
REFERENCE = "CP-test-reference"


@pytest.fixture
def client(payfast_config, fake_txn, receipt_notifier, monkeypatch):
    """Test client wired to the fake store and counting receipt notifier."""
    import churpay.api.routes.webhooks_payfast as webhook_module

    monkeypatch.setattr(webhook_module, "txn", fake_txn)
    monkeypatch.setattr(webhook_module, "_get_receipt_notifier", lambda cid: receipt_notifier)
    return TestClient(create_app(payfast_config))


def _post_form(client, fields, **kwargs):
    kwargs.setdefault("headers", FORM_HEADERS)
    return client.post(NOTIFY_PATH, content=urlencode(fields), **kwargs)


class TestNotifyHappyPath:
    def test_complete_notification(self, client, store, receipt_notifier, sign_notification):
        tx = store.add_transaction(payment_reference=REFERENCE)

        response = _post_form(client, sign_notification())

        assert response.status_code == 200
        assert response.text == "ok"
        assert tx["status"] == "completed"
        assert receipt_notifier.call_count == 1

    def test_json_body(self, client, store, receipt_notifier, sign_notification):
        tx = store.add_transaction(payment_reference=REFERENCE)

        response = client.post(
            NOTIFY_PATH,
            content=json.dumps(sign_notification()),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert tx["status"] == "completed"

    def test_redelivery_answers_duplicate(self, client, store, receipt_notifier, sign_notification):
        tx = store.add_transaction(payment_reference=REFERENCE)
        fields = sign_notification()

        first = _post_form(client, fields)
        second = _post_form(client, fields)

        assert first.text == "ok"
        assert second.status_code == 200
        assert second.text == "duplicate"
        assert tx["status"] == "completed"
        assert receipt_notifier.call_count == 1

    def test_orphan_still_acknowledged(self, client, store, receipt_notifier, sign_notification):
        response = _post_form(client, sign_notification())

        assert response.status_code == 200
        assert store.transactions == {}
        assert receipt_notifier.call_count == 0

    def test_correlation_id_echoed(self, client, store, sign_notification):
        store.add_transaction(payment_reference=REFERENCE)

        response = _post_form(
            client, sign_notification(), headers={**FORM_HEADERS, "X-Correlation-ID": "itn-42"}
        )

        assert response.headers["X-Correlation-ID"] == "itn-42"


class TestNotifyRejections:
    def test_wrong_passphrase_no_db_access(self, client, store, receipt_notifier, sign_notification):
        tx = store.add_transaction(payment_reference=REFERENCE)

        response = _post_form(client, sign_notification(passphrase="wrong-secret"))

        assert response.status_code == 200
        assert response.text == "ok"
        assert tx["status"] == "pending"
        assert store.executed == []
        assert store.notifications == {}

    def test_missing_field_no_db_access(self, client, store, sign_notification):
        response = _post_form(client, sign_notification(drop=("amount_net",)))

        assert response.status_code == 200
        assert store.executed == []

    def test_garbage_body(self, client, store):
        response = client.post(
            NOTIFY_PATH, content=b"\xff\xfe\x00", headers=FORM_HEADERS
        )

        assert response.status_code == 200
        assert store.executed == []

    def test_invalid_json(self, client, store):
        response = client.post(
            NOTIFY_PATH, content="{broken", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert store.executed == []

    def test_rejections_are_indistinguishable(self, client, sign_notification):
        responses = [
            _post_form(client, sign_notification(passphrase="wrong-secret")),
            _post_form(client, sign_notification(drop=("amount_net",))),
            _post_form(client, sign_notification(merchant_id="99999999")),
        ]

        assert {(r.status_code, r.text) for r in responses} == {(200, "ok")}


class TestNotifyFailures:
    def test_store_failure_returns_500(self, client, store, receipt_notifier, sign_notification):
        tx = store.add_transaction(payment_reference=REFERENCE)
        store.fail_on = "INSERT INTO payfast_notifications"

        response = _post_form(client, sign_notification())

        assert response.status_code == 500
        assert response.text == "processing failed"
        assert tx["status"] == "pending"
        assert receipt_notifier.call_count == 0


class TestNotifyLogging:
    def test_signature_mismatch_logged_as_error_without_secrets(
        self, client, sign_notification, captured_logs, log_text, payfast_config
    ):
        captured_logs.set_level(logging.INFO)
        fields = sign_notification(passphrase="wrong-secret")

        _post_form(client, fields)

        rejections = [
            r for r in captured_logs.records
            if r.getMessage() == "payfast notification rejected"
        ]
        assert len(rejections) == 1
        assert rejections[0].levelno == logging.ERROR
        assert rejections[0].extra_fields["kind"] == "signature_mismatch"

        text = log_text(captured_logs)
        assert fields["signature"] not in text
        assert payfast_config.passphrase not in text
        assert payfast_config.merchant_id not in text
        assert "thandi@example.com" not in text

    def test_malformed_logged_as_warning(self, client, sign_notification, captured_logs):
        captured_logs.set_level(logging.INFO)

        _post_form(client, sign_notification(drop=("amount_net",)))

        (rejection,) = [
            r for r in captured_logs.records
            if r.getMessage() == "payfast notification rejected"
        ]
        assert rejection.levelno == logging.WARNING
        assert rejection.extra_fields["kind"] == "malformed"

    def test_success_logs_do_not_leak(
        self, client, store, sign_notification, captured_logs, log_text
    ):
        captured_logs.set_level(logging.INFO)
        store.add_transaction(payment_reference=REFERENCE)
        fields = sign_notification()

        _post_form(client, fields)

        text = log_text(captured_logs)
        assert "payfast notification reconciled" in text
        assert fields["signature"] not in text
        assert "Thandi" not in text
