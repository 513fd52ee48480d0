"""PayFast inbound notification (ITN) validation - the trust boundary.

Purpose:
- Turn raw, attacker-reachable POST fields into either an authenticated
  GatewayNotification or a rejection with a reason.
- Never raise on bad input: bots probing the endpoint are the common case.
- No I/O and no logging here; the route logs the outcome through redaction.

Order of checks:
1. structure (required fields, known field names, scalar values, amounts)
2. signature over every received field except `signature`
3. merchant_id matches this deployment
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union
from urllib.parse import parse_qsl

from .config import PayFastConfig
from .signature import SIGNATURE_FIELD, generate_signature, signatures_match

REQUIRED_FIELDS = (
    "m_payment_id",
    "pf_payment_id",
    "payment_status",
    "item_name",
    "amount_gross",
    "amount_fee",
    "amount_net",
    "merchant_id",
    SIGNATURE_FIELD,
)

AMOUNT_FIELDS = ("amount_gross", "amount_fee", "amount_net")

CUSTOM_STR_FIELDS = tuple(f"custom_str{i}" for i in range(1, 6))
CUSTOM_INT_FIELDS = tuple(f"custom_int{i}" for i in range(1, 6))

OPTIONAL_FIELDS = (
    "item_description",
    *CUSTOM_STR_FIELDS,
    *CUSTOM_INT_FIELDS,
    "name_first",
    "name_last",
    "email_address",
    "cell_number",
    "token",
    "billing_date",
)

KNOWN_FIELDS = frozenset(REQUIRED_FIELDS) | frozenset(OPTIONAL_FIELDS)


class RejectionKind(str, Enum):
    """Why a notification was not trusted."""

    MALFORMED = "malformed"
    SIGNATURE_MISMATCH = "signature_mismatch"
    UNKNOWN_MERCHANT = "unknown_merchant"


@dataclass(frozen=True)
class GatewayNotification:
    """A notification whose signature and merchant id have been verified."""

    m_payment_id: str
    pf_payment_id: str
    payment_status: str
    item_name: str
    amount_gross: Decimal
    amount_fee: Decimal
    amount_net: Decimal
    merchant_id: str
    item_description: str | None = None
    custom_str: tuple[str | None, ...] = ()
    custom_int: tuple[str | None, ...] = ()
    name_first: str | None = None
    name_last: str | None = None
    email_address: str | None = None
    fields: dict[str, str] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class AuthenticNotification:
    """Verification passed; the notification may drive state changes."""

    notification: GatewayNotification


@dataclass(frozen=True)
class RejectedNotification:
    """Verification failed; nothing may change because of this input."""

    kind: RejectionKind
    reason: str
    fields: dict[str, str] = field(default_factory=dict, repr=False, compare=False)


VerificationResult = Union[AuthenticNotification, RejectedNotification]


def parse_notification_body(body: bytes, content_type: str | None) -> Any:
    """Decode a form-encoded or JSON POST body.

    Returns:
        The decoded object (a dict for well-formed bodies), or None if the
        body cannot be decoded at all. Shape checks belong to the validator.
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return None

    if content_type and "application/json" in content_type.lower():
        try:
            return json.loads(text)
        except ValueError:
            return None

    fields: dict[str, str] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        # PayFast never repeats a key; keep the first occurrence
        fields.setdefault(key, value)
    return fields


def _reject(kind: RejectionKind, reason: str, fields: dict[str, str] | None = None) -> RejectedNotification:
    return RejectedNotification(kind=kind, reason=reason, fields=fields or {})


def _normalize_fields(raw: Mapping[Any, Any]) -> dict[str, str] | RejectedNotification:
    """Coerce scalar values to strings; None/empty become absent."""
    fields: dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            return _reject(RejectionKind.MALFORMED, "malformed: non-string field name")
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return _reject(RejectionKind.MALFORMED, f"malformed: unsupported value for field {key}")
        text = value if isinstance(value, str) else str(value)
        if text == "":
            continue
        fields[key] = text
    return fields


def _parse_amount(value: str) -> Decimal | None:
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def validate_notification(raw: Any, config: PayFastConfig) -> VerificationResult:
    """Validate an inbound PayFast notification.

    Args:
        raw: Decoded POST body (any type; only flat mappings can pass).
        config: Deployment configuration (passphrase, merchant id).

    Returns:
        AuthenticNotification on success, RejectedNotification otherwise.
    """
    if not isinstance(raw, Mapping):
        return _reject(RejectionKind.MALFORMED, "malformed: body is not a field map")

    normalized = _normalize_fields(raw)
    if isinstance(normalized, RejectedNotification):
        return normalized
    fields = normalized

    for name in REQUIRED_FIELDS:
        if name not in fields:
            return _reject(RejectionKind.MALFORMED, f"malformed: missing field {name}", fields)

    for name in sorted(fields):
        if name not in KNOWN_FIELDS:
            return _reject(RejectionKind.MALFORMED, f"malformed: unknown field {name}", fields)

    amounts: dict[str, Decimal] = {}
    for name in AMOUNT_FIELDS:
        amount = _parse_amount(fields[name])
        if amount is None:
            return _reject(RejectionKind.MALFORMED, f"malformed: invalid amount {name}", fields)
        amounts[name] = amount

    expected = generate_signature(fields, config.passphrase)
    if not signatures_match(expected, fields[SIGNATURE_FIELD]):
        return _reject(RejectionKind.SIGNATURE_MISMATCH, "signature mismatch", fields)

    if fields["merchant_id"] != config.merchant_id:
        return _reject(RejectionKind.UNKNOWN_MERCHANT, "unknown merchant id", fields)

    notification = GatewayNotification(
        m_payment_id=fields["m_payment_id"],
        pf_payment_id=fields["pf_payment_id"],
        payment_status=fields["payment_status"],
        item_name=fields["item_name"],
        amount_gross=amounts["amount_gross"],
        amount_fee=amounts["amount_fee"],
        amount_net=amounts["amount_net"],
        merchant_id=fields["merchant_id"],
        item_description=fields.get("item_description"),
        custom_str=tuple(fields.get(name) for name in CUSTOM_STR_FIELDS),
        custom_int=tuple(fields.get(name) for name in CUSTOM_INT_FIELDS),
        name_first=fields.get("name_first"),
        name_last=fields.get("name_last"),
        email_address=fields.get("email_address"),
        fields=fields,
    )
    return AuthenticNotification(notification=notification)
