"""Payment intent builder - outbound redirect URL to the PayFast process page.

Pure construction, no I/O. The caller persists the pending transaction
before redirecting the donor so the later notification can be reconciled.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from urllib.parse import urlparse

from .config import PayFastConfig
from .signature import build_param_string, generate_signature

MAX_CUSTOM_SLOTS = 5

# Gateway field length limits
ITEM_NAME_MAX = 100
ITEM_DESCRIPTION_MAX = 255
CUSTOM_STR_MAX = 255
M_PAYMENT_ID_MAX = 100

_CENTS = Decimal("0.01")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"\s+")


class IntentBuildError(Exception):
    """Payment intent cannot be built from the given request/config."""


@dataclass
class PaymentIntentRequest:
    """One donation attempt, consumed immediately to build a redirect URL."""

    amount: Decimal | int | str
    item_name: str
    item_description: str | None = None
    return_url: str | None = None
    cancel_url: str | None = None
    notify_url: str | None = None
    m_payment_id: str | None = None
    custom_str: list[str | None] = field(default_factory=list)
    custom_int: list[int | None] = field(default_factory=list)


def format_amount(amount: Decimal | int | str) -> str:
    """Render an amount as the exact 2dp string the gateway signs.

    Raises:
        IntentBuildError: If the amount is not a finite positive number.
    """
    if isinstance(amount, bool) or not isinstance(amount, (Decimal, int, str)):
        raise IntentBuildError("amount must be a decimal, integer or numeric string")

    try:
        value = Decimal(amount.strip() if isinstance(amount, str) else amount)
    except InvalidOperation as e:
        raise IntentBuildError("amount is not a number") from e

    if not value.is_finite():
        raise IntentBuildError("amount must be finite")

    try:
        quantized = value.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise IntentBuildError("amount is out of range") from e
    if quantized <= 0:
        raise IntentBuildError("amount must be positive")

    return f"{quantized:.2f}"


def sanitize_text(value: str | None, max_length: int) -> str:
    """Strip control characters, collapse whitespace and truncate."""
    if not value:
        return ""
    cleaned = _CONTROL_CHARS.sub(" ", value)
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    return cleaned[:max_length].rstrip()


def _absolute_url(name: str, value: str | None) -> str:
    if not value:
        return ""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise IntentBuildError(f"{name} must be an absolute http(s) URL")
    return value


def build_intent_params(request: PaymentIntentRequest, config: PayFastConfig) -> dict[str, str]:
    """Assemble the parameter set that is both signed and emitted.

    Empty values are kept here and dropped by the codec, so the signed string
    and the query string are always derived from the same map.

    Raises:
        IntentBuildError: On any invalid field or missing merchant credentials.
    """
    if not config.merchant_id or not config.merchant_key:
        raise IntentBuildError("merchant credentials not configured")

    item_name = sanitize_text(request.item_name, ITEM_NAME_MAX)
    if not item_name:
        raise IntentBuildError("item_name is required")

    if len(request.custom_str) > MAX_CUSTOM_SLOTS or len(request.custom_int) > MAX_CUSTOM_SLOTS:
        raise IntentBuildError(f"at most {MAX_CUSTOM_SLOTS} custom slots of each kind")

    params: dict[str, str] = {
        "merchant_id": config.merchant_id,
        "merchant_key": config.merchant_key,
        "return_url": _absolute_url("return_url", request.return_url or config.return_url),
        "cancel_url": _absolute_url("cancel_url", request.cancel_url or config.cancel_url),
        "notify_url": _absolute_url("notify_url", request.notify_url or config.notify_url),
        "m_payment_id": sanitize_text(request.m_payment_id, M_PAYMENT_ID_MAX),
        "amount": format_amount(request.amount),
        "item_name": item_name,
        "item_description": sanitize_text(request.item_description, ITEM_DESCRIPTION_MAX),
    }

    for index, value in enumerate(request.custom_str, start=1):
        params[f"custom_str{index}"] = sanitize_text(value, CUSTOM_STR_MAX)

    for index, value in enumerate(request.custom_int, start=1):
        if value is None:
            params[f"custom_int{index}"] = ""
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise IntentBuildError(f"custom_int{index} must be an integer")
        params[f"custom_int{index}"] = str(value)

    return params


def build_payment_url(request: PaymentIntentRequest, config: PayFastConfig) -> str:
    """Build the signed redirect URL for a donation.

    Returns:
        `{process_url}?{sorted key=value pairs}&signature={md5}`

    Raises:
        IntentBuildError: If the request or config is invalid.
    """
    params = build_intent_params(request, config)
    query = build_param_string(params)
    signature = generate_signature(params, config.passphrase)
    return f"{config.process_url}?{query}&signature={signature}"
