"""Redaction helpers for safe logging. All external data must pass through these."""

import re
from collections.abc import Mapping
from typing import Any

# Patterns that should never appear in logs
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"
_MERCHANT_ID_VISIBLE = 4
_MASK = "***"

# Gateway fields that are credentials or donor PII; never logged in any form
_SECRET_FIELDS = frozenset({"signature", "merchant_key", "passphrase"})
_PII_FIELDS = frozenset({"email_address", "name_first", "name_last", "cell_number"})


def redact_string(value: str) -> str:
    """Redact PII patterns from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # For dicts, only log keys (structure), never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    # For any other type, only log type name
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}


def mask_merchant_id(value: Any) -> str:
    """Keep a short prefix of a merchant id so operators can tell tenants apart."""
    text = "" if value is None else str(value)
    # Never more than half of the id, so short ids are not logged whole
    visible = min(_MERCHANT_ID_VISIBLE, len(text) // 2)
    return text[:visible] + _MASK


def redact_gateway_params(params: Any) -> dict[str, str]:
    """Return a log-safe copy of a PayFast intent or notification field map.

    - signature, merchant_key, passphrase -> [REDACTED]
    - merchant_id -> at most 4 leading characters (never more than half) + ***
    - payer name/email -> [REDACTED]
    - everything else passed through as a string

    Never raises; anything that is not a mapping yields an empty dict.
    """
    if not isinstance(params, Mapping):
        return {}

    redacted: dict[str, str] = {}
    for key, value in params.items():
        name = str(key)
        if name in _SECRET_FIELDS or name in _PII_FIELDS:
            redacted[name] = _REDACTED
        elif name == "merchant_id":
            redacted[name] = mask_merchant_id(value)
        elif value is None:
            redacted[name] = "null"
        elif isinstance(value, str):
            redacted[name] = value
        elif isinstance(value, (int, float, bool)):
            redacted[name] = str(value)
        else:
            redacted[name] = f"<{type(value).__name__}>"
    return redacted
