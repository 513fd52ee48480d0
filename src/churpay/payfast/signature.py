"""PayFast signature codec.

The gateway signs a canonical string built from the parameter map:

    sorted non-empty key=urlEncode(value) pairs joined by "&"
    [+ "&passphrase=" + urlEncode(passphrase)]

and the signature is the lowercase hex MD5 of that string. MD5 is fixed by
the gateway protocol.

Empty-string values are treated exactly like absent keys, on both the
outbound (intent) and inbound (notification) side.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping
from urllib.parse import quote

SIGNATURE_FIELD = "signature"

# encodeURIComponent unreserved set
_SAFE_CHARS = "-_.!~*'()"


def url_encode(value: str) -> str:
    """Percent-encode a value the way the signing side does (space -> %20)."""
    return quote(value, safe=_SAFE_CHARS, encoding="utf-8")


def _signable_items(params: Mapping[str, str | None]) -> list[tuple[str, str]]:
    return sorted(
        (key, value)
        for key, value in params.items()
        if key != SIGNATURE_FIELD and value is not None and value != ""
    )


def build_param_string(params: Mapping[str, str | None]) -> str:
    """Build the sorted key=value string without the passphrase.

    This is also the exact query string emitted on the redirect URL.
    """
    return "&".join(f"{key}={url_encode(value)}" for key, value in _signable_items(params))


def build_signable_string(
    params: Mapping[str, str | None],
    passphrase: str | None = None,
) -> str:
    """Build the full string that is hashed, passphrase included if configured."""
    param_string = build_param_string(params)
    if passphrase:
        return f"{param_string}&passphrase={url_encode(passphrase)}"
    return param_string


def generate_signature(
    params: Mapping[str, str | None],
    passphrase: str | None = None,
) -> str:
    """Compute the lowercase hex MD5 signature of a parameter map."""
    signable = build_signable_string(params, passphrase)
    return hashlib.md5(signable.encode("utf-8")).hexdigest()


def signatures_match(expected: str, supplied: object) -> bool:
    """Constant-time comparison of a computed and a supplied signature."""
    if not isinstance(supplied, str):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def verify_signature(
    params: Mapping[str, str | None],
    passphrase: str | None = None,
) -> bool:
    """Check the `signature` field of a map against the rest of its fields."""
    supplied = params.get(SIGNATURE_FIELD)
    if not supplied:
        return False
    return signatures_match(generate_signature(params, passphrase), supplied)
