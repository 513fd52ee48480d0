"""PayFast gateway configuration, read once from the environment at startup.

Environment:
- PAYFAST_MERCHANT_ID / PAYFAST_MERCHANT_KEY (required)
- PAYFAST_PASSPHRASE (optional; empty means no passphrase on either side)
- PAYFAST_SANDBOX (default "true")
- PAYFAST_RETURN_URL / PAYFAST_CANCEL_URL / PAYFAST_NOTIFY_URL (optional)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

SANDBOX_PROCESS_URL = "https://sandbox.payfast.co.za/eng/process"
LIVE_PROCESS_URL = "https://www.payfast.co.za/eng/process"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Required gateway configuration is missing."""


@dataclass(frozen=True)
class PayFastConfig:
    """Merchant credentials and default URLs for one deployment."""

    merchant_id: str
    merchant_key: str
    passphrase: str | None = None
    sandbox: bool = True
    return_url: str | None = None
    cancel_url: str | None = None
    notify_url: str | None = None

    @property
    def process_url(self) -> str:
        """Gateway endpoint the donor's browser is redirected to."""
        return SANDBOX_PROCESS_URL if self.sandbox else LIVE_PROCESS_URL


def _optional(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def load_config(environ: Mapping[str, str] | None = None) -> PayFastConfig:
    """Build PayFastConfig from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        Immutable PayFastConfig.

    Raises:
        ConfigurationError: If merchant id or merchant key is not set.
    """
    if environ is None:
        environ = os.environ

    merchant_id = _optional(environ, "PAYFAST_MERCHANT_ID")
    merchant_key = _optional(environ, "PAYFAST_MERCHANT_KEY")

    missing = [
        name
        for name, value in (
            ("PAYFAST_MERCHANT_ID", merchant_id),
            ("PAYFAST_MERCHANT_KEY", merchant_key),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(f"{', '.join(missing)} not configured")

    sandbox_raw = environ.get("PAYFAST_SANDBOX", "true").strip().lower()

    return PayFastConfig(
        merchant_id=merchant_id,
        merchant_key=merchant_key,
        # Passphrase is taken verbatim: leading/trailing spaces are part of the secret
        passphrase=environ.get("PAYFAST_PASSPHRASE") or None,
        sandbox=sandbox_raw in _TRUTHY,
        return_url=_optional(environ, "PAYFAST_RETURN_URL"),
        cancel_url=_optional(environ, "PAYFAST_CANCEL_URL"),
        notify_url=_optional(environ, "PAYFAST_NOTIFY_URL"),
    )
