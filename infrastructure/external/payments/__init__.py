"""
Payment gateway adapters.

Providers are resolved by name from PaymentSettings.default_provider; SDK
modules are imported lazily so an unused provider's SDK is never loaded.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from core.settings import PaymentSettings, payment_settings


def _stripe(config: PaymentSettings) -> PaymentGateway:
    from .stripe_client import StripeClient

    return StripeClient(config)


_PROVIDERS = {
    "stripe": _stripe,
}


def get_payment_gateway(provider: Optional[str] = None, config: Optional[PaymentSettings] = None) -> PaymentGateway:
    config = config or payment_settings
    name = (provider or config.default_provider).lower()
    try:
        build = _PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unsupported payment provider: {name}") from None
    return build(config)
