"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Amounts crossing this port are always integers in minor currency units.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    PaymentIntentSnapshot,
    RefundSnapshot,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the remote payment provider.

    Implementations must bound every remote call with a timeout and raise
    ServiceUnavailableException on timeouts/outages, PaymentSignatureException
    when a webhook cannot be verified.
    """

    provider: str

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        *,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentSnapshot: ...

    async def get_intent(self, intent_id: str) -> PaymentIntentSnapshot: ...

    async def cancel_intent(self, intent_id: str) -> PaymentIntentSnapshot: ...

    async def create_refund(
        self,
        intent_id: str,
        amount_minor: Optional[int] = None,
        reason: Optional[str] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundSnapshot: ...

    def verify_and_parse_webhook(self, raw_body: bytes, signature: str) -> WebhookEvent: ...

    def publishable_key(self) -> Optional[str]: ...
