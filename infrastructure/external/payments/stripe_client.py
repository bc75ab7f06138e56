"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- Module-level resources (`stripe.PaymentIntent`, `stripe.Refund`) accept
  `idempotency_key` as a request option kwarg.
- Webhook authenticity is checked with `stripe.WebhookSignature.verify_header`
  against the raw body and the `Stripe-Signature` header; the payload is only
  decoded after verification succeeds.
- The SDK's own network retries are disabled; retries happen in BasePaymentClient.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import stripe
from pydantic import ValidationError

from application.dtos.payments import (
    PaymentIntentSnapshot,
    RefundSnapshot,
    Unrecognized,
    WebhookEvent,
    parse_webhook_event,
)
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import (
    PaymentIntentNotFoundException,
    PaymentProviderException,
    PaymentSignatureException,
)
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import PROVIDER_EVENT_TO_KIND


logger = get_logger(__name__)

# Stripe error code for an unknown object id
RESOURCE_MISSING = "resource_missing"


class StripeClient(BasePaymentClient):
    provider = "stripe"
    transient_errors = BasePaymentClient.transient_errors + (
        stripe.APIConnectionError,
        stripe.RateLimitError,
    )

    def __init__(self, config: Optional[PaymentSettings] = None):
        config = config or payment_settings
        super().__init__(
            timeouts=config.timeouts.model_dump(),
            retry={"max": config.retry.max, "base": config.retry.base_backoff},
        )
        if not config.stripe.secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        self._config = config
        self._request_options: dict[str, Any] = {"api_key": config.stripe.secret_key}
        if config.stripe.api_version:
            self._request_options["stripe_version"] = config.stripe.api_version
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=config.timeouts.read)

    # ---- intents -----------------------------------------------------------

    async def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        *,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentSnapshot:
        pi = await self._sdk(
            "create_intent",
            stripe.PaymentIntent.create,
            amount=amount_minor,
            currency=currency.lower(),
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
            idempotency_key=idempotency_key,
        )
        self._log("provider_intent_created", intent_id=pi["id"], status=pi["status"])
        return self._intent_snapshot(pi)

    async def get_intent(self, intent_id: str) -> PaymentIntentSnapshot:
        pi = await self._sdk("get_intent", stripe.PaymentIntent.retrieve, intent_id)
        return self._intent_snapshot(pi)

    async def cancel_intent(self, intent_id: str) -> PaymentIntentSnapshot:
        pi = await self._sdk("cancel_intent", stripe.PaymentIntent.cancel, intent_id)
        self._log("provider_intent_canceled", intent_id=intent_id)
        return self._intent_snapshot(pi)

    # ---- refunds -----------------------------------------------------------

    async def create_refund(
        self,
        intent_id: str,
        amount_minor: Optional[int] = None,
        reason: Optional[str] = None,
        *,
        idempotency_key: Optional[str] = None,
    ) -> RefundSnapshot:
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount_minor is not None:
            params["amount"] = amount_minor
        if reason:
            params["reason"] = reason
        refund = await self._sdk(
            "create_refund", stripe.Refund.create, idempotency_key=idempotency_key, **params
        )
        self._log("provider_refund_created", intent_id=intent_id, refund_id=refund["id"], status=refund.get("status"))
        return RefundSnapshot(
            id=str(refund["id"]),
            intent_id=intent_id,
            amount_minor_units=int(refund["amount"]),
            status=str(refund.get("status") or ""),
            reason=refund.get("reason"),
        )

    # ---- webhooks ----------------------------------------------------------

    def verify_and_parse_webhook(self, raw_body: bytes, signature: str) -> WebhookEvent:
        secret = self._config.stripe.webhook_secret
        if not secret:
            logger.error("stripe_webhook_secret_missing")
            raise PaymentSignatureException("Webhook verification is not configured")
        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, (bytes, bytearray)) else raw_body
        except UnicodeDecodeError as exc:
            logger.warning("stripe_webhook_body_not_utf8", error=str(exc))
            raise PaymentSignatureException("Webhook payload is not valid UTF-8") from exc
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature, secret, tolerance=self._config.webhook.tolerance_seconds
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_webhook_signature_invalid", error=str(exc))
            raise PaymentSignatureException() from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise PaymentSignatureException("Webhook payload is not valid JSON") from exc
        return self._decode_event(event)

    def publishable_key(self) -> Optional[str]:
        return self._config.stripe.publishable_key

    # ---- helpers -----------------------------------------------------------

    async def _sdk(self, operation: str, fn, *args, **kwargs):
        try:
            return await self._call(operation, fn, *args, **self._request_options, **kwargs)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) != RESOURCE_MISSING:
                raise self._provider_error(operation, exc) from exc
            logger.info("stripe_resource_missing", operation=operation, error=str(exc))
            raise PaymentIntentNotFoundException(args[0] if args else None) from exc
        except stripe.StripeError as exc:
            raise self._provider_error(operation, exc) from exc

    def _provider_error(self, operation: str, exc: Exception) -> PaymentProviderException:
        logger.error(
            "stripe_request_failed",
            operation=operation,
            error_type=type(exc).__name__,
            stripe_code=getattr(exc, "code", None),
            http_status=getattr(exc, "http_status", None),
            error=str(exc),
        )
        return PaymentProviderException(
            "Payment provider rejected the request",
            details={"provider": self.provider, "provider_code": getattr(exc, "code", None)},
        )

    @staticmethod
    def _intent_snapshot(pi) -> PaymentIntentSnapshot:
        payment_method = pi.get("payment_method")
        if payment_method is not None and not isinstance(payment_method, str):
            payment_method = payment_method.get("id")
        return PaymentIntentSnapshot(
            id=str(pi["id"]),
            amount_minor_units=int(pi["amount"]),
            currency=str(pi["currency"]),
            status=str(pi["status"]),
            client_secret=pi.get("client_secret"),
            metadata={str(k): str(v) for k, v in (pi.get("metadata") or {}).items()},
            payment_method=payment_method,
        )

    def _decode_event(self, event: dict[str, Any]) -> WebhookEvent:
        event_id = str(event.get("id") or "")
        event_type = str(event.get("type") or "")
        kind = PROVIDER_EVENT_TO_KIND[self.provider].get(event_type)
        if kind is None:
            return Unrecognized(id=event_id, type=event_type, provider=self.provider)

        obj = (event.get("data") or {}).get("object") or {}
        fields: dict[str, Any] = {
            "id": event_id,
            "type": event_type,
            "provider": self.provider,
            "kind": kind,
            "metadata": {str(k): str(v) for k, v in (obj.get("metadata") or {}).items()},
        }
        if kind == "charge.refunded":
            fields.update(
                intent_id=obj.get("payment_intent") or "",
                amount_minor_units=obj.get("amount"),
                amount_refunded_minor_units=obj.get("amount_refunded"),
                currency=obj.get("currency"),
            )
        else:
            fields["intent_id"] = obj.get("id") or ""
            if kind == "intent.succeeded":
                fields.update(amount_minor_units=obj.get("amount"), currency=obj.get("currency"))
            elif kind == "intent.payment_failed":
                fields["failure_message"] = (obj.get("last_payment_error") or {}).get("message")

        try:
            return parse_webhook_event(fields)
        except ValidationError as exc:
            # Authentic but not shaped the way we expect; acknowledge rather than fail
            logger.warning("stripe_webhook_payload_unexpected", event_id=event_id, event_type=event_type, error=str(exc))
            return Unrecognized(id=event_id, type=event_type, provider=self.provider)
