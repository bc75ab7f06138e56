"""
Webhook reconciliation: apply verified provider events to local order state.

Only signature failures reach the caller. Every other problem (missing
metadata, unknown order, lost races, store outages) is logged and the event is
acknowledged so the provider does not keep redelivering it.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import (
    ChargeRefunded,
    IntentCanceled,
    IntentPaymentFailed,
    IntentSucceeded,
    WebhookAck,
    WebhookEvent,
)
from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.ports.webhook_ledger import WebhookEventLedger
from application.utils.orders import (
    CONFLICT_RETRIES,
    UowFactory,
    find_order,
    write_payment_fields,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentUpdateException,
    PaymentAmountMismatchException,
    PaymentSignatureException,
)
from domain.order.entity import Order, OrderStatus, PaymentStatus
from domain.payment.events import NotificationKind
from domain.payment.money import to_minor_units


logger = get_logger(__name__)

# Returns the fields to write, or None when the order already reflects the event
Decision = Callable[[Order], Optional[dict]]

CARD_PAYMENT_METHOD = "CARD"


class WebhookProcessor:
    def __init__(
        self,
        uow_factory: UowFactory,
        gateway: PaymentGateway,
        notifier: Notifier,
        ledger: Optional[WebhookEventLedger] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._notifier = notifier
        self._ledger = ledger

    async def process_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        if not signature or not signature.strip():
            logger.warning("webhook_signature_missing")
            raise PaymentSignatureException("Missing webhook signature")

        # Verification and parsing are a single step; unverified payloads are never decoded
        event = self._gateway.verify_and_parse_webhook(raw_body, signature)
        logger.info("webhook_received", event_id=event.id, event_type=event.type, kind=event.kind)

        if await self._already_seen(event):
            logger.info("webhook_duplicate_event", event_id=event.id, event_type=event.type)
            return WebhookAck()

        try:
            await self._dispatch(event)
        except Exception as exc:
            logger.error(
                "webhook_processing_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return WebhookAck()

        await self._remember(event)
        return WebhookAck()

    async def _dispatch(self, event: WebhookEvent) -> None:
        if isinstance(event, IntentSucceeded):
            await self._on_intent_succeeded(event)
        elif isinstance(event, IntentPaymentFailed):
            await self._on_intent_failed(event)
        elif isinstance(event, ChargeRefunded):
            await self._on_charge_refunded(event)
        elif isinstance(event, IntentCanceled):
            logger.info("webhook_intent_canceled", event_id=event.id, intent_id=event.intent_id, order_id=event.order_id)
        else:
            logger.info("webhook_unhandled_event", event_id=event.id, event_type=event.type)

    async def _on_intent_succeeded(self, event: IntentSucceeded) -> None:
        def decide(order: Order) -> Optional[dict]:
            if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                return None
            expected = to_minor_units(order.total_amount, order.currency)
            if event.amount_minor_units != expected:
                logger.error(
                    "webhook_amount_mismatch",
                    order_id=order.id,
                    intent_id=event.intent_id,
                    expected_minor_units=expected,
                    actual_minor_units=event.amount_minor_units,
                )
                raise PaymentAmountMismatchException(order.id, expected, event.amount_minor_units)
            if order.payment_intent_id and order.payment_intent_id != event.intent_id:
                logger.warning(
                    "webhook_intent_superseded",
                    order_id=order.id,
                    intent_id=event.intent_id,
                    current_intent_id=order.payment_intent_id,
                )
            fields = {
                "payment_status": PaymentStatus.COMPLETED,
                "payment_method": CARD_PAYMENT_METHOD,
            }
            if order.order_status == OrderStatus.PENDING:
                fields["order_status"] = OrderStatus.PROCESSING
            elif order.is_cancelled():
                # Money was taken for an order nobody will fulfil; needs manual reconciliation
                logger.warning(
                    "payment_on_cancelled_order",
                    order_id=order.id,
                    intent_id=event.intent_id,
                    amount_minor_units=event.amount_minor_units,
                )
            return fields

        order = await self._transition(event, decide)
        if order is not None:
            logger.info("payment_completed", order_id=order.id, intent_id=event.intent_id)
            await self._notify(order.id, NotificationKind.ORDER_CONFIRMED)

    async def _on_intent_failed(self, event: IntentPaymentFailed) -> None:
        def decide(order: Order) -> Optional[dict]:
            if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                # Success already applied; a late failure never regresses it
                logger.info(
                    "webhook_failure_after_success",
                    order_id=order.id,
                    intent_id=event.intent_id,
                    payment_status=order.payment_status.value,
                )
                return None
            if order.payment_status != PaymentStatus.PENDING:
                return None
            return {"payment_status": PaymentStatus.FAILED}

        order = await self._transition(event, decide)
        if order is not None:
            logger.info(
                "payment_failed",
                order_id=order.id,
                intent_id=event.intent_id,
                failure_message=event.failure_message,
            )
            await self._notify(order.id, NotificationKind.PAYMENT_FAILED)

    async def _on_charge_refunded(self, event: ChargeRefunded) -> None:
        if not event.fully_refunded:
            logger.info(
                "webhook_partial_refund",
                event_id=event.id,
                order_id=event.order_id,
                amount_refunded_minor_units=event.amount_refunded_minor_units,
            )
            return

        def decide(order: Order) -> Optional[dict]:
            if order.payment_status != PaymentStatus.COMPLETED:
                return None
            return {"payment_status": PaymentStatus.REFUNDED}

        order = await self._transition(event, decide)
        if order is not None:
            logger.info("payment_refunded", order_id=order.id, intent_id=event.intent_id)
            await self._notify(order.id, NotificationKind.REFUND_PROCESSED)

    async def _transition(self, event, decide: Decision) -> Optional[Order]:
        """Read-decide-write against the order named in the event metadata.

        Returns the updated order, or None when nothing was written.
        """
        order_id = event.order_id
        if not order_id:
            logger.warning("webhook_metadata_missing", event_id=event.id, intent_id=event.intent_id)
            return None

        attempt = 0
        while True:
            order = await find_order(self._uow_factory, order_id)
            if order is None:
                logger.warning("webhook_order_missing", event_id=event.id, order_id=order_id)
                return None

            fields = decide(order)
            if fields is None:
                logger.info(
                    "webhook_state_unchanged",
                    event_id=event.id,
                    order_id=order.id,
                    payment_status=order.payment_status.value,
                )
                return None

            try:
                return await write_payment_fields(self._uow_factory, order, **fields)
            except ConcurrentUpdateException:
                if attempt >= CONFLICT_RETRIES:
                    raise
                attempt += 1
                logger.info("webhook_write_retry", event_id=event.id, order_id=order_id)

    async def _notify(self, order_id: str, kind: NotificationKind) -> None:
        try:
            await self._notifier.notify(order_id, kind)
        except Exception as exc:
            logger.warning("webhook_notify_failed", order_id=order_id, kind=kind.value, error=str(exc))

    async def _already_seen(self, event: WebhookEvent) -> bool:
        if self._ledger is None:
            return False
        try:
            return await self._ledger.seen(event.id)
        except Exception as exc:
            logger.warning("webhook_ledger_unavailable", event_id=event.id, error=str(exc))
            return False

    async def _remember(self, event: WebhookEvent) -> None:
        if self._ledger is None:
            return
        try:
            await self._ledger.remember(event.id)
        except Exception as exc:
            logger.warning("webhook_ledger_unavailable", event_id=event.id, error=str(exc))
