"""
Intent resolution: decide whether an order's checkout reuses its current
payment intent or needs a fresh one.

Concurrent checkouts for the same order are serialized by the version-checked
write on the order; the remote create call carries an idempotency key derived
from the order state, so duplicate requests collapse onto one remote intent.
"""
from __future__ import annotations

import hashlib

from application.dtos.payments import PaymentIntentSnapshot
from application.ports.payment_gateway import PaymentGateway
from application.utils.orders import (
    CONFLICT_RETRIES,
    UowFactory,
    load_order,
    write_payment_fields,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentUpdateException,
    InvalidPaymentStateException,
    PaymentAmountMismatchException,
    PaymentForbiddenException,
    PaymentIntentNotFoundException,
)
from domain.order.entity import Order, Principal
from domain.payment.money import to_minor_units


logger = get_logger(__name__)

# Remote intents in these states can never take a payment for this order again.
NON_REUSABLE_STATUSES = frozenset({"canceled", "succeeded"})


def _create_idempotency_key(order: Order, amount_minor: int) -> str:
    # Stable for a given order state: duplicate checkouts map to the same remote intent
    base = f"create|{order.id}|{amount_minor}|{order.currency.lower()}|{order.payment_intent_id or ''}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class IntentResolver:
    def __init__(self, uow_factory: UowFactory, gateway: PaymentGateway) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway

    async def resolve(self, order_id: str, principal: Principal) -> tuple[Order, PaymentIntentSnapshot]:
        abandoned: list[str] = []
        attempt = 0
        while True:
            order = await load_order(self._uow_factory, order_id)
            self._check_payable(order, principal)

            intent = await self._reusable_intent(order)
            if intent is not None:
                await self._release(abandoned, keep=intent.id)
                return order, intent

            previous_intent_id = order.payment_intent_id
            intent = await self._create_intent(order)
            try:
                order = await write_payment_fields(
                    self._uow_factory, order, payment_intent_id=intent.id
                )
            except ConcurrentUpdateException:
                abandoned.append(intent.id)
                if attempt >= CONFLICT_RETRIES:
                    logger.warning("intent_attach_conflict", order_id=order_id, intent_id=intent.id)
                    raise
                attempt += 1
                logger.info("intent_attach_retry", order_id=order_id, intent_id=intent.id)
                continue

            logger.info(
                "intent_attached",
                order_id=order.id,
                intent_id=intent.id,
                previous_intent_id=previous_intent_id,
            )
            await self._release(abandoned, keep=intent.id)
            return order, intent

    def _check_payable(self, order: Order, principal: Principal) -> None:
        if not order.is_owned_by(principal):
            raise PaymentForbiddenException("Unauthorized to pay for this order")
        if order.is_paid():
            raise InvalidPaymentStateException(
                "Order has already been paid", order_id=order.id, state=order.payment_status.value
            )
        if order.is_refunded():
            # A refunded order never takes another payment; a later success would not be recorded
            raise InvalidPaymentStateException(
                "Order has been refunded", order_id=order.id, state=order.payment_status.value
            )
        if order.is_cancelled():
            raise InvalidPaymentStateException(
                "Cannot pay for a cancelled order", order_id=order.id, state=order.order_status.value
            )

    async def _reusable_intent(self, order: Order) -> PaymentIntentSnapshot | None:
        if not order.payment_intent_id:
            return None
        try:
            intent = await self._gateway.get_intent(order.payment_intent_id)
        except PaymentIntentNotFoundException:
            logger.warning("intent_missing_at_provider", order_id=order.id, intent_id=order.payment_intent_id)
            return None
        if intent.status in NON_REUSABLE_STATUSES:
            if intent.status == "succeeded":
                # Paid remotely but never completed locally; hand out a fresh intent
                logger.warning(
                    "intent_succeeded_without_completion",
                    order_id=order.id,
                    intent_id=intent.id,
                    payment_status=order.payment_status.value,
                )
            else:
                logger.info("intent_not_reusable", order_id=order.id, intent_id=intent.id, status=intent.status)
            return None

        expected = to_minor_units(order.total_amount, order.currency)
        if intent.amount_minor_units != expected:
            logger.error(
                "intent_amount_mismatch",
                order_id=order.id,
                intent_id=intent.id,
                expected_minor_units=expected,
                actual_minor_units=intent.amount_minor_units,
            )
            raise PaymentAmountMismatchException(order.id, expected, intent.amount_minor_units)

        logger.info("intent_reused", order_id=order.id, intent_id=intent.id, status=intent.status)
        return intent

    async def _create_intent(self, order: Order) -> PaymentIntentSnapshot:
        amount_minor = to_minor_units(order.total_amount, order.currency)
        intent = await self._gateway.create_intent(
            amount_minor,
            order.currency,
            {"orderId": order.id, "ownerId": order.owner_id},
            idempotency_key=_create_idempotency_key(order, amount_minor),
        )
        logger.info("intent_created", order_id=order.id, intent_id=intent.id, amount_minor_units=amount_minor)
        return intent

    async def _release(self, abandoned: list[str], *, keep: str) -> None:
        """Cancel intents this call created but did not get to attach."""
        for intent_id in dict.fromkeys(abandoned):
            if intent_id == keep:
                continue
            try:
                await self._gateway.cancel_intent(intent_id)
                logger.info("intent_abandoned_canceled", intent_id=intent_id)
            except Exception as exc:
                logger.warning("intent_abandoned_cancel_failed", intent_id=intent_id, error=str(exc))
