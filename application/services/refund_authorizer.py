"""
退款授权 - 校验角色与订单支付状态后向支付渠道发起退款
"""
from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Optional

from application.dtos.payments import RefundSnapshot
from application.ports.notifier import Notifier
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
    PaymentForbiddenException,
    RefundExceedsPaymentException,
)
from domain.order.entity import Order, PaymentStatus, Principal
from domain.payment.events import NotificationKind
from domain.payment.money import to_minor_units


logger = get_logger(__name__)


def _refund_idempotency_key(order: Order, amount_minor: Optional[int], reason: Optional[str]) -> str:
    base = f"refund|{order.id}|{order.payment_intent_id}|{amount_minor if amount_minor is not None else 'full'}|{reason or ''}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class RefundAuthorizer:
    """
    退款流程：
    1. 仅管理员可发起，且在任何远程调用之前校验
    2. 订单必须已关联支付意图且支付状态为 COMPLETED
    3. 部分退款不改变支付状态；全额退款将支付状态置为 REFUNDED
    """

    def __init__(self, uow_factory: UowFactory, gateway: PaymentGateway, notifier: Notifier) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._notifier = notifier

    async def issue_refund(
        self,
        order_id: str,
        amount: Optional[Decimal],
        reason: Optional[str],
        principal: Principal,
    ) -> tuple[Order, RefundSnapshot]:
        if not principal.is_admin:
            raise PaymentForbiddenException("Only administrators can issue refunds")

        order = await load_order(self._uow_factory, order_id)
        if not order.payment_intent_id:
            raise InvalidPaymentStateException(
                "Order has no payment to refund", order_id=order.id, state=order.payment_status.value
            )
        if not order.is_paid():
            raise InvalidPaymentStateException(
                "Order payment is not completed", order_id=order.id, state=order.payment_status.value
            )
        if amount is not None and amount > order.total_amount:
            raise RefundExceedsPaymentException(amount, order.total_amount)

        full_refund = amount is None or amount == order.total_amount
        amount_minor = None if full_refund else to_minor_units(amount, order.currency)

        logger.info(
            "refund_request",
            order_id=order.id,
            intent_id=order.payment_intent_id,
            amount_minor_units=amount_minor,
            full_refund=full_refund,
            reason=reason,
            admin_id=principal.id,
        )
        refund = await self._gateway.create_refund(
            order.payment_intent_id,
            amount_minor,
            reason,
            idempotency_key=_refund_idempotency_key(order, amount_minor, reason),
        )
        logger.info(
            "refund_created",
            order_id=order.id,
            refund_id=refund.id,
            status=refund.status,
            amount_minor_units=refund.amount_minor_units,
        )

        if full_refund:
            order = await self._mark_refunded(order)

        try:
            await self._notifier.notify(order.id, NotificationKind.REFUND_PROCESSED)
        except Exception as exc:
            logger.warning("refund_notify_failed", order_id=order.id, error=str(exc))
        return order, refund

    async def _mark_refunded(self, order: Order) -> Order:
        attempt = 0
        while True:
            try:
                return await write_payment_fields(
                    self._uow_factory, order, payment_status=PaymentStatus.REFUNDED
                )
            except ConcurrentUpdateException:
                if attempt >= CONFLICT_RETRIES:
                    logger.error("refund_mark_conflict", order_id=order.id)
                    raise
                attempt += 1
                order = await load_order(self._uow_factory, order.id)
                if order.payment_status == PaymentStatus.REFUNDED:
                    # charge.refunded webhook got there first
                    return order
