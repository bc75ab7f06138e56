"""
Application service orchestrating payment use-cases.

This class depends only on the application ports and DTOs. Gateway, notifier
and ledger implementations are provided by infrastructure and injected from
the composition root (API/tasks), keeping dependencies one-way.

Amounts leave this façade in major units; everything below it works in minor
units. The conversion happens here, through domain.payment.money.
"""
from __future__ import annotations

from typing import Optional

from application.dtos.payments import (
    CreateIntentRequest,
    IntentCredentials,
    PaymentConfig,
    PaymentStatusView,
    RefundOrderView,
    RefundOutcome,
    RefundRequest,
    RefundView,
    WebhookAck,
)
from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.ports.webhook_ledger import WebhookEventLedger
from application.services.intent_resolver import IntentResolver
from application.services.refund_authorizer import RefundAuthorizer
from application.services.webhook_processor import WebhookProcessor
from application.utils.orders import UowFactory, load_order
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException, PaymentForbiddenException
from domain.order.entity import Principal
from domain.payment.money import to_major_units


logger = get_logger(__name__)


class PaymentLifecycleService:
    def __init__(
        self,
        uow_factory: UowFactory,
        gateway: PaymentGateway,
        notifier: Notifier,
        ledger: Optional[WebhookEventLedger] = None,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self._resolver = IntentResolver(uow_factory, gateway)
        self._refunds = RefundAuthorizer(uow_factory, gateway, notifier)
        self._webhooks = WebhookProcessor(uow_factory, gateway, notifier, ledger)

    async def create_or_reuse_intent(self, req: CreateIntentRequest, principal: Principal) -> IntentCredentials:
        logger.info("payment_intent_request", order_id=req.order_id, principal_id=principal.id)
        order, intent = await self._resolver.resolve(req.order_id, principal)
        return IntentCredentials(
            client_secret=intent.client_secret,
            intent_id=intent.id,
            amount_major_units=to_major_units(intent.amount_minor_units, intent.currency),
            order_id=order.id,
        )

    async def get_status(self, intent_id: str, principal: Principal) -> PaymentStatusView:
        intent = await self.gateway.get_intent(intent_id)
        if not intent.order_id:
            logger.warning("payment_status_untracked_intent", intent_id=intent_id)
            raise OrderNotFoundException()
        order = await load_order(self._uow_factory, intent.order_id)
        if not order.is_owned_by(principal):
            raise PaymentForbiddenException("Unauthorized to view this payment")
        return PaymentStatusView(
            status=intent.status,
            amount_major_units=to_major_units(intent.amount_minor_units, intent.currency),
            currency=intent.currency,
            order_id=order.id,
            payment_method=intent.payment_method,
        )

    async def issue_refund(self, req: RefundRequest, principal: Principal) -> RefundOutcome:
        order, refund = await self._refunds.issue_refund(req.order_id, req.amount, req.reason, principal)
        return RefundOutcome(
            refund=RefundView(
                id=refund.id,
                amount_major_units=to_major_units(refund.amount_minor_units, order.currency),
                status=refund.status,
                reason=refund.reason,
            ),
            order=RefundOrderView(id=order.id, payment_status=order.payment_status.value),
        )

    async def process_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        return await self._webhooks.process_webhook(raw_body, signature)

    def get_config(self) -> PaymentConfig:
        return PaymentConfig(publishable_key=self.gateway.publishable_key())
