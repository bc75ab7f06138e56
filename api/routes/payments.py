"""
Payments API routes.

Keep this thin: request decoding, principal injection and the response
envelope live here; every payment rule lives in PaymentLifecycleService.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from api.dependencies import get_current_principal, get_payment_service
from application.dtos.payments import (
    CreateIntentRequest,
    IntentCredentials,
    PaymentConfig,
    PaymentStatusView,
    RefundOutcome,
    RefundRequest,
    WebhookAck,
)
from application.services.payment_service import PaymentLifecycleService
from core.response import Response as ApiResponse, success_response
from domain.order.entity import Principal


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/config", summary="Publishable key", response_model=ApiResponse[PaymentConfig])
async def payment_config(service: PaymentLifecycleService = Depends(get_payment_service)):
    return success_response(data=service.get_config())


@router.post("/create-intent", summary="Create or reuse payment intent", response_model=ApiResponse[IntentCredentials])
async def create_intent(
    payload: CreateIntentRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    """
    为订单获取支付凭据

    - 订单尚无支付意图：创建新意图并关联到订单
    - 已有可复用意图：原样返回其 client secret，不创建新意图
    """
    credentials = await service.create_or_reuse_intent(payload, principal)
    return success_response(data=credentials, message="Payment intent ready")


@router.get("/status/{payment_intent_id}", summary="Payment status", response_model=ApiResponse[PaymentStatusView])
async def payment_status(
    payment_intent_id: str,
    principal: Principal = Depends(get_current_principal),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    view = await service.get_status(payment_intent_id, principal)
    return success_response(data=view)


@router.post("/refund", summary="Refund an order (admin)", response_model=ApiResponse[RefundOutcome])
async def refund(
    payload: RefundRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    outcome = await service.issue_refund(payload, principal)
    return success_response(data=outcome, message="Refund processed")


@router.post("/webhook", summary="Payment provider webhook", response_model=WebhookAck)
async def webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    service: PaymentLifecycleService = Depends(get_payment_service),
):
    # The provider expects a bare acknowledgement, not the envelope
    raw_body = await request.body()
    return await service.process_webhook(raw_body, stripe_signature)
