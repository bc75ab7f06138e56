"""
API依赖项 - 调用方身份解析与支付服务装配
"""
from functools import lru_cache
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.ports.payment_gateway import PaymentGateway
from application.ports.webhook_ledger import WebhookEventLedger
from application.services.payment_service import PaymentLifecycleService
from core.config import settings
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.order.entity import Principal, Role
from infrastructure.external.cache import RedisWebhookEventLedger, get_redis_client
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks import CeleryNotifier
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

# HTTP Bearer for direct API calls; tokens are issued by the upstream auth service
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the authentication service",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("未提供认证凭据")


async def get_current_principal(token: str = Depends(get_token)) -> Principal:
    """
    解析访问令牌得到调用方身份

    认证由上游服务完成，这里只校验签名并读取 sub / role 声明。
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedException("无效的认证凭据")

    subject = payload.get("sub")
    if not subject:
        raise UnauthorizedException("无效的认证凭据")
    try:
        role = Role(str(payload.get("role") or Role.CUSTOMER.value).upper())
    except ValueError:
        role = Role.CUSTOMER

    structlog.contextvars.bind_contextvars(principal_id=str(subject))
    return Principal(id=str(subject), role=role)


@lru_cache
def get_gateway() -> PaymentGateway:
    """进程内复用同一个支付渠道客户端（客户端本身不缓存任何订单/意图状态）"""
    return get_payment_gateway()


async def get_webhook_ledger() -> Optional[WebhookEventLedger]:
    """未配置 Redis 时返回 None，去重退化为基于订单状态的判断"""
    if not settings.redis.url:
        return None
    try:
        client = await get_redis_client()
    except Exception as exc:
        logger.warning("webhook_ledger_unavailable", error=str(exc))
        return None
    return RedisWebhookEventLedger(client, ttl_seconds=payment_settings.webhook.dedup_ttl_seconds)


async def get_payment_service(
    ledger: Optional[WebhookEventLedger] = Depends(get_webhook_ledger),
) -> PaymentLifecycleService:
    return PaymentLifecycleService(
        uow_factory=SQLAlchemyUnitOfWork,
        gateway=get_gateway(),
        notifier=CeleryNotifier(),
        ledger=ledger,
    )
