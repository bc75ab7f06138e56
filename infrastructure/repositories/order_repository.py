"""
订单仓储实现 - 使用SQLAlchemy实现版本号条件更新
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import (
    ConcurrentUpdateException,
    OrderNotFoundException,
    ServiceUnavailableException,
)
from domain.order.entity import Order, OrderStatus, PaymentStatus
from domain.order.repository import PAYMENT_FIELDS, OrderRepository
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            owner_id=model.owner_id,
            total_amount=Decimal(model.total_amount),
            currency=model.currency,
            order_status=OrderStatus(model.order_status),
            payment_status=PaymentStatus(model.payment_status),
            payment_intent_id=model.payment_intent_id,
            payment_method=model.payment_method,
            version=model.version,
        )

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        try:
            result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        except (OperationalError, InterfaceError) as exc:
            logger.error("order_store_unavailable", order_id=order_id, error=str(exc))
            raise ServiceUnavailableException(details={"order_id": order_id}) from exc
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update_payment_fields(self, order_id: str, expected_version: int, **fields) -> Order:
        """版本号条件更新：UPDATE ... WHERE id = :id AND version = :expected"""
        unknown = set(fields) - PAYMENT_FIELDS
        if unknown:
            raise ValueError(f"不允许写入的字段: {sorted(unknown)}")
        if "payment_intent_id" in fields and not fields["payment_intent_id"]:
            # 支付意图ID只能替换，不能清空
            raise ValueError("payment_intent_id 不能清空")

        values = {k: (v.value if isinstance(v, Enum) else v) for k, v in fields.items()}
        values["version"] = expected_version + 1
        values["updated_at"] = datetime.now(timezone.utc)

        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                exists = await self.session.scalar(select(OrderModel.id).where(OrderModel.id == order_id))
                if exists is None:
                    raise OrderNotFoundException(order_id)
                logger.info("order_version_conflict", order_id=order_id, expected_version=expected_version)
                raise ConcurrentUpdateException(order_id, expected_version)

            refreshed = await self.session.execute(
                select(OrderModel).where(OrderModel.id == order_id).execution_options(populate_existing=True)
            )
        except (OperationalError, InterfaceError) as exc:
            logger.error("order_store_unavailable", order_id=order_id, error=str(exc))
            raise ServiceUnavailableException(details={"order_id": order_id}) from exc
        return self._to_entity(refreshed.scalar_one())
