"""
订单领域实体 - 仅包含支付相关字段及其业务规则
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单履约状态"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """订单支付状态（与履约状态正交）"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Principal:
    """已通过认证的调用方"""
    id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class Order:
    """
    订单实体（支付视角）

    业务规则：
    1. total_amount 非负，创建支付意图前已确定，之后不可变
    2. payment_intent_id 一旦设置只能替换为新的意图ID，不能清空
    3. version 为乐观锁版本号，每次写入支付字段时递增
    """

    id: str
    owner_id: str
    total_amount: Decimal
    order_status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_intent_id: Optional[str] = None
    payment_method: Optional[str] = None
    currency: str = "usd"
    version: int = 0

    def __post_init__(self):
        if self.total_amount < 0:
            raise DomainValidationException(
                f"订单金额不能为负数: {self.total_amount}",
                field="total_amount",
            )

    def is_owned_by(self, principal: Principal) -> bool:
        return self.owner_id == principal.id

    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED

    def is_refunded(self) -> bool:
        return self.payment_status == PaymentStatus.REFUNDED

    def is_cancelled(self) -> bool:
        return self.order_status == OrderStatus.CANCELLED
