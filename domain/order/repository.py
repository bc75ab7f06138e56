"""
订单仓储接口 - 仅暴露本子系统需要的读取与条件更新
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


# Fields the payment core is allowed to write.
PAYMENT_FIELDS = frozenset({"payment_intent_id", "payment_status", "order_status", "payment_method"})


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def update_payment_fields(self, order_id: str, expected_version: int, **fields) -> Order:
        """
        基于版本号的条件更新（compare-and-swap）

        仅当订单当前版本等于 expected_version 时写入，并将版本号加一；
        否则抛出 ConcurrentUpdateException。订单不存在时抛出 OrderNotFoundException。
        只允许写入 PAYMENT_FIELDS；payment_intent_id 不能写为空值（ValueError）。
        """
        pass
