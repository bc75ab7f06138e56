"""Unit of Work 抽象定义

支付服务的每次订单读写都是一个独立的短事务：读取使用 readonly=True，
条件更新在退出时自动提交，异常时回滚。
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import OrderRepository


class AbstractUnitOfWork(ABC):
    order_repository: OrderRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self._committed = False

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not (self._readonly or self._committed):
            await self.commit()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
