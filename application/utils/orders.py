"""Order store helpers shared by the payment services.

Every read and every write runs in its own short unit of work so that no
transaction is held open across a remote provider call.
"""
from __future__ import annotations

from typing import Callable

from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order


UowFactory = Callable[..., AbstractUnitOfWork]

# A losing writer re-runs its read-decide-write cycle this many times before surfacing Conflict.
CONFLICT_RETRIES = 1


async def find_order(uow_factory: UowFactory, order_id: str) -> Order | None:
    async with uow_factory(readonly=True) as uow:
        return await uow.order_repository.get_by_id(order_id)


async def load_order(uow_factory: UowFactory, order_id: str) -> Order:
    order = await find_order(uow_factory, order_id)
    if order is None:
        raise OrderNotFoundException(order_id)
    return order


async def write_payment_fields(uow_factory: UowFactory, order: Order, **fields) -> Order:
    """Version-checked write against the snapshot the caller decided on."""
    async with uow_factory() as uow:
        return await uow.order_repository.update_payment_fields(order.id, order.version, **fields)
