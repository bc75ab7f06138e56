"""In-memory collaborators for the payment services.

The fakes mirror the production contracts: the order repository performs a
real version check, the gateway honours idempotency keys, and the notifier and
ledger record what they were asked to do.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Optional

import pytest

from application.dtos.payments import (
    PaymentIntentSnapshot,
    RefundSnapshot,
    parse_webhook_event,
)
from application.services.payment_service import PaymentLifecycleService
from domain.common.exceptions import (
    ConcurrentUpdateException,
    OrderNotFoundException,
    PaymentIntentNotFoundException,
    PaymentSignatureException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus, PaymentStatus, Principal, Role
from domain.order.repository import OrderRepository


VALID_SIGNATURE = "t=1,v1=valid"


class OrderStore:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.writes: list[tuple[str, dict]] = []
        # Number of upcoming writes that lose a race regardless of version
        self.forced_conflicts = 0
        # Runs once right before the next write, to simulate a concurrent writer
        self.before_next_write: Optional[Callable[["OrderStore"], None]] = None

    def add(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    def get(self, order_id: str) -> Order:
        return self.orders[order_id]

    def bump(self, order_id: str, **fields) -> None:
        current = self.orders[order_id]
        self.orders[order_id] = replace(current, version=current.version + 1, **fields)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: OrderStore) -> None:
        self._store = store

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        order = self._store.orders.get(order_id)
        return replace(order) if order else None

    async def update_payment_fields(self, order_id: str, expected_version: int, **fields) -> Order:
        hook = self._store.before_next_write
        if hook is not None:
            self._store.before_next_write = None
            hook(self._store)
        if "payment_intent_id" in fields and not fields["payment_intent_id"]:
            raise ValueError("payment_intent_id cannot be cleared")
        current = self._store.orders.get(order_id)
        if current is None:
            raise OrderNotFoundException(order_id)
        if self._store.forced_conflicts > 0:
            self._store.forced_conflicts -= 1
            raise ConcurrentUpdateException(order_id, expected_version)
        if current.version != expected_version:
            raise ConcurrentUpdateException(order_id, expected_version)
        updated = replace(current, version=current.version + 1, **fields)
        self._store.orders[order_id] = updated
        self._store.writes.append((order_id, fields))
        return replace(updated)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: OrderStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._store = store

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.order_repository = InMemoryOrderRepository(self._store)
        return self

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


class FakeGateway:
    provider = "fake"

    def __init__(self) -> None:
        self.intents: dict[str, PaymentIntentSnapshot] = {}
        self.create_calls: list[dict] = []
        self.canceled: list[str] = []
        self.refunds: list[dict] = []
        self.verify_calls = 0
        self.fail_with: Optional[Exception] = None
        self._by_idempotency_key: dict[str, str] = {}
        self._seq = 0

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def add_intent(self, intent_id: str, amount_minor: int, *, status: str = "requires_payment_method",
                   order_id: Optional[str] = None, currency: str = "usd") -> PaymentIntentSnapshot:
        intent = PaymentIntentSnapshot(
            id=intent_id,
            amount_minor_units=amount_minor,
            currency=currency,
            status=status,
            client_secret=f"{intent_id}_secret",
            metadata={"orderId": order_id} if order_id else {},
        )
        self.intents[intent_id] = intent
        return intent

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id] = self.intents[intent_id].model_copy(update={"status": status})

    async def create_intent(self, amount_minor, currency, metadata, *, idempotency_key=None):
        self._maybe_fail()
        self.create_calls.append(
            {"amount_minor": amount_minor, "currency": currency, "metadata": dict(metadata), "idempotency_key": idempotency_key}
        )
        # Let concurrent callers interleave like a real network call would
        await asyncio.sleep(0)
        if idempotency_key and idempotency_key in self._by_idempotency_key:
            return self.intents[self._by_idempotency_key[idempotency_key]]
        self._seq += 1
        intent_id = f"pi_{self._seq}"
        intent = PaymentIntentSnapshot(
            id=intent_id,
            amount_minor_units=amount_minor,
            currency=currency,
            status="requires_payment_method",
            client_secret=f"{intent_id}_secret",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        if idempotency_key:
            self._by_idempotency_key[idempotency_key] = intent_id
        return intent

    async def get_intent(self, intent_id):
        self._maybe_fail()
        if intent_id not in self.intents:
            raise PaymentIntentNotFoundException(intent_id)
        return self.intents[intent_id]

    async def cancel_intent(self, intent_id):
        self.canceled.append(intent_id)
        self.set_status(intent_id, "canceled")
        return self.intents[intent_id]

    async def create_refund(self, intent_id, amount_minor=None, reason=None, *, idempotency_key=None):
        self._maybe_fail()
        self.refunds.append(
            {"intent_id": intent_id, "amount_minor": amount_minor, "reason": reason, "idempotency_key": idempotency_key}
        )
        amount = amount_minor if amount_minor is not None else self.intents[intent_id].amount_minor_units
        return RefundSnapshot(
            id=f"re_{len(self.refunds)}",
            intent_id=intent_id,
            amount_minor_units=amount,
            status="succeeded",
            reason=reason,
        )

    def verify_and_parse_webhook(self, raw_body, signature):
        self.verify_calls += 1
        if signature != VALID_SIGNATURE:
            raise PaymentSignatureException()
        return parse_webhook_event(json.loads(raw_body))

    def publishable_key(self):
        return "pk_test_fake"


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def notify(self, order_id, kind) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((order_id, kind.value))


class InMemoryLedger:
    def __init__(self) -> None:
        self.events: set[str] = set()
        self.broken = False

    async def seen(self, event_id: str) -> bool:
        if self.broken:
            raise ConnectionError("redis down")
        return event_id in self.events

    async def remember(self, event_id: str) -> None:
        if self.broken:
            raise ConnectionError("redis down")
        self.events.add(event_id)


@pytest.fixture
def store() -> OrderStore:
    return OrderStore()


@pytest.fixture
def uow_factory(store):
    def _factory(**kwargs) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store, **kwargs)
    return _factory


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def service(uow_factory, gateway, notifier, ledger) -> PaymentLifecycleService:
    return PaymentLifecycleService(uow_factory=uow_factory, gateway=gateway, notifier=notifier, ledger=ledger)


@pytest.fixture
def customer() -> Principal:
    return Principal(id="u1")


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def make_order(store):
    def _make(order_id: str = "o1", *, owner_id: str = "u1", total: str = "100.00", **fields) -> Order:
        return store.add(Order(id=order_id, owner_id=owner_id, total_amount=Decimal(total), **fields))
    return _make


@pytest.fixture
def paid_order(make_order, gateway):
    """Order o1 paid through intent pi_paid."""
    gateway.add_intent("pi_paid", 10000, status="succeeded", order_id="o1")
    return make_order(
        payment_intent_id="pi_paid",
        payment_status=PaymentStatus.COMPLETED,
        order_status=OrderStatus.PROCESSING,
        payment_method="CARD",
    )


@pytest.fixture
def webhook_body():
    def _body(kind: str, *, event_id: str = "evt_1", order_id: Optional[str] = "o1", intent_id: str = "pi_1", **fields) -> bytes:
        event = {
            "id": event_id,
            "type": kind,
            "kind": kind,
            "intent_id": intent_id,
            "metadata": {"orderId": order_id} if order_id else {},
        }
        if kind == "intent.succeeded":
            event.update(amount_minor_units=10000, currency="usd")
        if kind == "charge.refunded":
            event.update(amount_minor_units=10000, amount_refunded_minor_units=10000, currency="usd")
        if kind == "unrecognized":
            event = {"id": event_id, "type": "customer.created", "kind": kind}
        event.update(fields)
        return json.dumps(event).encode("utf-8")
    return _body
