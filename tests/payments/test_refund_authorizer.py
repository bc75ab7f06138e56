from decimal import Decimal

import pytest

from application.services.refund_authorizer import RefundAuthorizer
from domain.common.exceptions import (
    ConcurrentUpdateException,
    InvalidPaymentStateException,
    OrderNotFoundException,
    PaymentForbiddenException,
    RefundExceedsPaymentException,
    ServiceUnavailableException,
)
from domain.order.entity import PaymentStatus


@pytest.fixture
def authorizer(uow_factory, gateway, notifier):
    return RefundAuthorizer(uow_factory, gateway, notifier)


@pytest.mark.asyncio
async def test_full_refund_marks_order_refunded(authorizer, paid_order, admin, store, gateway, notifier):
    order, refund = await authorizer.issue_refund("o1", None, "requested_by_customer", admin)

    assert order.payment_status == PaymentStatus.REFUNDED
    assert store.get("o1").payment_status == PaymentStatus.REFUNDED
    assert refund.amount_minor_units == 10000
    assert gateway.refunds[0]["amount_minor"] is None
    assert gateway.refunds[0]["reason"] == "requested_by_customer"
    assert notifier.sent == [("o1", "refund_processed")]


@pytest.mark.asyncio
async def test_refund_of_exact_total_counts_as_full(authorizer, paid_order, admin, store, gateway):
    order, _ = await authorizer.issue_refund("o1", Decimal("100.00"), None, admin)

    assert order.payment_status == PaymentStatus.REFUNDED
    assert gateway.refunds[0]["amount_minor"] is None


@pytest.mark.asyncio
async def test_partial_refund_keeps_completed(authorizer, paid_order, admin, store, gateway):
    order, refund = await authorizer.issue_refund("o1", Decimal("25.50"), None, admin)

    assert order.payment_status == PaymentStatus.COMPLETED
    assert store.get("o1").version == 0
    assert refund.amount_minor_units == 2550
    assert gateway.refunds[0]["amount_minor"] == 2550


@pytest.mark.asyncio
async def test_customer_cannot_refund(authorizer, paid_order, customer, gateway):
    with pytest.raises(PaymentForbiddenException):
        await authorizer.issue_refund("o1", None, None, customer)
    assert gateway.refunds == []


@pytest.mark.asyncio
async def test_unknown_order(authorizer, admin):
    with pytest.raises(OrderNotFoundException):
        await authorizer.issue_refund("nope", None, None, admin)


@pytest.mark.asyncio
async def test_order_without_intent_cannot_be_refunded(authorizer, make_order, admin, gateway):
    make_order(payment_status=PaymentStatus.COMPLETED)

    with pytest.raises(InvalidPaymentStateException):
        await authorizer.issue_refund("o1", None, None, admin)
    assert gateway.refunds == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED])
async def test_only_completed_payments_are_refundable(authorizer, make_order, admin, gateway, status):
    make_order(payment_intent_id="pi_1", payment_status=status)

    with pytest.raises(InvalidPaymentStateException):
        await authorizer.issue_refund("o1", None, None, admin)
    assert gateway.refunds == []


@pytest.mark.asyncio
async def test_refund_above_total_rejected(authorizer, paid_order, admin, gateway):
    with pytest.raises(RefundExceedsPaymentException):
        await authorizer.issue_refund("o1", Decimal("100.01"), None, admin)
    assert gateway.refunds == []


@pytest.mark.asyncio
async def test_repeated_refund_reuses_idempotency_key(authorizer, make_order, admin, gateway):
    make_order(payment_intent_id="pi_1", payment_status=PaymentStatus.COMPLETED)
    gateway.add_intent("pi_1", 10000, status="succeeded", order_id="o1")

    await authorizer.issue_refund("o1", Decimal("10.00"), "duplicate", admin)
    await authorizer.issue_refund("o1", Decimal("10.00"), "duplicate", admin)
    await authorizer.issue_refund("o1", Decimal("20.00"), "duplicate", admin)

    keys = [call["idempotency_key"] for call in gateway.refunds]
    assert keys[0] == keys[1]
    assert keys[0] != keys[2]


@pytest.mark.asyncio
async def test_webhook_refund_winning_the_race_is_accepted(authorizer, paid_order, admin, store):
    # charge.refunded lands between the provider call and the local write
    store.before_next_write = lambda s: s.bump("o1", payment_status=PaymentStatus.REFUNDED)

    order, _ = await authorizer.issue_refund("o1", None, None, admin)

    assert order.payment_status == PaymentStatus.REFUNDED
    assert store.get("o1").version == 1


@pytest.mark.asyncio
async def test_persistent_conflict_surfaces(authorizer, paid_order, admin, store):
    store.forced_conflicts = 2

    with pytest.raises(ConcurrentUpdateException):
        await authorizer.issue_refund("o1", None, None, admin)


@pytest.mark.asyncio
async def test_provider_outage_propagates(authorizer, paid_order, admin, store, gateway):
    gateway.fail_with = ServiceUnavailableException()

    with pytest.raises(ServiceUnavailableException):
        await authorizer.issue_refund("o1", None, None, admin)
    assert store.get("o1").payment_status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_notifier_failure_does_not_undo_refund(authorizer, paid_order, admin, store, notifier):
    notifier.fail = True

    order, _ = await authorizer.issue_refund("o1", None, None, admin)

    assert order.payment_status == PaymentStatus.REFUNDED
