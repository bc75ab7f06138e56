import pytest

pytest.importorskip("celery")
pytest.importorskip("redis")

from domain.payment.events import NotificationKind
from infrastructure.external.cache import RedisWebhookEventLedger
from infrastructure.tasks import CeleryNotifier, TaskDispatcher, celery_app


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def exists(self, key):
        return int(key in self.data)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True


class RecordingDispatcher(TaskDispatcher):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def enqueue(self, task_name, *, args=None, kwargs=None):
        if self.fail:
            raise ConnectionError("broker down")
        self.calls.append((task_name, kwargs))


@pytest.mark.asyncio
async def test_ledger_remembers_with_ttl():
    client = FakeRedis()
    ledger = RedisWebhookEventLedger(client, ttl_seconds=60)

    assert await ledger.seen("evt_1") is False
    await ledger.remember("evt_1")

    assert await ledger.seen("evt_1") is True
    (key,) = client.data
    assert key.endswith("webhook:event:evt_1")
    assert client.ttls[key] == 60


@pytest.mark.asyncio
async def test_notifier_enqueues_by_task_name():
    dispatcher = RecordingDispatcher()

    await CeleryNotifier(dispatcher).notify("o1", NotificationKind.ORDER_CONFIRMED)

    assert dispatcher.calls == [
        ("notifications.order_payment", {"order_id": "o1", "kind": "order_confirmed"})
    ]


@pytest.mark.asyncio
async def test_notifier_swallows_broker_errors():
    await CeleryNotifier(RecordingDispatcher(fail=True)).notify("o1", NotificationKind.PAYMENT_FAILED)


def test_eager_dispatch_runs_registered_task():
    assert celery_app.conf.task_always_eager
    assert "notifications.order_payment" in celery_app.tasks

    TaskDispatcher().send_order_payment_notification("o1", "refund_processed")
