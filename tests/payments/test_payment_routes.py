import pytest

jwt = pytest.importorskip("jwt")
from fastapi.testclient import TestClient

from api.dependencies import get_current_principal, get_payment_service
from application.services.payment_service import PaymentLifecycleService
from core.config import settings
from core.settings import PaymentSettings, StripeSettings
from domain.common.exceptions import ServiceUnavailableException
from domain.order.entity import PaymentStatus, Principal, Role
from infrastructure.external.payments.stripe_client import StripeClient
from main import app


API = "/api/v1/payments"
VALID_SIGNATURE = "t=1,v1=valid"


@pytest.fixture
def caller():
    return {"principal": Principal(id="u1")}


@pytest.fixture
def client(service, caller):
    app.dependency_overrides[get_payment_service] = lambda: service
    app.dependency_overrides[get_current_principal] = lambda: caller["principal"]
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_config(client):
    resp = client.get(f"{API}/config")

    assert resp.status_code == 200
    assert resp.json()["data"] == {"publishableKey": "pk_test_fake"}


def test_create_intent(client, make_order):
    make_order(total="49.99")

    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"] == {
        "clientSecret": "pi_1_secret",
        "intentId": "pi_1",
        "amountMajorUnits": 49.99,
        "orderId": "o1",
    }


def test_create_intent_for_someone_elses_order(client, make_order):
    make_order(owner_id="u2")

    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 403
    assert resp.json()["error"]["type"] == "PaymentForbidden"


def test_create_intent_unknown_order(client):
    resp = client.post(f"{API}/create-intent", json={"orderId": "missing"})

    assert resp.status_code == 404


def test_create_intent_for_paid_order(client, paid_order):
    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "InvalidPaymentState"


def test_create_intent_requires_order_id(client):
    resp = client.post(f"{API}/create-intent", json={})

    assert resp.status_code == 422


def test_lost_race_is_409(client, make_order, store):
    make_order()
    store.forced_conflicts = 2

    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "Conflict"


def test_provider_outage_is_503(client, make_order, gateway):
    make_order()
    gateway.fail_with = ServiceUnavailableException()

    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 503
    assert resp.json()["error"]["type"] == "Unavailable"


def test_amount_mismatch_is_opaque_500(client, make_order, gateway):
    gateway.add_intent("pi_old", 5000, order_id="o1")
    make_order(payment_intent_id="pi_old")

    resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["message"] == "Internal server error"
    assert body["error"]["details"] is None


def test_status(client, paid_order):
    resp = client.get(f"{API}/status/pi_paid")

    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "status": "succeeded",
        "amountMajorUnits": 100.0,
        "currency": "usd",
        "orderId": "o1",
        "paymentMethod": None,
    }


def test_status_for_unknown_intent_is_404(client):
    resp = client.get(f"{API}/status/pi_unknown")

    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "PaymentIntentNotFound"


def test_refund_requires_admin(client, paid_order):
    resp = client.post(f"{API}/refund", json={"orderId": "o1"})

    assert resp.status_code == 403


def test_full_refund(client, caller, paid_order, store):
    caller["principal"] = Principal(id="admin-1", role=Role.ADMIN)

    resp = client.post(f"{API}/refund", json={"orderId": "o1", "reason": "requested_by_customer"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["order"] == {"id": "o1", "paymentStatus": "REFUNDED"}
    assert data["refund"]["amountMajorUnits"] == 100.0
    assert store.get("o1").payment_status == PaymentStatus.REFUNDED


def test_refund_rejects_unknown_reason(client, caller, paid_order):
    caller["principal"] = Principal(id="admin-1", role=Role.ADMIN)

    resp = client.post(f"{API}/refund", json={"orderId": "o1", "reason": "changed my mind"})

    assert resp.status_code == 422


def test_webhook_acknowledges_verified_event(client, make_order, store, webhook_body):
    make_order(payment_intent_id="pi_1")

    resp = client.post(
        f"{API}/webhook",
        content=webhook_body("intent.succeeded"),
        headers={"Stripe-Signature": VALID_SIGNATURE, "Content-Type": "application/json"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert store.get("o1").payment_status == PaymentStatus.COMPLETED


def test_webhook_without_signature(client, gateway, webhook_body):
    resp = client.post(f"{API}/webhook", content=webhook_body("intent.succeeded"))

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "InvalidSignature"
    assert gateway.verify_calls == 0


def test_webhook_with_forged_signature(client, webhook_body):
    resp = client.post(
        f"{API}/webhook",
        content=webhook_body("intent.succeeded"),
        headers={"Stripe-Signature": "t=1,v1=forged"},
    )

    assert resp.status_code == 400


def test_webhook_for_unknown_order_is_acknowledged(client, webhook_body):
    resp = client.post(
        f"{API}/webhook",
        content=webhook_body("intent.succeeded", order_id="missing"),
        headers={"Stripe-Signature": VALID_SIGNATURE},
    )

    assert resp.status_code == 200
    assert resp.json() == {"received": True}


def test_webhook_body_that_is_not_utf8(uow_factory, notifier, ledger):
    gateway = StripeClient(
        PaymentSettings(stripe=StripeSettings(secret_key="sk_test_123", webhook_secret="whsec_test"))
    )
    service = PaymentLifecycleService(uow_factory=uow_factory, gateway=gateway, notifier=notifier, ledger=ledger)
    app.dependency_overrides[get_payment_service] = lambda: service
    try:
        resp = TestClient(app).post(
            f"{API}/webhook",
            content=b"\xff\xfe{not utf8",
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "InvalidSignature"
    assert ledger.events == set()


class TestBearerAuth:
    @pytest.fixture
    def client(self, service):
        app.dependency_overrides[get_payment_service] = lambda: service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @staticmethod
    def _token(**claims) -> str:
        return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def test_missing_token(self, client, make_order):
        make_order()

        resp = client.post(f"{API}/create-intent", json={"orderId": "o1"})

        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client, make_order):
        make_order()

        resp = client.post(
            f"{API}/create-intent", json={"orderId": "o1"}, headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert resp.status_code == 401

    def test_subject_claim_becomes_principal(self, client, make_order):
        make_order()

        resp = client.post(
            f"{API}/create-intent",
            json={"orderId": "o1"},
            headers={"Authorization": f"Bearer {self._token(sub='u1')}"},
        )

        assert resp.status_code == 200

    def test_admin_role_claim(self, client, paid_order):
        resp = client.post(
            f"{API}/refund",
            json={"orderId": "o1", "amount": "10.00"},
            headers={"Authorization": f"Bearer {self._token(sub='admin-1', role='admin')}"},
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["order"]["paymentStatus"] == "COMPLETED"


def test_health_endpoints(client):
    assert client.get("/health").json()["data"] == {"status": "healthy"}

    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["data"]["database"] == "ok"
