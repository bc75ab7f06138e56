"""
Payment DTOs (Pydantic v2) used at application boundaries.

Provider-side snapshots carry minor-unit integers; caller-facing payloads
carry major-unit decimals and serialize with camelCase keys.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, TypeAdapter
from pydantic.alias_generators import to_camel
from pydantic.types import condecimal


RefundReason = Literal["duplicate", "fraudulent", "requested_by_customer"]

# Major-unit amounts stay Decimal in Python and render as JSON numbers
MajorUnits = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ---- provider snapshots ---------------------------------------------------

class PaymentIntentSnapshot(BaseModel):
    """Read-time copy of a remote payment intent. Never mutated locally."""

    model_config = ConfigDict(frozen=True)

    id: str
    amount_minor_units: int
    currency: str
    status: str
    client_secret: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    payment_method: Optional[str] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.get("orderId")


class RefundSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    intent_id: str
    amount_minor_units: int
    status: str
    reason: Optional[str] = None


# ---- webhook events (tagged union on `kind`) -------------------------------

class _WebhookEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    provider: str = "stripe"


class _IntentEventBase(_WebhookEventBase):
    intent_id: str
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.get("orderId") or None


class IntentSucceeded(_IntentEventBase):
    kind: Literal["intent.succeeded"] = "intent.succeeded"
    amount_minor_units: int
    currency: str


class IntentPaymentFailed(_IntentEventBase):
    kind: Literal["intent.payment_failed"] = "intent.payment_failed"
    failure_message: Optional[str] = None


class IntentCanceled(_IntentEventBase):
    kind: Literal["intent.canceled"] = "intent.canceled"


class ChargeRefunded(_IntentEventBase):
    kind: Literal["charge.refunded"] = "charge.refunded"
    amount_minor_units: int
    amount_refunded_minor_units: int
    currency: str

    @property
    def fully_refunded(self) -> bool:
        return self.amount_refunded_minor_units >= self.amount_minor_units


class Unrecognized(_WebhookEventBase):
    kind: Literal["unrecognized"] = "unrecognized"


WebhookEvent = Annotated[
    Union[IntentSucceeded, IntentPaymentFailed, IntentCanceled, ChargeRefunded, Unrecognized],
    Field(discriminator="kind"),
]

_webhook_event_adapter: TypeAdapter = TypeAdapter(WebhookEvent)


def parse_webhook_event(data: dict[str, Any]) -> WebhookEvent:
    return _webhook_event_adapter.validate_python(data)


# ---- caller boundary -------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateIntentRequest(_CamelModel):
    order_id: str = Field(min_length=1)


class RefundRequest(_CamelModel):
    order_id: str = Field(min_length=1)
    amount: Optional[condecimal(gt=0, max_digits=12, decimal_places=2)] = None  # type: ignore[valid-type]
    reason: Optional[RefundReason] = None


class IntentCredentials(_CamelModel):
    client_secret: Optional[str]
    intent_id: str
    amount_major_units: MajorUnits
    order_id: str


class PaymentStatusView(_CamelModel):
    status: str
    amount_major_units: MajorUnits
    currency: str
    order_id: str
    payment_method: Optional[str] = None


class RefundView(_CamelModel):
    id: str
    amount_major_units: MajorUnits
    status: str
    reason: Optional[str] = None


class RefundOrderView(_CamelModel):
    id: str
    payment_status: str


class RefundOutcome(_CamelModel):
    refund: RefundView
    order: RefundOrderView


class WebhookAck(BaseModel):
    received: bool = True


class PaymentConfig(_CamelModel):
    publishable_key: Optional[str]
