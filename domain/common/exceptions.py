"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details=details,
        )


class PaymentIntentNotFoundException(BusinessException):
    """支付渠道不存在该支付意图"""

    def __init__(self, intent_id: Optional[str] = None):
        details = {"intent_id": intent_id} if intent_id else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Payment intent not found",
            error_type="PaymentIntentNotFound",
            details=details,
        )


class PaymentForbiddenException(BusinessException):
    def __init__(self, message: str = "Not allowed to access this payment"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="PaymentForbidden",
        )


class InvalidPaymentStateException(BusinessException):
    """业务规则冲突：例如重复支付、对未完成支付退款"""

    def __init__(self, message: str, *, order_id: Optional[str] = None, state: Optional[str] = None):
        details = {}
        if order_id is not None:
            details["order_id"] = order_id
        if state is not None:
            details["state"] = state
        super().__init__(
            code=PaymentCode.INVALID_STATE,
            message=message,
            error_type="InvalidPaymentState",
            details=details or None,
        )


class RefundExceedsPaymentException(BusinessException):
    def __init__(self, requested: Decimal, available: Decimal):
        super().__init__(
            code=PaymentCode.REFUND_EXCEEDS_PAYMENT,
            message=f"Refund amount {requested} exceeds order total {available}",
            error_type="RefundExceedsPayment",
            details={"requested": str(requested), "available": str(available)},
            field="amount",
        )


class ConcurrentUpdateException(BusinessException):
    """乐观锁冲突：订单版本号已被其他写入者推进"""

    def __init__(self, order_id: str, expected_version: Optional[int] = None):
        details: dict = {"order_id": order_id}
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(
            code=BusinessCode.CONFLICT,
            message="Order was modified concurrently, please retry",
            error_type="Conflict",
            details=details,
        )


class PaymentSignatureException(BusinessException):
    def __init__(self, message: str = "Invalid webhook signature", *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="InvalidSignature",
            details=details,
        )


class ServiceUnavailableException(BusinessException):
    """支付渠道或订单存储超时/不可用，调用方可重试"""

    def __init__(self, message: str = "Service temporarily unavailable, please retry", *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=message,
            error_type="Unavailable",
            details=details,
        )


class PaymentProviderException(BusinessException):
    """支付渠道拒绝了请求（非网络原因）"""

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=details,
        )


class PaymentAmountMismatchException(BusinessException):
    """订单金额与支付意图金额不一致，属于致命的一致性错误，不做自动修正"""

    def __init__(self, order_id: str, expected_minor: int, actual_minor: int):
        super().__init__(
            code=PaymentCode.AMOUNT_MISMATCH,
            message="Payment amount does not match order total",
            error_type="AmountMismatch",
            details={
                "order_id": order_id,
                "expected_minor_units": expected_minor,
                "actual_minor_units": actual_minor,
            },
        )
