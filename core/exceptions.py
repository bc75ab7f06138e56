"""
业务异常到 HTTP 响应的映射与全局异常处理器

- 业务码决定 HTTP 状态（见 _CODE_TO_HTTP_STATUS）
- 5xx 只返回通用提示，内部细节仅写日志（debug 模式下附带 details）
- 503 保留原始提示，调用方据此判断可以重试
"""
import traceback
import uuid
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status as http_status

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode

from .response import error_response


GENERIC_ERROR_MESSAGE = "Internal server error"


class UnauthorizedException(BusinessException):
    """缺失或无效的访问令牌"""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(code=BusinessCode.UNAUTHORIZED, message=message, error_type="Unauthorized")


_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.BUSINESS_ERROR: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.CONFLICT: http_status.HTTP_409_CONFLICT,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    PaymentCode.INVALID_STATE: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.REFUND_EXCEEDS_PAYMENT: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.AMOUNT_MISMATCH: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# HTTPException 状态码 -> 业务码
_HTTP_STATUS_TO_CODE = {
    401: BusinessCode.UNAUTHORIZED,
    403: BusinessCode.FORBIDDEN,
    404: BusinessCode.NOT_FOUND,
    409: BusinessCode.CONFLICT,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """未登记的业务码按 400 处理"""
    return _CODE_TO_HTTP_STATUS.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _envelope(status_code: int, request: Request, *, headers: Optional[dict] = None, **error) -> JSONResponse:
    body = error_response(request_id=_request_id(request), **error)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def register_exception_handlers(app: FastAPI):
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        status_code = business_code_to_http_status(exc.code)
        message, details = exc.message, exc.details
        if status_code >= 500:
            logger.error(
                "business_exception",
                request_id=_request_id(request),
                code=int(exc.code),
                error_type=exc.error_type,
                message=exc.message,
                details=exc.details,
            )
            if status_code != http_status.HTTP_503_SERVICE_UNAVAILABLE:
                message = GENERIC_ERROR_MESSAGE
            details = exc.details if app.debug else None

        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return _envelope(
            status_code,
            request,
            headers=headers,
            code=exc.code,
            message=message,
            error_type=exc.error_type,
            details=details,
            field=exc.field,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        # loc[0] 是 body/query/path，字段名从第二段开始
        field = ".".join(str(loc) for loc in first.get("loc", [])[1:])
        return _envelope(
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            request,
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": jsonable_encoder(errors)},
            field=field,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _envelope(
            exc.status_code,
            request,
            headers=getattr(exc, "headers", None),
            code=_HTTP_STATUS_TO_CODE.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", request_id=_request_id(request), error=str(exc), exc_info=True)
        details = {"exception": str(exc), "traceback": traceback.format_exc()} if app.debug else None
        return _envelope(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            request,
            code=BusinessCode.SYSTEM_ERROR,
            message=GENERIC_ERROR_MESSAGE,
            error_type="SystemError",
            details=details,
        )
