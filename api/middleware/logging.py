"""
请求/响应访问日志中间件

每个请求输出 request_started 与一条结果日志（按状态码分级），并在响应头
写入 X-Process-Time。支付回调的原始报文参与签名校验，既不解析也不记录。
"""
import json
import time
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def redact(data: Any, sensitive: frozenset) -> Any:
    """递归替换敏感字段的值"""
    if isinstance(data, dict):
        return {k: "***" if k.lower() in sensitive else redact(v, sensitive) for k, v in data.items()}
    if isinstance(data, list):
        return [redact(v, sensitive) for v in data]
    return data


class LoggingMiddleware(BaseHTTPMiddleware):
    SKIP_PATHS = frozenset({"/health", "/health/ready", "/docs", "/redoc", "/openapi.json"})
    RAW_BODY_SUFFIXES = ("/payments/webhook",)
    # 比较时统一小写；clientSecret 是支付凭据
    SENSITIVE_FIELDS = frozenset({"token", "secret", "api_key", "access_token", "client_secret", "clientsecret"})

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body_by_default = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG
        self.max_body_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        fields = await self._request_fields(request)
        logger.info("request_started", **fields)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - started,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
                **fields,
            )
            raise

        duration = time.perf_counter() - started
        self._log_outcome(response, duration, fields)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _request_fields(self, request: Request) -> dict:
        fields: dict = {"method": request.method, "path": request.url.path}
        if request.query_params:
            fields["query_params"] = dict(request.query_params)
        if request.method in BODY_METHODS and self._wants_body(request):
            body = await self._body_snippet(request)
            if body is not None:
                fields["body"] = body
        return fields

    def _wants_body(self, request: Request) -> bool:
        if request.url.path.endswith(self.RAW_BODY_SUFFIXES):
            return False
        # X-Log-Body 请求头可覆盖默认行为
        override = (request.headers.get("X-Log-Body") or "").lower()
        if override in {"true", "1", "yes"}:
            return True
        if override in {"false", "0", "no"}:
            return False
        return self.log_body_by_default

    async def _body_snippet(self, request: Request) -> Optional[Any]:
        raw = await request.body()
        if not raw:
            return None
        text = raw[: self.max_body_bytes].decode("utf-8", errors="ignore")
        if "application/json" not in request.headers.get("content-type", "").lower():
            return text
        try:
            return redact(json.loads(text), self.SENSITIVE_FIELDS)
        except ValueError:
            # 截断后的 JSON 无法解析，原样记录片段
            return text

    @staticmethod
    def _log_outcome(response: Response, duration: float, fields: dict) -> None:
        status_code = response.status_code
        if status_code >= 500:
            log = logger.error
            event = "request_server_error"
        elif status_code >= 400:
            log = logger.warning
            event = "request_client_error"
        else:
            log = logger.info
            event = "request_completed"
        log(event, status_code=status_code, duration=duration, **fields)
