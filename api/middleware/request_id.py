"""
Request ID 中间件

透传或生成追踪ID，写入 request.state 并绑定到 structlog 上下文，
使同一请求内（含支付渠道调用与回调处理）的日志可以串联。
"""
import re
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


# 透传的ID只接受有限字符集，避免日志注入
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def client_ip(request: Request) -> str:
    """代理转发时取最左侧的原始客户端地址"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or (request.client.host if request.client else "unknown")


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(self.HEADER_NAME)
        # 支付渠道回调通常不带追踪ID
        request_id = incoming if incoming and _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip(request),
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response
