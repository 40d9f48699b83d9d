"""
Request ID 中间件
生成或透传追踪ID，并把请求上下文（含回调渠道）绑定到 structlog
"""
import re
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
client_ip_var: ContextVar[Optional[str]] = ContextVar("client_ip", default=None)

# 渠道回调路径：/api/v1/payments/webhooks/{provider}
_WEBHOOK_PATH = re.compile(r"/payments/webhooks/(?P<provider>[^/]+)/?$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    渠道回调会被重试多次，每次投递都有独立的 request_id；
    回调请求额外绑定 provider，便于按渠道检索同一交易的多次投递。
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = _client_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip
        request_id_var.set(request_id)
        client_ip_var.set(client_ip)

        context = {
            "request_id": request_id,
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
        }
        match = _WEBHOOK_PATH.search(request.url.path)
        if match:
            context["provider"] = match.group("provider").upper()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def _client_ip(request: Request) -> str:
    """渠道回调通常经过网关转发，优先取 X-Forwarded-For 的第一个地址"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def get_request_id() -> Optional[str]:
    """当前请求的 request_id，不在请求上下文中时为 None"""
    return request_id_var.get()


def get_client_ip() -> Optional[str]:
    return client_ip_var.get()
