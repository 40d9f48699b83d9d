"""
请求/响应日志中间件
记录 HTTP 请求与耗时；渠道回调的原始报文只记录摘要，不落明文
"""
import hashlib
import json
import time
from typing import Any
from urllib.parse import parse_qs

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    日志记录中间件

    回调报文含签名与渠道凭据。回调路径上只记录 body 的 sha256 与长度，
    同一笔交易的重复投递可据此关联；其它写请求按配置记录脱敏后的 body。
    """

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
    WEBHOOK_MARKER = "/payments/webhooks/"

    # 小写比较
    SENSITIVE_FIELDS = {
        "signature", "secret", "secret_key", "access_key", "accesskey", "token",
        "vnp_securehash", "vnp_securehashtype", "payload",
    }

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.enable_body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_log_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = await self._get_request_info(request)
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - start_time,
                error=str(exc),
                error_type=type(exc).__name__,
                **request_info,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start_time
        self._log_response(response, duration, request_info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _get_request_info(self, request: Request) -> dict:
        info: dict[str, Any] = {"method": request.method, "path": request.url.path}
        if request.query_params:
            info["query_params"] = self._sanitize_data(dict(request.query_params))
        if request.method not in ("POST", "PUT", "PATCH"):
            return info

        body = await request.body()
        if not body:
            return info
        if self.WEBHOOK_MARKER in request.url.path:
            info["body_sha256"] = hashlib.sha256(body).hexdigest()
            info["body_size"] = len(body)
        elif self._should_log_body(request):
            info["body"] = self._sanitize_data(self._parse_body(request, body[: self.max_body_log_bytes]))
        return info

    def _should_log_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 可按请求覆盖
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return bool(self.enable_body_log_default and settings.DEBUG)

    @staticmethod
    def _parse_body(request: Request, snippet: bytes) -> Any:
        text = snippet.decode("utf-8", errors="ignore")
        content_type = request.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            try:
                return json.loads(text)
            except ValueError:
                return text
        if "application/x-www-form-urlencoded" in content_type:
            return {k: v if len(v) > 1 else v[0] for k, v in parse_qs(text).items()}
        return text

    def _sanitize_data(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: "***" if str(k).lower() in self.SENSITIVE_FIELDS else self._sanitize_data(v)
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self._sanitize_data(v) for v in data]
        return data

    def _log_response(self, response: Response, duration: float, request_info: dict):
        status_code = response.status_code
        log_data = {"status_code": status_code, "duration": duration, **request_info}
        if status_code < 400:
            logger.info("request_completed", **log_data)
        elif status_code < 500:
            # 4xx 对回调意味着渠道不再重试，需要关注
            logger.warning("request_client_error", **log_data)
        else:
            logger.error("request_server_error", **log_data)
