"""
统一响应格式定义

成功与失败都使用同一信封 {code, message, data, error}；
回调的 HTTP 状态由 core.exceptions 决定，信封只承载业务码与诊断信息。
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601，以 Z 结尾"""
        ts = timestamp.replace(tzinfo=timezone.utc) if timestamp.tzinfo is None else timestamp.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel):
    """统一响应模型"""
    code: int
    message: str
    data: Any = None
    error: Optional[ErrorDetail] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码（BusinessCode 或 PaymentCode）
        message: 错误消息
        error_type: 异常类型名，如 AuthenticityError
        details: 错误详情（渠道、交易号等）
        field: 出错字段
        request_id: 请求ID，便于与渠道重试记录对照
    """
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )
