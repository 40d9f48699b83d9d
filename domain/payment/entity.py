"""
支付领域实体 - 预订支付状态机与支付请求记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionError,
    UnknownProviderError,
)


class PaymentProvider(str, Enum):
    """支持的支付渠道（封闭集合）"""
    STRIPE = "STRIPE"
    MOMO = "MOMO"
    VNPAY = "VNPAY"

    @classmethod
    def parse(cls, value: "str | PaymentProvider") -> "PaymentProvider":
        """大小写不敏感解析渠道标识，未知渠道抛出 UnknownProviderError"""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            raise UnknownProviderError(str(value)) from None


class PaymentStatus(str, Enum):
    """支付渠道回调的规范化状态"""
    PAID = "PAID"
    FAILED = "FAILED"
    PENDING = "PENDING"


class BookingPaymentStatus(str, Enum):
    """预订支付状态"""
    PENDING = "PENDING"     # 初始状态
    PAID = "PAID"           # 支付成功
    FAILED = "FAILED"       # 支付失败（终态）
    REFUNDED = "REFUNDED"   # 已退款（终态）


# PAID 只能单向流转到 REFUNDED；FAILED / REFUNDED 没有出口
ALLOWED_TRANSITIONS: dict[BookingPaymentStatus, frozenset[BookingPaymentStatus]] = {
    BookingPaymentStatus.PENDING: frozenset({BookingPaymentStatus.PAID, BookingPaymentStatus.FAILED}),
    BookingPaymentStatus.PAID: frozenset({BookingPaymentStatus.REFUNDED}),
    BookingPaymentStatus.FAILED: frozenset(),
    BookingPaymentStatus.REFUNDED: frozenset(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _validate_money(amount: Decimal, currency: str) -> None:
    if amount <= 0:
        raise DomainValidationException(f"支付金额必须大于0: {amount}", field="amount")
    if not currency or len(currency) != 3 or not currency.isalpha():
        raise DomainValidationException(f"无效的货币代码: {currency}", field="currency")


@dataclass
class BookingPaymentState:
    """
    预订支付状态聚合根

    业务规则：
    1. 每个预订只有一条状态记录
    2. 状态转换必须遵循 ALLOWED_TRANSITIONS
    3. 目标状态与当前状态相同时视为幂等空操作
    4. 每次真实转换 version + 1，用于乐观锁（CAS）
    """

    booking_id: str
    amount: Decimal
    currency: str
    status: BookingPaymentStatus = BookingPaymentStatus.PENDING
    version: int = 0
    transaction_id: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    def __post_init__(self):
        _validate_money(self.amount, self.currency)
        self.currency = self.currency.upper()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.refunded_at = _ensure_utc(self.refunded_at)

    def can_transition_to(self, target: BookingPaymentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def is_terminal(self) -> bool:
        """FAILED / REFUNDED 为终态；PAID 仅允许退款"""
        return not ALLOWED_TRANSITIONS[self.status]

    def transition_to(
        self,
        target: BookingPaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        """
        应用状态转换

        返回 True 表示发生了真实转换，False 表示幂等空操作。
        非法转换抛出 InvalidStateTransitionError，状态保持不变。
        """
        if target == self.status:
            return False
        if not self.can_transition_to(target):
            raise InvalidStateTransitionError(self.booking_id, self.status.value, target.value)

        now = _ensure_utc(at) or datetime.now(timezone.utc)
        self.status = target
        self.version += 1
        self.updated_at = now
        if transaction_id:
            self.transaction_id = transaction_id
        if target == BookingPaymentStatus.PAID:
            self.paid_at = now
        elif target == BookingPaymentStatus.REFUNDED:
            self.refunded_at = now
        return True


@dataclass
class PaymentRecord:
    """
    已发送给支付渠道的支付请求快照

    以 transaction_id 为唯一键，回调验证时用于金额校验。
    """

    transaction_id: str
    provider: str
    booking_id: str
    order_id: str
    amount: Decimal
    currency: str
    payment_url: Optional[str] = None
    created_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        _validate_money(self.amount, self.currency)
        self.currency = self.currency.upper()
        self.created_at = _ensure_utc(self.created_at)
        if self.metadata is None:
            self.metadata = {}

    def matches_amount(self, amount: Decimal) -> bool:
        return Decimal(self.amount) == Decimal(amount)
