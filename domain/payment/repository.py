"""
支付仓储接口 - 定义预订支付状态与支付请求记录的数据访问抽象
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import BookingPaymentState, PaymentRecord


class BookingPaymentStateRepository(ABC):
    """预订支付状态仓储 - 写入必须使用 version 做比较并交换"""

    @abstractmethod
    async def get(self, booking_id: str) -> Optional[BookingPaymentState]:
        """根据预订ID获取状态"""
        pass

    @abstractmethod
    async def create_if_absent(self, state: BookingPaymentState) -> BookingPaymentState:
        """不存在时创建初始状态，存在时返回已有记录"""
        pass

    @abstractmethod
    async def compare_and_swap(self, state: BookingPaymentState, expected_version: int) -> BookingPaymentState:
        """
        仅当存储中的 version 等于 expected_version 时写入

        version 不匹配时抛出 StorageConflictError。
        """
        pass


class PaymentRecordRepository(ABC):
    """支付请求记录仓储"""

    @abstractmethod
    async def add(self, record: PaymentRecord) -> PaymentRecord:
        """保存支付请求记录；transaction_id 已存在时返回已有记录"""
        pass

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        """根据渠道交易号获取记录"""
        pass
