"""
发票仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Invoice, InvoiceType


class InvoiceRepository(ABC):
    """发票仓储抽象接口 - (booking_id, type) 唯一约束由存储层保证"""

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        """创建发票；(booking_id, type) 冲突时抛出 InvoiceAlreadyExistsError"""
        pass

    @abstractmethod
    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_booking_and_type(self, booking_id: str, invoice_type: InvoiceType) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def list_by_booking(self, booking_id: str) -> List[Invoice]:
        pass

    @abstractmethod
    async def list_pending_pdf(self, updated_before: datetime, limit: int = 100) -> List[Invoice]:
        """获取 updated_at 早于给定时间、仍处于 PENDING_PDF 的发票"""
        pass

    @abstractmethod
    async def update(self, invoice: Invoice) -> Invoice:
        pass
