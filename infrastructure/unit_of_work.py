"""Unit of Work 实现（SQLAlchemy 与进程内两种）"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.invoice_repository import SQLAlchemyInvoiceRepository
from infrastructure.repositories.memory import (
    InMemoryBookingPaymentStateRepository,
    InMemoryDatabase,
    InMemoryInvoiceRepository,
    InMemoryPaymentRecordRepository,
)
from infrastructure.repositories.payment_repository import (
    SQLAlchemyBookingPaymentStateRepository,
    SQLAlchemyPaymentRecordRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.booking_state_repository = SQLAlchemyBookingPaymentStateRepository(self.session)
        self.payment_record_repository = SQLAlchemyPaymentRecordRepository(self.session)
        self.invoice_repository = SQLAlchemyInvoiceRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.booking_state_repository = None  # type: ignore[assignment]
            self.payment_record_repository = None  # type: ignore[assignment]
            self.invoice_repository = None  # type: ignore[assignment]

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """进程内 Unit of Work：仓储调用即时生效，不支持回滚"""

    def __init__(self, db: InMemoryDatabase, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self._db = db

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self.booking_state_repository = InMemoryBookingPaymentStateRepository(self._db)
        self.payment_record_repository = InMemoryPaymentRecordRepository(self._db)
        self.invoice_repository = InMemoryInvoiceRepository(self._db)
        return self

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False
