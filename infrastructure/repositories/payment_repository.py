"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import StorageConflictError
from domain.payment.entity import BookingPaymentState, BookingPaymentStatus, PaymentRecord
from domain.payment.repository import BookingPaymentStateRepository, PaymentRecordRepository
from infrastructure.models.payment import BookingPaymentStateModel, PaymentRecordModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyBookingPaymentStateRepository(BookingPaymentStateRepository):
    """预订支付状态仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: BookingPaymentStateModel) -> BookingPaymentState:
        """将数据库模型转换为领域实体"""
        return BookingPaymentState(
            booking_id=model.booking_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=BookingPaymentStatus(model.status),
            version=model.version,
            transaction_id=model.transaction_id,
            provider=model.provider,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
            refunded_at=model.refunded_at,
        )

    def _to_model(self, entity: BookingPaymentState) -> BookingPaymentStateModel:
        """将领域实体转换为数据库模型"""
        return BookingPaymentStateModel(
            booking_id=entity.booking_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            version=entity.version,
            transaction_id=entity.transaction_id,
            provider=entity.provider,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            paid_at=entity.paid_at,
            refunded_at=entity.refunded_at,
        )

    async def get(self, booking_id: str) -> Optional[BookingPaymentState]:
        result = await self.session.execute(
            select(BookingPaymentStateModel).where(BookingPaymentStateModel.booking_id == booking_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create_if_absent(self, state: BookingPaymentState) -> BookingPaymentState:
        existing = await self.get(state.booking_id)
        if existing is not None:
            return existing
        try:
            # 保存点：主键冲突只回滚本次插入
            async with self.session.begin_nested():
                self.session.add(self._to_model(state))
        except IntegrityError:
            logger.info("booking_state_create_race", booking_id=state.booking_id)
            existing = await self.get(state.booking_id)
            if existing is None:
                raise
            return existing
        logger.info("booking_state_created", booking_id=state.booking_id, amount=str(state.amount))
        return state

    async def compare_and_swap(self, state: BookingPaymentState, expected_version: int) -> BookingPaymentState:
        result = await self.session.execute(
            update(BookingPaymentStateModel)
            .where(
                BookingPaymentStateModel.booking_id == state.booking_id,
                BookingPaymentStateModel.version == expected_version,
            )
            .values(
                status=state.status.value,
                version=state.version,
                transaction_id=state.transaction_id,
                provider=state.provider,
                updated_at=state.updated_at,
                paid_at=state.paid_at,
                refunded_at=state.refunded_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "booking_state_cas_conflict",
                booking_id=state.booking_id,
                expected_version=expected_version,
            )
            raise StorageConflictError("booking_payment_state", state.booking_id, expected_version)
        return state


class SQLAlchemyPaymentRecordRepository(PaymentRecordRepository):
    """支付请求记录仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentRecordModel) -> PaymentRecord:
        return PaymentRecord(
            transaction_id=model.transaction_id,
            provider=model.provider,
            booking_id=model.booking_id,
            order_id=model.order_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            payment_url=model.payment_url,
            created_at=model.created_at,
            metadata=dict(model.extra_metadata or {}),
        )

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        result = await self.session.execute(
            select(PaymentRecordModel).where(PaymentRecordModel.transaction_id == transaction_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def add(self, record: PaymentRecord) -> PaymentRecord:
        existing = await self.get_by_transaction_id(record.transaction_id)
        if existing is not None:
            return existing
        try:
            async with self.session.begin_nested():
                self.session.add(
                    PaymentRecordModel(
                        transaction_id=record.transaction_id,
                        provider=record.provider,
                        booking_id=record.booking_id,
                        order_id=record.order_id,
                        amount=record.amount,
                        currency=record.currency,
                        payment_url=record.payment_url,
                        created_at=record.created_at,
                        extra_metadata=record.metadata,
                    )
                )
        except IntegrityError:
            existing = await self.get_by_transaction_id(record.transaction_id)
            if existing is None:
                raise
            return existing
        logger.info(
            "payment_record_created",
            transaction_id=record.transaction_id,
            booking_id=record.booking_id,
            provider=record.provider,
        )
        return record
