"""
Application service orchestrating payment use-cases.

This class depends only on application ports and DTOs. Strategies are
provided by infrastructure through the registry and injected from the
composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from application.dtos.payments import PaymentRequest, PaymentResponse
from application.ports.payment_gateway import StrategyResolver
from application.services.booking_state_machine import BookingStateMachine
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment import BookingPaymentState, PaymentProvider, PaymentRecord


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        registry: StrategyResolver,
        state_machine: BookingStateMachine,
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self.registry = registry
        self.state_machine = state_machine
        self._uow_factory = uow_factory

    async def create_payment(self, provider_id: str | PaymentProvider, req: PaymentRequest) -> PaymentResponse:
        strategy = self.registry.resolve(provider_id)
        provider = strategy.get_provider()

        state = await self.state_machine.open(
            req.booking_id,
            amount=req.amount,
            currency=req.currency,
            provider=provider.value,
        )
        if state.amount != req.amount or state.currency != req.currency:
            raise DomainValidationException(
                "Payment amount differs from the booking's payable amount",
                field="amount",
                details={"expected": str(state.amount), "currency": state.currency},
            )

        logger.info(
            "payment_create_request",
            booking_id=req.booking_id,
            order_id=req.order_id,
            provider=provider.value,
            amount=str(req.amount),
            currency=req.currency,
        )
        response = await strategy.create_payment(req)
        if not response.success or not response.transaction_id:
            logger.warning(
                "payment_create_failed",
                booking_id=req.booking_id,
                provider=provider.value,
                error=response.error,
            )
            return response

        record = PaymentRecord(
            transaction_id=response.transaction_id,
            provider=provider.value,
            booking_id=req.booking_id,
            order_id=req.order_id,
            amount=req.amount,
            currency=req.currency,
            payment_url=response.payment_url,
            created_at=datetime.now(timezone.utc),
            metadata=dict(req.metadata),
        )
        async with self._uow_factory() as uow:
            await uow.payment_record_repository.add(record)

        logger.info(
            "payment_create_response",
            booking_id=req.booking_id,
            provider=provider.value,
            transaction_id=response.transaction_id,
        )
        return response

    async def get_booking_state(self, booking_id: str) -> BookingPaymentState:
        return await self.state_machine.get_state(booking_id)

    async def refund(self, booking_id: str) -> BookingPaymentState:
        logger.info("payment_refund_request", booking_id=booking_id)
        outcome = await self.state_machine.refund(booking_id)
        return outcome.state

    def providers(self) -> list[PaymentProvider]:
        return self.registry.providers()
