"""
Booking payment state machine.

Transitions are applied with compare-and-swap on the state's ``version``.
A lost race is retried from a fresh read; when the stored state already
equals the target the call is a successful no-op. Settling a booking as PAID
publishes an InvoiceCreatedEvent before returning.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.ports.invoice_channel import InvoiceEventChannel
from core.logging_config import get_logger
from domain.common.exceptions import BookingNotFoundError, EventPublishError, StorageConflictError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice import Invoice, InvoiceCreatedEvent, InvoiceType
from domain.payment import BookingPaymentState, BookingPaymentStatus


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


@dataclass
class TransitionOutcome:
    state: BookingPaymentState
    applied: bool


class BookingStateMachine:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        channel: InvoiceEventChannel,
        *,
        invoice_type: InvoiceType = InvoiceType.BOOKING,
        max_attempts: int = 5,
        backoff_seconds: float = 0.01,
    ) -> None:
        self._uow_factory = uow_factory
        self._channel = channel
        self._invoice_type = invoice_type
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds

    async def open(
        self,
        booking_id: str,
        *,
        amount: Decimal,
        currency: str,
        provider: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> BookingPaymentState:
        """Create the PENDING row for a booking; an existing row is returned untouched."""
        now = datetime.now(timezone.utc)
        state = BookingPaymentState(
            booking_id=booking_id,
            amount=amount,
            currency=currency,
            provider=provider,
            transaction_id=transaction_id,
            created_at=now,
            updated_at=now,
        )
        async with self._uow_factory() as uow:
            return await uow.booking_state_repository.create_if_absent(state)

    async def get_state(self, booking_id: str) -> BookingPaymentState:
        async with self._uow_factory(readonly=True) as uow:
            state = await uow.booking_state_repository.get(booking_id)
        if state is None:
            raise BookingNotFoundError(booking_id)
        return state

    async def transition(
        self,
        booking_id: str,
        target: BookingPaymentStatus,
        *,
        transaction_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """Move a booking to ``target``.

        Raises InvalidStateTransitionError for a disallowed move,
        StorageConflictError once CAS retries are exhausted and
        EventPublishError when a PAID booking could not be announced.
        """
        outcome: Optional[TransitionOutcome] = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff, max=0.5),
            retry=retry_if_exception_type(StorageConflictError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "booking_state_cas_retry",
                        booking_id=booking_id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                outcome = await self._apply(booking_id, target, transaction_id)

        assert outcome is not None
        if outcome.applied:
            logger.info(
                "booking_state_transitioned",
                booking_id=booking_id,
                status=outcome.state.status.value,
                version=outcome.state.version,
                transaction_id=transaction_id,
            )
        else:
            logger.info("booking_state_unchanged", booking_id=booking_id, status=outcome.state.status.value)

        # a no-op PAID re-announces: the first attempt may have died before publishing
        if target == BookingPaymentStatus.PAID:
            await self._publish_invoice_event(outcome.state, transaction_id)
        return outcome

    async def refund(self, booking_id: str) -> TransitionOutcome:
        return await self.transition(booking_id, BookingPaymentStatus.REFUNDED)

    async def _apply(
        self,
        booking_id: str,
        target: BookingPaymentStatus,
        transaction_id: Optional[str],
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            repo = uow.booking_state_repository
            state = await repo.get(booking_id)
            if state is None:
                raise BookingNotFoundError(booking_id)
            expected_version = state.version
            applied = state.transition_to(target, transaction_id=transaction_id)
            if applied:
                state = await repo.compare_and_swap(state, expected_version)
            return TransitionOutcome(state=state, applied=applied)

    async def _publish_invoice_event(self, state: BookingPaymentState, transaction_id: Optional[str]) -> None:
        event = InvoiceCreatedEvent(
            invoice=Invoice.draft(
                booking_id=state.booking_id,
                amount=state.amount,
                currency=state.currency,
                invoice_type=self._invoice_type,
            ),
            transaction_id=transaction_id or state.transaction_id,
        )
        try:
            await self._channel.publish(event)
        except Exception as exc:
            logger.error(
                "invoice_event_publish_failed",
                booking_id=state.booking_id,
                event_id=event.event_id,
                error=str(exc),
            )
            raise EventPublishError(
                f"Could not publish invoice event for booking {state.booking_id}",
                booking_id=state.booking_id,
            ) from exc
        logger.info("invoice_event_published", booking_id=state.booking_id, event_id=event.event_id)
