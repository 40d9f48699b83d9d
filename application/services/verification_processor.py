"""
Verification processor: the single entry point for provider callbacks.

Order of work per callback:
    resolve strategy -> authenticate -> claim dedup key -> amount check
    -> state transition -> record result.

Authentication happens before any claim so forged callbacks leave no trace.
Every failure after the claim releases it; the provider's retry then runs
the whole pipeline again.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Optional

from pydantic import ValidationError

from application.dtos.payments import PaymentVerification, ProcessingResult, WebhookCallback
from application.ports.dedup_store import DedupEntry, DedupStore
from application.ports.payment_gateway import StrategyResolver
from application.services.booking_state_machine import BookingStateMachine
from core.logging_config import get_logger
from domain.common.exceptions import (
    AmountMismatchError,
    CallbackInFlightError,
    MalformedCallbackError,
    PaymentRecordNotFoundError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment import BookingPaymentStatus, PaymentProvider, PaymentStatus


logger = get_logger(__name__)

_TARGET_BY_STATUS = {
    PaymentStatus.PAID: BookingPaymentStatus.PAID,
    PaymentStatus.FAILED: BookingPaymentStatus.FAILED,
    PaymentStatus.PENDING: BookingPaymentStatus.PENDING,
}


def dedup_key(provider: PaymentProvider, transaction_id: str) -> str:
    return f"payment-callback:{provider.value}:{transaction_id}"


class VerificationProcessor:
    def __init__(
        self,
        registry: StrategyResolver,
        dedup_store: DedupStore,
        state_machine: BookingStateMachine,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        claim_ttl_seconds: int = 60,
        result_ttl_seconds: int = 30 * 24 * 3600,
        wait_timeout_seconds: float = 5.0,
        poll_interval_seconds: float = 0.05,
    ) -> None:
        self._registry = registry
        self._store = dedup_store
        self._state_machine = state_machine
        self._uow_factory = uow_factory
        self._claim_ttl = claim_ttl_seconds
        self._result_ttl = result_ttl_seconds
        self._wait_timeout = wait_timeout_seconds
        self._poll_interval = poll_interval_seconds

    def resolve_provider(self, provider_id: str | PaymentProvider) -> PaymentProvider:
        """Raise UnknownProviderError unless a strategy is registered for ``provider_id``."""
        return self._registry.resolve(provider_id).get_provider()

    async def handle_callback(
        self,
        provider_id: str | PaymentProvider,
        raw_payload: WebhookCallback | dict[str, Any],
    ) -> ProcessingResult:
        strategy = self._registry.resolve(provider_id)
        provider = strategy.get_provider()
        callback = self._parse(provider, raw_payload)

        verification = await strategy.verify_payment(callback)
        tx_id = verification.transaction_id
        key = dedup_key(provider, tx_id)

        token = uuid.uuid4().hex
        recorded = await self._claim(key, token, tx_id)
        if recorded is not None:
            logger.info(
                "callback_replayed",
                provider=provider.value,
                transaction_id=tx_id,
                booking_id=recorded.booking_id,
            )
            return recorded

        try:
            result = await self._process(provider, verification)
        except Exception as exc:
            await self._store.release(key, token)
            logger.warning(
                "callback_claim_released",
                provider=provider.value,
                transaction_id=tx_id,
                error_type=type(exc).__name__,
            )
            raise

        if result.status == PaymentStatus.PENDING:
            # not final yet; keep the key open for the provider's settling callback
            await self._store.release(key, token)
            logger.info("callback_pending", provider=provider.value, transaction_id=tx_id)
            return result

        stored = await self._store.replace(
            key, token, DedupEntry(token=token, result=result.model_dump_json()), self._result_ttl
        )
        if not stored:
            # claim expired mid-flight; state machine writes are idempotent so the result stands
            logger.warning("callback_claim_lost", provider=provider.value, transaction_id=tx_id)
        logger.info(
            "callback_processed",
            provider=provider.value,
            transaction_id=tx_id,
            booking_id=result.booking_id,
            status=result.status.value,
            booking_status=result.booking_status.value,
            applied=result.applied,
        )
        return result

    @staticmethod
    def _parse(provider: PaymentProvider, raw_payload: WebhookCallback | dict[str, Any]) -> WebhookCallback:
        if isinstance(raw_payload, WebhookCallback):
            return raw_payload
        try:
            return WebhookCallback.model_validate(raw_payload)
        except ValidationError as exc:
            raise MalformedCallbackError(
                "Callback payload is malformed",
                provider=provider.value,
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    async def _claim(self, key: str, token: str, transaction_id: str) -> Optional[ProcessingResult]:
        """Claim ``key`` for this worker.

        Returns the recorded result when the callback was already processed,
        None once the claim is held. A claim held by another worker is waited
        on until it completes or is released.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._wait_timeout
        waited = False
        while True:
            existing = await self._store.put_if_absent(key, DedupEntry(token=token), self._claim_ttl)
            if existing is None:
                return None
            if existing.completed:
                return ProcessingResult.model_validate_json(existing.result).as_replay()
            if not waited:
                logger.info("callback_in_flight_wait", transaction_id=transaction_id)
                waited = True
            if loop.time() >= deadline:
                raise CallbackInFlightError(transaction_id)
            await asyncio.sleep(self._poll_interval)

    async def _process(self, provider: PaymentProvider, verification: PaymentVerification) -> ProcessingResult:
        tx_id = verification.transaction_id
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.payment_record_repository.get_by_transaction_id(tx_id)
        if record is None:
            raise PaymentRecordNotFoundError(tx_id)
        if not record.matches_amount(verification.amount):
            logger.warning(
                "callback_amount_mismatch",
                provider=provider.value,
                transaction_id=tx_id,
                expected=str(record.amount),
                actual=str(verification.amount),
            )
            raise AmountMismatchError(tx_id, record.amount, verification.amount)

        outcome = await self._state_machine.transition(
            record.booking_id,
            _TARGET_BY_STATUS[verification.status],
            transaction_id=tx_id,
        )
        return ProcessingResult(
            transaction_id=tx_id,
            booking_id=record.booking_id,
            provider=provider,
            status=verification.status,
            booking_status=outcome.state.status,
            applied=outcome.applied,
        )
