"""Payout orchestration: dispatch with retry, terminal fallback, provider callbacks."""

import asyncio
import logging
import random
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.adapters.payout import (
    BankPayoutAdapter,
    NonRetryableAdapterError,
    PayoutAdapter,
    PayoutRequest,
    PayoutResponse,
    RetryableAdapterError,
    TelebirrPayoutAdapter,
)
from settlement.config import settings
from settlement.core.crypto import decrypt_account_ref, encrypt_account_ref
from settlement.core.errors import (
    FeatureDisabledError,
    PayoutNotFoundError,
    PayoutStateInvalidError,
    TransferNotFoundError,
    TransferStateInvalidError,
)
from settlement.core.events import (
    event_bus,
    PAYOUT_INITIATED,
    PAYOUT_REVIEW_REQUIRED,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
)
from settlement.core.retry import with_retry
from settlement.core.state_machine import payout_state_machine, transfer_state_machine
from settlement.models.payout import PayoutInstruction, PayoutMethod, PayoutStatus, PayoutStatusEvent
from settlement.models.transfer import Transfer, TransferStatus, TransferTransition
from settlement.schemas.payout import (
    PayoutCallbackResult,
    PayoutInitiate,
    PayoutResult,
    PayoutStatusCallback,
)
from settlement.services.audit_service import append_audit

logger = logging.getLogger(__name__)

ACTOR_ID = "payout-orchestrator"

INITIATED = "initiated"
REVIEW_REQUIRED = "review_required"
COMPLETED = "completed"
FAILED = "failed"

# Transfer states from which a payout may be (re)initiated
PAYABLE_TRANSFER_STATES = (TransferStatus.FUNDING_CONFIRMED, TransferStatus.PAYOUT_INITIATED)

TERMINAL_PAYOUT_STATES = (PayoutStatus.PAYOUT_COMPLETED, PayoutStatus.PAYOUT_FAILED)


RESULT_STATUSES = {
    PayoutStatus.PAYOUT_REVIEW_REQUIRED: REVIEW_REQUIRED,
    PayoutStatus.PAYOUT_COMPLETED: COMPLETED,
    PayoutStatus.PAYOUT_FAILED: FAILED,
}


def _result_status(instruction: PayoutInstruction) -> str:
    return RESULT_STATUSES.get(instruction.status, INITIATED)


def _existing_result(instruction: PayoutInstruction) -> PayoutResult:
    return PayoutResult(
        status=_result_status(instruction),
        payout_id=instruction.payout_id,
        transfer_id=instruction.transfer_id,
        provider_reference=instruction.provider_reference,
        attempts=instruction.attempt_count,
    )


def default_adapters() -> Dict[PayoutMethod, PayoutAdapter]:
    return {
        PayoutMethod.BANK: BankPayoutAdapter(
            api_url=settings.BANK_PAYOUT_API_URL,
            api_key=settings.BANK_PAYOUT_API_KEY,
            timeout_seconds=settings.PAYOUT_ADAPTER_TIMEOUT_SECONDS,
        ),
        PayoutMethod.TELEBIRR: TelebirrPayoutAdapter(enabled=settings.TELEBIRR_ENABLED),
    }


class PayoutOrchestrator:
    """
    Turns a funded transfer into exactly one payout instruction and drives it to a
    recorded decision.

    Retryable adapter failures are absorbed with exponential backoff. A
    non-retryable failure or an exhausted budget parks the payout in
    PAYOUT_REVIEW_REQUIRED; that is a normal result, not an error.
    """

    def __init__(
        self,
        adapters: Optional[Dict[PayoutMethod, PayoutAdapter]] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter_factor: Optional[float] = None,
        adapter_timeout: Optional[float] = None,
        telebirr_enabled: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        random: Callable[[], float] = random.random,
    ):
        self.adapters = adapters if adapters is not None else default_adapters()
        self.max_attempts = max_attempts or settings.PAYOUT_MAX_ATTEMPTS
        self.base_delay = base_delay if base_delay is not None else settings.PAYOUT_RETRY_BASE_DELAY_SECONDS
        self.max_delay = max_delay if max_delay is not None else settings.PAYOUT_RETRY_MAX_DELAY_SECONDS
        self.jitter_factor = jitter_factor if jitter_factor is not None else settings.PAYOUT_RETRY_JITTER_FACTOR
        self.adapter_timeout = adapter_timeout or settings.PAYOUT_ADAPTER_TIMEOUT_SECONDS
        self.telebirr_enabled = telebirr_enabled if telebirr_enabled is not None else settings.TELEBIRR_ENABLED
        self.sleep = sleep
        self.random = random

    def resolve_adapter(self, method: PayoutMethod) -> PayoutAdapter:
        if method == PayoutMethod.TELEBIRR and not self.telebirr_enabled:
            raise FeatureDisabledError("Telebirr payout")
        return self.adapters[method]

    async def initiate_payout(self, db: AsyncSession, payout_data: PayoutInitiate) -> PayoutResult:
        """
        Dispatch the payout for a funded transfer.

        Repeated calls for the same transfer reuse its single instruction; once the
        instruction has left PAYOUT_PENDING the recorded outcome is returned and the
        provider is not called again.

        Args:
            db: Database session
            payout_data: Initiation request

        Returns:
            PayoutResult with status initiated|review_required and the attempt count

        Raises:
            TransferNotFoundError: Unknown transfer
            TransferStateInvalidError: Transfer is not funded
            FeatureDisabledError: Requested rail is switched off
        """
        transfer = await db.get(Transfer, payout_data.transfer_id, populate_existing=True)
        if transfer is None:
            raise TransferNotFoundError(payout_data.transfer_id)

        instruction = await self._find_instruction_for_transfer(db, transfer.transfer_id)
        if instruction is not None and instruction.status != PayoutStatus.PAYOUT_PENDING:
            logger.info(
                f"Payout {instruction.payout_id} already {instruction.status.value}; not dispatching again"
            )
            return _existing_result(instruction)

        if transfer.status not in PAYABLE_TRANSFER_STATES:
            raise TransferStateInvalidError(
                f"Transfer {transfer.transfer_id} is {transfer.status.value}; "
                f"payout requires {TransferStatus.FUNDING_CONFIRMED.value}."
            )

        method = instruction.method if instruction is not None else PayoutMethod(payout_data.method)
        adapter = self.resolve_adapter(method)

        if instruction is None:
            instruction = await self._create_instruction(db, payout_data)

        request = PayoutRequest(
            payout_id=instruction.payout_id,
            transfer_id=instruction.transfer_id,
            method=instruction.method.value,
            recipient_account_ref=decrypt_account_ref(instruction.recipient_account_ref),
            amount_etb=instruction.amount_etb,
        )

        attempts = 0

        async def send_once() -> PayoutResponse:
            nonlocal attempts
            attempts += 1
            try:
                # Provider-side key is bound to the instruction, not to the client's key
                return await asyncio.wait_for(
                    adapter.send(request, f"payout:{instruction.payout_id}"),
                    timeout=self.adapter_timeout,
                )
            except asyncio.TimeoutError as e:
                raise RetryableAdapterError(
                    f"Payout adapter timed out after {self.adapter_timeout}s"
                ) from e

        def log_retry(attempt: int, error: BaseException, delay: float) -> None:
            logger.warning(
                f"Payout {instruction.payout_id} attempt {attempt} failed ({error}); retrying in {delay:.2f}s"
            )

        try:
            outcome = await with_retry(
                send_once,
                max_attempts=self.max_attempts,
                is_retryable=lambda e: isinstance(e, RetryableAdapterError),
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                jitter_factor=self.jitter_factor,
                on_retry=log_retry,
                sleep=self.sleep,
                random=self.random,
            )
        except (RetryableAdapterError, NonRetryableAdapterError) as e:
            return await self._mark_review_required(db, instruction.payout_id, attempts, str(e))

        return await self._mark_initiated(db, instruction.payout_id, outcome.value, outcome.attempts)

    async def apply_status_callback(
        self,
        db: AsyncSession,
        callback: PayoutStatusCallback,
        actor_id: str = "payout-provider",
    ) -> PayoutCallbackResult:
        """
        Apply a provider's completed/failed notification.

        Raises:
            PayoutNotFoundError: Unknown payout id
            PayoutStateInvalidError: Payout is not in PAYOUT_INITIATED (callback out of order)
        """
        instruction = await db.get(PayoutInstruction, callback.payout_id, populate_existing=True)
        if instruction is None:
            raise PayoutNotFoundError(callback.payout_id)

        if instruction.status in TERMINAL_PAYOUT_STATES:
            logger.info(
                f"Status callback for terminal payout {instruction.payout_id} "
                f"({instruction.status.value}, callback {callback.status}); nothing to apply"
            )
            return self._terminal_result(instruction)

        if instruction.status != PayoutStatus.PAYOUT_INITIATED:
            raise PayoutStateInvalidError(
                f"Payout {instruction.payout_id} is in state {instruction.status.value}, "
                f"expected {PayoutStatus.PAYOUT_INITIATED.value}."
            )

        payout_id = instruction.payout_id
        transfer_id = instruction.transfer_id

        if callback.status == "completed":
            payout_target = PayoutStatus.PAYOUT_COMPLETED
            transfer_target = TransferStatus.PAYOUT_COMPLETED
            values = {"provider_reference": callback.provider_reference}
            error_message = None
        else:
            payout_target = PayoutStatus.PAYOUT_FAILED
            transfer_target = TransferStatus.PAYOUT_FAILED
            error_message = callback.error_message or "Payout failed (no details from provider)"
            values = {"last_error": error_message}

        outcome = await payout_state_machine.transition(
            db,
            payout_id,
            payout_target,
            from_states=[PayoutStatus.PAYOUT_INITIATED],
            **values,
        )
        if not outcome.applied:
            await db.rollback()
            instruction = await db.get(PayoutInstruction, payout_id, populate_existing=True)
            if instruction.status in TERMINAL_PAYOUT_STATES:
                return self._terminal_result(instruction)
            raise PayoutStateInvalidError(
                f"Payout {payout_id} is in state {instruction.status.value}, "
                f"expected {PayoutStatus.PAYOUT_INITIATED.value}."
            )

        metadata = {"provider_reference": callback.provider_reference, **callback.metadata}
        if error_message:
            metadata["error_message"] = error_message

        db.add(PayoutStatusEvent(
            payout_id=payout_id,
            transfer_id=transfer_id,
            from_status=PayoutStatus.PAYOUT_INITIATED.value,
            to_status=payout_target.value,
            event_metadata=metadata,
        ))

        transfer_outcome = await transfer_state_machine.transition(
            db,
            transfer_id,
            transfer_target,
            from_states=[TransferStatus.PAYOUT_INITIATED],
        )
        if transfer_outcome.applied:
            db.add(TransferTransition(
                transfer_id=transfer_id,
                from_state=TransferStatus.PAYOUT_INITIATED.value,
                to_state=transfer_target.value,
                transition_metadata={"payout_id": payout_id, "provider_reference": callback.provider_reference},
            ))
        else:
            logger.warning(
                f"Transfer {transfer_id} not moved to {transfer_target.value} by callback "
                f"({transfer_outcome.result.value}, was {transfer_outcome.previous})"
            )

        append_audit(
            db,
            actor_type="service",
            actor_id=actor_id,
            action=f"payout_{callback.status}",
            entity_type="payout",
            entity_id=payout_id,
            reason=error_message,
            metadata={"transfer_id": transfer_id, "provider_reference": callback.provider_reference},
        )
        await db.commit()

        if payout_target == PayoutStatus.PAYOUT_COMPLETED:
            logger.info(f"Payout {payout_id} completed via callback (transfer {transfer_id})")
            event_bus.publish(PAYOUT_COMPLETED, {"payout_id": payout_id, "transfer_id": transfer_id})
        else:
            logger.warning(f"Payout {payout_id} failed via callback: {error_message}")
            event_bus.publish(PAYOUT_FAILED, {
                "payout_id": payout_id,
                "transfer_id": transfer_id,
                "error_message": error_message,
            })

        return PayoutCallbackResult(payout_id=payout_id, transfer_id=transfer_id, status=callback.status)

    @staticmethod
    def _terminal_result(instruction: PayoutInstruction) -> PayoutCallbackResult:
        return PayoutCallbackResult(
            payout_id=instruction.payout_id,
            transfer_id=instruction.transfer_id,
            status="completed" if instruction.status == PayoutStatus.PAYOUT_COMPLETED else "failed",
            idempotent=True,
        )

    async def _find_instruction_for_transfer(
        self,
        db: AsyncSession,
        transfer_id: str,
    ) -> Optional[PayoutInstruction]:
        result = await db.execute(
            select(PayoutInstruction)
            .where(PayoutInstruction.transfer_id == transfer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _create_instruction(self, db: AsyncSession, payout_data: PayoutInitiate) -> PayoutInstruction:
        instruction = PayoutInstruction(
            payout_id=f"po_{uuid.uuid4()}",
            transfer_id=payout_data.transfer_id,
            method=PayoutMethod(payout_data.method),
            recipient_account_ref=encrypt_account_ref(payout_data.recipient_account_ref),
            amount_etb=payout_data.amount_etb,
            status=PayoutStatus.PAYOUT_PENDING,
            attempt_count=0,
        )
        db.add(instruction)
        db.add(PayoutStatusEvent(
            payout_id=instruction.payout_id,
            transfer_id=instruction.transfer_id,
            from_status=None,
            to_status=PayoutStatus.PAYOUT_PENDING.value,
            event_metadata={"method": payout_data.method},
        ))
        try:
            await db.commit()
        except IntegrityError:
            # Another initiation for this transfer created the instruction first
            await db.rollback()
            existing = await self._find_instruction_for_transfer(db, payout_data.transfer_id)
            if existing is None:
                raise
            logger.info(f"Reusing payout instruction {existing.payout_id} for transfer {payout_data.transfer_id}")
            return existing

        await db.refresh(instruction)
        logger.info(f"Created payout instruction {instruction.payout_id} for transfer {instruction.transfer_id}")
        return instruction

    async def _mark_initiated(
        self,
        db: AsyncSession,
        payout_id: str,
        response: PayoutResponse,
        attempts: int,
    ) -> PayoutResult:
        outcome = await payout_state_machine.transition(
            db,
            payout_id,
            PayoutStatus.PAYOUT_INITIATED,
            from_states=[PayoutStatus.PAYOUT_PENDING],
            provider_reference=response.provider_reference,
            attempt_count=attempts,
            last_error=None,
        )
        if not outcome.applied:
            # A concurrent initiation recorded its decision first
            await db.rollback()
            existing = await db.get(PayoutInstruction, payout_id, populate_existing=True)
            return _existing_result(existing)

        instruction = await db.get(PayoutInstruction, payout_id, populate_existing=True)
        transfer_id = instruction.transfer_id

        db.add(PayoutStatusEvent(
            payout_id=payout_id,
            transfer_id=transfer_id,
            from_status=PayoutStatus.PAYOUT_PENDING.value,
            to_status=PayoutStatus.PAYOUT_INITIATED.value,
            event_metadata={
                "provider_reference": response.provider_reference,
                "attempts": attempts,
                "accepted_at": response.accepted_at.isoformat(),
            },
        ))

        # No-op when a status callback already moved the transfer further
        transfer_outcome = await transfer_state_machine.transition(
            db,
            transfer_id,
            TransferStatus.PAYOUT_INITIATED,
            from_states=[TransferStatus.FUNDING_CONFIRMED],
        )
        if transfer_outcome.applied:
            db.add(TransferTransition(
                transfer_id=transfer_id,
                from_state=TransferStatus.FUNDING_CONFIRMED.value,
                to_state=TransferStatus.PAYOUT_INITIATED.value,
                transition_metadata={"payout_id": payout_id, "provider_reference": response.provider_reference},
            ))

        append_audit(
            db,
            actor_type="system",
            actor_id=ACTOR_ID,
            action="payout_initiated",
            entity_type="payout",
            entity_id=payout_id,
            metadata={
                "transfer_id": transfer_id,
                "provider_reference": response.provider_reference,
                "attempts": attempts,
            },
        )
        await db.commit()

        logger.info(f"Payout {payout_id} initiated after {attempts} attempt(s), ref {response.provider_reference}")
        event_bus.publish(PAYOUT_INITIATED, {
            "payout_id": payout_id,
            "transfer_id": transfer_id,
            "provider_reference": response.provider_reference,
        })

        return PayoutResult(
            status=INITIATED,
            payout_id=payout_id,
            transfer_id=transfer_id,
            provider_reference=response.provider_reference,
            attempts=attempts,
        )

    async def _mark_review_required(
        self,
        db: AsyncSession,
        payout_id: str,
        attempts: int,
        error_message: str,
    ) -> PayoutResult:
        outcome = await payout_state_machine.transition(
            db,
            payout_id,
            PayoutStatus.PAYOUT_REVIEW_REQUIRED,
            from_states=[PayoutStatus.PAYOUT_PENDING],
            attempt_count=attempts,
            last_error=error_message,
        )
        if not outcome.applied:
            await db.rollback()
            existing = await db.get(PayoutInstruction, payout_id, populate_existing=True)
            return _existing_result(existing)

        instruction = await db.get(PayoutInstruction, payout_id, populate_existing=True)
        transfer_id = instruction.transfer_id

        db.add(PayoutStatusEvent(
            payout_id=payout_id,
            transfer_id=transfer_id,
            from_status=PayoutStatus.PAYOUT_PENDING.value,
            to_status=PayoutStatus.PAYOUT_REVIEW_REQUIRED.value,
            event_metadata={"attempts": attempts, "error": error_message},
        ))

        transfer_outcome = await transfer_state_machine.transition(
            db,
            transfer_id,
            TransferStatus.PAYOUT_REVIEW_REQUIRED,
            from_states=list(PAYABLE_TRANSFER_STATES),
        )
        if transfer_outcome.applied:
            db.add(TransferTransition(
                transfer_id=transfer_id,
                from_state=transfer_outcome.previous.value,
                to_state=TransferStatus.PAYOUT_REVIEW_REQUIRED.value,
                transition_metadata={"payout_id": payout_id, "error": error_message},
            ))

        append_audit(
            db,
            actor_type="system",
            actor_id=ACTOR_ID,
            action="payout_review_required",
            entity_type="payout",
            entity_id=payout_id,
            reason=error_message,
            metadata={"transfer_id": transfer_id, "attempts": attempts},
        )
        await db.commit()

        logger.warning(f"Payout {payout_id} needs review after {attempts} attempt(s): {error_message}")
        event_bus.publish(PAYOUT_REVIEW_REQUIRED, {
            "payout_id": payout_id,
            "transfer_id": transfer_id,
            "attempts": attempts,
        })

        return PayoutResult(
            status=REVIEW_REQUIRED,
            payout_id=payout_id,
            transfer_id=transfer_id,
            attempts=attempts,
        )


# Global orchestrator wired to the configured adapters
payout_orchestrator = PayoutOrchestrator()
