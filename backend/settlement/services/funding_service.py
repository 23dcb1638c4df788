"""Consumption of on-chain funding confirmations."""

import logging
from typing import Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.events import event_bus, TRANSFER_FUNDING_CONFIRMED
from settlement.core.state_machine import TransitionResult, transfer_state_machine
from settlement.models.funding_event import OnchainFundingEvent
from settlement.models.transfer import DepositRoute, DepositRouteStatus, TransferStatus, TransferTransition
from settlement.schemas.funding import FundingConfirmedEvent, FundingResult
from settlement.services.audit_service import append_audit
from settlement.services.deposit_address import normalize_deposit_address

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
DUPLICATE = "duplicate"
ROUTE_NOT_FOUND = "route_not_found"
INVALID_STATE = "invalid_state"

ACTOR_ID = "funding-confirmation-handler"


async def find_active_route(
    db: AsyncSession,
    chain: str,
    token: str,
    deposit_address: str,
) -> Optional[DepositRoute]:
    result = await db.execute(
        select(DepositRoute).where(
            DepositRoute.chain == chain,
            DepositRoute.token == token,
            DepositRoute.deposit_address == normalize_deposit_address(chain, deposit_address),
            DepositRoute.status == DepositRouteStatus.ACTIVE,
        )
    )
    return result.scalar_one_or_none()


async def _find_existing_event(
    db: AsyncSession,
    event: FundingConfirmedEvent,
    transfer_id: str,
) -> Optional[OnchainFundingEvent]:
    result = await db.execute(
        select(OnchainFundingEvent).where(
            or_(
                (OnchainFundingEvent.chain == event.chain)
                & (OnchainFundingEvent.tx_hash == event.tx_hash)
                & (OnchainFundingEvent.log_index == event.log_index),
                OnchainFundingEvent.transfer_id == transfer_id,
            )
        ).limit(1)
    )
    return result.scalar_one_or_none()


async def process_funding_confirmed(db: AsyncSession, event: FundingConfirmedEvent) -> FundingResult:
    """
    Record the first confirmed deposit for a transfer and advance it to FUNDING_CONFIRMED.

    The funding event row, status change, timeline entry and audit record commit
    together. Replays of the same on-chain log, or a second deposit for an
    already-funded transfer, return ``duplicate`` and change nothing.

    Args:
        db: Database session
        event: Confirmation reported by the on-chain watcher

    Returns:
        FundingResult with status confirmed|duplicate|route_not_found|invalid_state
    """
    route = await find_active_route(db, event.chain, event.token, event.deposit_address)
    if route is None:
        logger.info(f"No active route for {event.chain}/{event.token} address {event.deposit_address}")
        return FundingResult(status=ROUTE_NOT_FOUND)

    transfer_id = route.transfer_id

    existing = await _find_existing_event(db, event, transfer_id)
    if existing is not None:
        logger.info(
            f"Duplicate funding confirmation {event.event_id} for transfer {transfer_id} "
            f"(first recorded as {existing.event_id})"
        )
        return FundingResult(status=DUPLICATE, transfer_id=transfer_id)

    try:
        outcome = await transfer_state_machine.transition(
            db,
            transfer_id,
            TransferStatus.FUNDING_CONFIRMED,
            from_states=[TransferStatus.AWAITING_FUNDING],
        )

        if outcome.result == TransitionResult.ALREADY_APPLIED:
            await db.rollback()
            return FundingResult(status=DUPLICATE, transfer_id=transfer_id)

        if outcome.result == TransitionResult.INVALID:
            await db.rollback()
            previous = outcome.previous.value if outcome.previous else None
            logger.warning(f"Funding confirmation {event.event_id} rejected: transfer {transfer_id} is {previous}")
            return FundingResult(status=INVALID_STATE, transfer_id=transfer_id)

        db.add(OnchainFundingEvent(
            event_id=event.event_id,
            chain=event.chain,
            token=event.token,
            tx_hash=event.tx_hash,
            log_index=event.log_index,
            transfer_id=transfer_id,
            deposit_address=route.deposit_address,
            amount_usd=event.amount_usd,
            confirmed_at=event.confirmed_at,
        ))
        await db.flush()

        db.add(TransferTransition(
            transfer_id=transfer_id,
            from_state=TransferStatus.AWAITING_FUNDING.value,
            to_state=TransferStatus.FUNDING_CONFIRMED.value,
            transition_metadata={
                "chain": event.chain,
                "tx_hash": event.tx_hash,
                "log_index": event.log_index,
                "event_id": event.event_id,
            },
        ))
        append_audit(
            db,
            actor_type="system",
            actor_id=ACTOR_ID,
            action="funding_confirmed",
            entity_type="transfer",
            entity_id=transfer_id,
            reason="On-chain confirmation received",
            metadata={
                "chain": event.chain,
                "token": event.token,
                "tx_hash": event.tx_hash,
                "amount_usd": str(event.amount_usd),
            },
        )
        await db.commit()
    except IntegrityError:
        # A concurrent confirmation for the same log or transfer committed first
        await db.rollback()
        logger.info(f"Funding confirmation {event.event_id} lost the insert race for transfer {transfer_id}")
        return FundingResult(status=DUPLICATE, transfer_id=transfer_id)

    logger.info(f"Transfer {transfer_id} funded by {event.chain} tx {event.tx_hash}:{event.log_index}")
    event_bus.publish(TRANSFER_FUNDING_CONFIRMED, {
        "transfer_id": transfer_id,
        "amount_usd": str(event.amount_usd),
        "chain": event.chain,
        "token": event.token,
    })

    return FundingResult(status=CONFIRMED, transfer_id=transfer_id)
