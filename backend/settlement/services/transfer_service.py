"""Transfer creation and read model."""

import logging
import uuid
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.config import settings
from settlement.core.errors import (
    QuoteExpiredError,
    QuoteNotFoundError,
    TransferNotFoundError,
    TransferValidationError,
)
from settlement.core.events import event_bus, TRANSFER_CREATED
from settlement.models.quote import Quote
from settlement.models.receiver_kyc_profile import ReceiverKycProfile
from settlement.models.transfer import (
    DepositRoute,
    DepositRouteStatus,
    Transfer,
    TransferStatus,
    TransferTransition,
)
from settlement.schemas.transfer import TransferCreate
from settlement.services.audit_service import append_audit
from settlement.services.deposit_address import HdWalletDepositStrategy, deposit_strategy

logger = logging.getLogger(__name__)

APPROVED = "approved"


async def resolve_receiver_kyc(
    db: AsyncSession,
    receiver_id: str,
    claimed_status: str,
    claimed_national_id_verified: bool,
) -> Tuple[str, bool]:
    """Stored receiver KYC profile wins over whatever the caller claims."""
    profile = await db.get(ReceiverKycProfile, receiver_id)
    if profile is None:
        return claimed_status, claimed_national_id_verified
    return profile.kyc_status, profile.national_id_verified


async def create_transfer(
    db: AsyncSession,
    transfer_data: TransferCreate,
    now: Optional[datetime] = None,
    strategy: HdWalletDepositStrategy = deposit_strategy,
) -> Tuple[Transfer, DepositRoute]:
    """
    Create a transfer and its deposit route.

    Both rows (plus the first timeline entry and the audit record) are committed
    in one transaction, so a transfer is never visible without its route.

    Args:
        db: Database session
        transfer_data: Transfer creation request
        now: Clock override (naive UTC)
        strategy: Deposit address generator

    Returns:
        Tuple of (Transfer, DepositRoute)

    Raises:
        QuoteNotFoundError: Unknown quote
        QuoteExpiredError: Quote expired at or before ``now``
        TransferValidationError: KYC gates, transfer limit, or quote already used
    """
    now = now or datetime.utcnow()

    if transfer_data.sender_kyc_status != APPROVED:
        raise TransferValidationError("Sender KYC must be approved.")

    receiver_kyc_status, receiver_national_id_verified = await resolve_receiver_kyc(
        db,
        transfer_data.receiver_id,
        transfer_data.receiver_kyc_status,
        transfer_data.receiver_national_id_verified,
    )
    if receiver_kyc_status != APPROVED:
        raise TransferValidationError("Receiver KYC must be approved.")
    if not receiver_national_id_verified:
        raise TransferValidationError("Receiver National ID must be verified before transfer creation.")

    quote = await db.get(Quote, transfer_data.quote_id)
    if quote is None:
        raise QuoteNotFoundError(transfer_data.quote_id)
    if now >= quote.expires_at:
        raise QuoteExpiredError(quote.quote_id, quote.expires_at)
    if quote.send_amount_usd > settings.MAX_TRANSFER_USD:
        raise TransferValidationError(
            f"Send amount exceeds the {settings.MAX_TRANSFER_USD} USD per-transfer limit."
        )

    existing = await db.execute(select(Transfer.transfer_id).where(Transfer.quote_id == quote.quote_id))
    if existing.scalar_one_or_none() is not None:
        raise TransferValidationError(f"Quote {quote.quote_id} is already used by another transfer.")

    transfer_id = f"tr_{uuid.uuid4()}"
    address = strategy.generate_address(quote.chain, transfer_id)

    transfer = Transfer(
        transfer_id=transfer_id,
        quote_id=quote.quote_id,
        sender_id=transfer_data.sender_id,
        receiver_id=transfer_data.receiver_id,
        sender_kyc_status=transfer_data.sender_kyc_status,
        receiver_kyc_status=receiver_kyc_status,
        receiver_national_id_verified=receiver_national_id_verified,
        chain=quote.chain,
        token=quote.token,
        send_amount_usd=quote.send_amount_usd,
        status=TransferStatus.AWAITING_FUNDING,
        created_at=now,
        updated_at=now,
    )
    route = DepositRoute(
        route_id=f"route_{uuid.uuid4()}",
        transfer_id=transfer_id,
        chain=quote.chain,
        token=quote.token,
        deposit_address=address.deposit_address,
        deposit_memo=address.deposit_memo,
        derivation_path=address.derivation_path,
        status=DepositRouteStatus.ACTIVE,
        created_at=now,
    )

    quote_id = quote.quote_id
    try:
        db.add(transfer)
        await db.flush()
        db.add(route)
        db.add(TransferTransition(
            transfer_id=transfer_id,
            from_state=None,
            to_state=TransferStatus.AWAITING_FUNDING.value,
            transition_metadata={"quote_id": quote_id},
            occurred_at=now,
        ))
        append_audit(
            db,
            actor_type="customer",
            actor_id=transfer_data.sender_id,
            action="transfer_created",
            entity_type="transfer",
            entity_id=transfer_id,
            metadata={"quote_id": quote_id, "chain": quote.chain, "token": quote.token},
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Transfer creation for quote {quote_id} lost a uniqueness race: {e.orig}")
        raise TransferValidationError(
            f"Quote {quote_id} is already used by another transfer."
        ) from e

    await db.refresh(transfer)
    await db.refresh(route)

    logger.info(f"Created transfer {transfer_id} awaiting funding at {route.deposit_address}")
    event_bus.publish(TRANSFER_CREATED, {
        "transfer_id": transfer_id,
        "sender_id": transfer.sender_id,
        "receiver_id": transfer.receiver_id,
    })

    return transfer, route


async def get_transfer_by_id(db: AsyncSession, transfer_id: str) -> Transfer:
    transfer = await db.get(Transfer, transfer_id, populate_existing=True)
    if transfer is None:
        raise TransferNotFoundError(transfer_id)
    return transfer


async def get_transfer_detail(
    db: AsyncSession,
    transfer_id: str,
) -> Tuple[Transfer, Optional[DepositRoute], list[TransferTransition]]:
    """
    Load a transfer with its active deposit route and ordered status timeline.

    Raises:
        TransferNotFoundError: Unknown transfer
    """
    transfer = await get_transfer_by_id(db, transfer_id)

    route_result = await db.execute(
        select(DepositRoute).where(
            DepositRoute.transfer_id == transfer_id,
            DepositRoute.status == DepositRouteStatus.ACTIVE,
        )
    )
    route = route_result.scalar_one_or_none()

    timeline_result = await db.execute(
        select(TransferTransition)
        .where(TransferTransition.transfer_id == transfer_id)
        .order_by(TransferTransition.occurred_at, TransferTransition.id)
    )

    return transfer, route, list(timeline_result.scalars().all())
