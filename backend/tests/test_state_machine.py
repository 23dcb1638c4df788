"""Tests for conditional status transitions."""

import pytest

from settlement.core.state_machine import (
    TransitionResult,
    payout_state_machine,
    transfer_state_machine,
)
from settlement.models.payout import PayoutStatus
from settlement.models.transfer import TransferStatus


def test_classify_legal_transition():
    assert transfer_state_machine.classify(
        TransferStatus.AWAITING_FUNDING, TransferStatus.FUNDING_CONFIRMED
    ) == TransitionResult.APPLIED


def test_classify_target_or_later_state_is_already_applied():
    assert transfer_state_machine.classify(
        TransferStatus.FUNDING_CONFIRMED, TransferStatus.FUNDING_CONFIRMED
    ) == TransitionResult.ALREADY_APPLIED
    assert transfer_state_machine.classify(
        TransferStatus.PAYOUT_COMPLETED, TransferStatus.FUNDING_CONFIRMED
    ) == TransitionResult.ALREADY_APPLIED


def test_classify_illegal_transition():
    assert transfer_state_machine.classify(
        TransferStatus.PAYOUT_FAILED, TransferStatus.PAYOUT_COMPLETED
    ) == TransitionResult.INVALID
    assert transfer_state_machine.classify(
        TransferStatus.AWAITING_FUNDING, TransferStatus.PAYOUT_INITIATED
    ) == TransitionResult.INVALID


def test_classify_respects_narrowed_origin():
    assert transfer_state_machine.classify(
        TransferStatus.PAYOUT_INITIATED,
        TransferStatus.PAYOUT_REVIEW_REQUIRED,
        from_states=[TransferStatus.FUNDING_CONFIRMED],
    ) == TransitionResult.INVALID


def test_terminal_states():
    for status in (TransferStatus.PAYOUT_COMPLETED, TransferStatus.PAYOUT_FAILED,
                   TransferStatus.PAYOUT_REVIEW_REQUIRED, TransferStatus.EXPIRED):
        assert transfer_state_machine.is_terminal(status)
    assert not transfer_state_machine.is_terminal(TransferStatus.AWAITING_FUNDING)
    assert payout_state_machine.is_terminal(PayoutStatus.PAYOUT_COMPLETED)
    assert not payout_state_machine.is_terminal(PayoutStatus.PAYOUT_PENDING)


@pytest.mark.asyncio
async def test_transition_applies_once(db, transfer):
    created, _ = transfer

    first = await transfer_state_machine.transition(
        db, created.transfer_id, TransferStatus.FUNDING_CONFIRMED,
        from_states=[TransferStatus.AWAITING_FUNDING],
    )
    await db.commit()
    second = await transfer_state_machine.transition(
        db, created.transfer_id, TransferStatus.FUNDING_CONFIRMED,
        from_states=[TransferStatus.AWAITING_FUNDING],
    )

    assert first.applied
    assert first.previous == TransferStatus.AWAITING_FUNDING
    assert second.result == TransitionResult.ALREADY_APPLIED
    assert second.previous == TransferStatus.FUNDING_CONFIRMED

    await db.refresh(created)
    assert created.status == TransferStatus.FUNDING_CONFIRMED


@pytest.mark.asyncio
async def test_transition_rejects_illegal_move(db, transfer):
    created, _ = transfer

    outcome = await transfer_state_machine.transition(db, created.transfer_id, TransferStatus.PAYOUT_COMPLETED)

    assert outcome.result == TransitionResult.INVALID
    await db.refresh(created)
    assert created.status == TransferStatus.AWAITING_FUNDING


@pytest.mark.asyncio
async def test_transition_on_missing_row(db):
    outcome = await transfer_state_machine.transition(db, "tr_missing", TransferStatus.FUNDING_CONFIRMED)

    assert outcome.result == TransitionResult.INVALID
    assert outcome.previous is None
