"""Status state machines backed by conditional updates.

A transition is written as ``UPDATE ... SET status = :to WHERE id = :id AND
status = :current``. When a concurrent writer got there first the update hits zero
rows; the outcome is then reported as data (``already_applied`` or ``invalid``)
instead of raising, so callers can treat lost races as no-ops.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.transfer import Transfer, TransferStatus
from settlement.models.payout import PayoutInstruction, PayoutStatus


class TransitionResult(str, Enum):
    """Outcome of a requested status transition."""
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    INVALID = "invalid"


@dataclass
class TransitionOutcome:
    result: TransitionResult
    previous: Optional[Enum]  # status observed before the write; None if the row is missing

    @property
    def applied(self) -> bool:
        return self.result == TransitionResult.APPLIED


# Conditional update is retried when the row moved between read and write
_MAX_RACE_RETRIES = 3


class StateMachine:
    """Legal transitions for one status column."""

    def __init__(self, model, id_column, status_column, transitions: Mapping[Enum, Iterable[Enum]]):
        self.model = model
        self.id_column = id_column
        self.status_column = status_column
        self.transitions = {state: frozenset(targets) for state, targets in transitions.items()}

    def can_transition(self, from_state, to_state) -> bool:
        return to_state in self.transitions.get(from_state, frozenset())

    def is_terminal(self, state) -> bool:
        return not self.transitions.get(state)

    def reachable_from(self, state) -> set:
        """All states reachable from ``state`` in one or more steps."""
        seen: set = set()
        stack = list(self.transitions.get(state, ()))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.transitions.get(current, ()))
        return seen

    def classify(self, current, to_state, from_states: Optional[Iterable] = None) -> TransitionResult:
        """Decide, without touching storage, what a transition from ``current`` would do."""
        if current == to_state or current in self.reachable_from(to_state):
            return TransitionResult.ALREADY_APPLIED
        if from_states is not None and current not in set(from_states):
            return TransitionResult.INVALID
        if not self.can_transition(current, to_state):
            return TransitionResult.INVALID
        return TransitionResult.APPLIED

    async def transition(
        self,
        db: AsyncSession,
        entity_id: str,
        to_state,
        from_states: Optional[Iterable] = None,
        **values: Any,
    ) -> TransitionOutcome:
        """
        Move one row to ``to_state`` inside the caller's transaction.

        Args:
            db: Session whose transaction the update joins (not committed here)
            entity_id: Primary key of the row
            to_state: Target status
            from_states: Optional narrower set of states the caller accepts as origin
            **values: Extra columns written together with the status when applied

        Returns:
            TransitionOutcome with the result and the status observed before the write
        """
        from_states = list(from_states) if from_states is not None else None

        for _ in range(_MAX_RACE_RETRIES):
            current = await db.scalar(
                select(self.status_column).where(self.id_column == entity_id)
            )
            if current is None:
                return TransitionOutcome(TransitionResult.INVALID, None)

            verdict = self.classify(current, to_state, from_states)
            if verdict != TransitionResult.APPLIED:
                return TransitionOutcome(verdict, current)

            stmt = (
                update(self.model)
                .where(self.id_column == entity_id, self.status_column == current)
                .values(status=to_state, updated_at=datetime.utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount == 1:
                return TransitionOutcome(TransitionResult.APPLIED, current)

        # Still losing after several re-reads: report what is there now
        current = await db.scalar(select(self.status_column).where(self.id_column == entity_id))
        return TransitionOutcome(self.classify(current, to_state, from_states), current)


transfer_state_machine = StateMachine(
    Transfer,
    Transfer.transfer_id,
    Transfer.status,
    {
        TransferStatus.AWAITING_FUNDING: [TransferStatus.FUNDING_CONFIRMED, TransferStatus.EXPIRED],
        TransferStatus.FUNDING_CONFIRMED: [
            TransferStatus.PAYOUT_INITIATED,
            TransferStatus.PAYOUT_REVIEW_REQUIRED,
        ],
        TransferStatus.PAYOUT_INITIATED: [
            TransferStatus.PAYOUT_COMPLETED,
            TransferStatus.PAYOUT_FAILED,
            TransferStatus.PAYOUT_REVIEW_REQUIRED,
        ],
        TransferStatus.PAYOUT_COMPLETED: [],
        TransferStatus.PAYOUT_FAILED: [],
        TransferStatus.PAYOUT_REVIEW_REQUIRED: [],
        TransferStatus.EXPIRED: [],
    },
)

payout_state_machine = StateMachine(
    PayoutInstruction,
    PayoutInstruction.payout_id,
    PayoutInstruction.status,
    {
        PayoutStatus.PAYOUT_PENDING: [PayoutStatus.PAYOUT_INITIATED, PayoutStatus.PAYOUT_REVIEW_REQUIRED],
        PayoutStatus.PAYOUT_INITIATED: [
            PayoutStatus.PAYOUT_COMPLETED,
            PayoutStatus.PAYOUT_FAILED,
            PayoutStatus.PAYOUT_REVIEW_REQUIRED,
        ],
        PayoutStatus.PAYOUT_COMPLETED: [],
        PayoutStatus.PAYOUT_FAILED: [],
        PayoutStatus.PAYOUT_REVIEW_REQUIRED: [],
    },
)
