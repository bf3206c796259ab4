"""Participant ledger — committed stake, locks, karma and vote statistics.

The ledger is accounting only: custody of the underlying funds belongs
to the external value ledger. Balances here must stay consistent with
it, which the service layer guarantees by moving funds and updating the
ledger inside one transaction.

Withdrawal policy is deliberately conservative: a participant with any
locked stake (any vote in a round not yet finalized) cannot withdraw,
even when the requested amount fits within the unlocked headroom.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional

from vigil.errors import (
    InsufficientStake,
    InvalidAmount,
    InvalidIdentifier,
    StakeLocked,
)
from vigil.models.participant import Participant

logger = logging.getLogger(__name__)


def normalize_id(participant_id: str) -> str:
    """Strip whitespace and reject blank identifiers."""
    if not isinstance(participant_id, str) or not participant_id.strip():
        raise InvalidIdentifier(f"Invalid identifier: {participant_id!r}")
    return participant_id.strip()


class ParticipantLedger:
    """In-memory ledger of participants keyed by id.

    When a mapping is passed in, the ledger reads and writes it directly.

    Usage:
        ledger = ParticipantLedger()
        ledger.deposit("alice", 500)
        ledger.lock("alice", 100)
        ledger.unlock("alice", 100)
        ledger.withdraw("alice", 200)
    """

    def __init__(self, participants: Optional[Dict[str, Participant]] = None) -> None:
        self._participants: Dict[str, Participant] = participants if participants is not None else {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id.strip())

    def available_stake(self, participant_id: str) -> int:
        p = self.get(participant_id)
        return p.available_stake if p else 0

    def karma(self, participant_id: str) -> int:
        p = self.get(participant_id)
        return p.karma if p else 0

    def total_committed(self) -> int:
        return sum(p.committed_stake for p in self._participants.values())

    def participants(self) -> Iterator[Participant]:
        return iter(self._participants.values())

    def __len__(self) -> int:
        return len(self._participants)

    # ------------------------------------------------------------------
    # Deposits and withdrawals
    # ------------------------------------------------------------------

    def deposit(self, participant_id: str, amount: int) -> Participant:
        """Increase committed stake, creating the participant if new."""
        pid = normalize_id(participant_id)
        if amount <= 0:
            raise InvalidAmount("Deposit amount must be positive")
        participant = self._participants.get(pid)
        if participant is None:
            participant = Participant(participant_id=pid)
            self._participants[pid] = participant
        participant.committed_stake += amount
        return participant

    def check_withdraw(self, participant_id: str, amount: int) -> Participant:
        """Validate a withdrawal without applying it."""
        pid = normalize_id(participant_id)
        if amount <= 0:
            raise InvalidAmount("Withdrawal amount must be positive")
        participant = self._participants.get(pid)
        available = participant.available_stake if participant else 0
        if amount > available:
            raise InsufficientStake(
                f"Withdrawal of {amount} exceeds available stake {available}"
            )
        if participant.locked_stake > 0:
            raise StakeLocked(
                f"{pid} has {participant.locked_stake} locked in active votes"
            )
        return participant

    def withdraw(self, participant_id: str, amount: int) -> Participant:
        participant = self.check_withdraw(participant_id, amount)
        participant.committed_stake -= amount
        return participant

    # ------------------------------------------------------------------
    # Lock accounting (round lifecycle)
    # ------------------------------------------------------------------

    def lock(self, participant_id: str, amount: int) -> None:
        participant = self._require(participant_id)
        if amount < 0:
            raise InvalidAmount("Lock amount cannot be negative")
        if amount > participant.available_stake:
            raise InsufficientStake(
                f"Cannot lock {amount}: available stake is {participant.available_stake}"
            )
        participant.locked_stake += amount

    def unlock(self, participant_id: str, amount: int) -> int:
        """Release locked stake, clamping at zero. Returns amount released."""
        participant = self._require(participant_id)
        released = min(max(amount, 0), participant.locked_stake)
        if released < amount:
            logger.warning(
                "Unlock of %d for %s clamped to %d (locked stake out of step)",
                amount, participant.participant_id, released,
            )
        participant.locked_stake -= released
        return released

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def debit(self, participant_id: str, amount: int) -> int:
        """Slash committed stake, capped at what the participant holds.

        Returns the amount actually debited. Locked stake is trimmed if
        the debit would leave it above the remaining committed stake.
        """
        participant = self._require(participant_id)
        debited = min(max(amount, 0), participant.committed_stake)
        participant.committed_stake -= debited
        if participant.locked_stake > participant.committed_stake:
            participant.locked_stake = participant.committed_stake
        return debited

    def credit(self, participant_id: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount("Credit amount cannot be negative")
        self._require(participant_id).committed_stake += amount

    def adjust_karma(self, participant_id: str, delta: int) -> int:
        """Apply a karma delta. Returns the new karma (no floor)."""
        participant = self._require(participant_id)
        participant.karma += delta
        return participant.karma

    def record_vote(self, participant_id: str) -> None:
        self._require(participant_id).total_votes += 1

    def record_correct_vote(self, participant_id: str) -> None:
        self._require(participant_id).correct_votes += 1

    def _require(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id.strip())
        if participant is None:
            raise InvalidIdentifier(f"Unknown participant: {participant_id}")
        return participant
