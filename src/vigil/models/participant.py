"""Participant (staker) data model.

A participant is an account holding committed capital that weights its
votes. All amounts are integers in the smallest unit of the staking
currency.

Invariants enforced by the ledger:
- 0 <= locked_stake <= committed_stake
- available_stake = committed_stake - locked_stake
- karma is unbounded below (no floor)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class Participant:
    """Current stake, karma and voting record for one participant.

    Mutable — the ledger updates it on deposit/withdraw, vote cast
    (lock) and round settlement (unlock, penalty/reward, karma).
    """
    participant_id: str
    committed_stake: int = 0
    locked_stake: int = 0
    karma: int = 0
    total_votes: int = 0
    correct_votes: int = 0

    @property
    def available_stake(self) -> int:
        return self.committed_stake - self.locked_stake

    @property
    def accuracy(self) -> float:
        """Fraction of settled votes that matched consensus."""
        if self.total_votes == 0:
            return 0.0
        return self.correct_votes / self.total_votes

    def to_dict(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "committed_stake": self.committed_stake,
            "locked_stake": self.locked_stake,
            "karma": self.karma,
            "total_votes": self.total_votes,
            "correct_votes": self.correct_votes,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Participant:
        return Participant(
            participant_id=data["participant_id"],
            committed_stake=int(data["committed_stake"]),
            locked_stake=int(data["locked_stake"]),
            karma=int(data["karma"]),
            total_votes=int(data["total_votes"]),
            correct_votes=int(data["correct_votes"]),
        )
