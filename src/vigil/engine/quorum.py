"""Quorum enforcer — gates whether a round may resolve to a consensus.

A round reaches quorum only if BOTH hold:
- number of voters >= minimum_voters
- total voting power >= minimum_total_voting_power

Either failing makes the round INCONCLUSIVE.
"""

from __future__ import annotations

from dataclasses import dataclass

from vigil.models.params import ConsensusParams
from vigil.models.round import VotingRound


@dataclass(frozen=True)
class QuorumResult:
    """Whether a round met quorum, with the reasons if not."""
    passed: bool
    voter_count: int
    total_voting_power: int
    violations: tuple[str, ...]


class QuorumEnforcer:
    """Checks participation thresholds against current parameters."""

    def __init__(self, params: ConsensusParams) -> None:
        self._params = params

    def passes(self, voting_round: VotingRound) -> bool:
        return self.evaluate(voting_round).passed

    def evaluate(self, voting_round: VotingRound) -> QuorumResult:
        violations: list[str] = []
        if voting_round.voter_count < self._params.minimum_voters:
            violations.append(
                f"voter count {voting_round.voter_count} "
                f"< minimum_voters {self._params.minimum_voters}"
            )
        if voting_round.total_voting_power < self._params.minimum_total_voting_power:
            violations.append(
                f"total voting power {voting_round.total_voting_power} "
                f"< minimum_total_voting_power {self._params.minimum_total_voting_power}"
            )
        return QuorumResult(
            passed=not violations,
            voter_count=voting_round.voter_count,
            total_voting_power=voting_round.total_voting_power,
            violations=tuple(violations),
        )
