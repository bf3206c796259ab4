"""Consensus parameters.

All percentages are basis points (1 bps = 0.01%, 10_000 bps = 100%).

Invariants:
- minimum_stake > 0, voting_duration_seconds > 0
- 0 <= penalty_bps <= MAX_PENALTY_BPS
- 0 <= finalization_fee_bps <= MAX_FINALIZATION_BPS
- 0 <= finalization_reward_bps <= MAX_FINALIZATION_BPS
- finalization_reward_bps < finalization_fee_bps (unless both are zero)
- karma_reward >= 0, karma_penalty >= 0
- minimum_voters > 0, minimum_total_voting_power > 0
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

from vigil.errors import InvalidParameter

BPS_DENOMINATOR = 10_000
# Mirrored in tools/check_invariants.py
MAX_PENALTY_BPS = 5_000
MAX_FINALIZATION_BPS = 1_000


@dataclass(frozen=True)
class ConsensusParams:
    """Tunable economic and quorum parameters of the engine."""
    minimum_stake: int = 100
    voting_duration_seconds: int = 86_400
    minimum_karma_to_vote: int = -100
    penalty_bps: int = 1_000
    finalization_fee_bps: int = 100
    finalization_reward_bps: int = 50
    karma_reward: int = 10
    karma_penalty: int = 5
    minimum_voters: int = 3
    minimum_total_voting_power: int = 1_000

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParameter(f"{f.name} must be an integer, got {value!r}")
        if self.minimum_stake <= 0:
            raise InvalidParameter("minimum_stake must be > 0")
        if self.voting_duration_seconds <= 0:
            raise InvalidParameter("voting_duration_seconds must be > 0")
        if not 0 <= self.penalty_bps <= MAX_PENALTY_BPS:
            raise InvalidParameter(
                f"penalty_bps must be in [0, {MAX_PENALTY_BPS}], got {self.penalty_bps}"
            )
        if not 0 <= self.finalization_fee_bps <= MAX_FINALIZATION_BPS:
            raise InvalidParameter(
                f"finalization_fee_bps must be in [0, {MAX_FINALIZATION_BPS}], "
                f"got {self.finalization_fee_bps}"
            )
        if not 0 <= self.finalization_reward_bps <= MAX_FINALIZATION_BPS:
            raise InvalidParameter(
                f"finalization_reward_bps must be in [0, {MAX_FINALIZATION_BPS}], "
                f"got {self.finalization_reward_bps}"
            )
        if self.finalization_reward_bps and (
            self.finalization_reward_bps >= self.finalization_fee_bps
        ):
            raise InvalidParameter(
                f"finalization_reward_bps ({self.finalization_reward_bps}) must stay "
                f"below finalization_fee_bps ({self.finalization_fee_bps})"
            )
        if self.karma_reward < 0:
            raise InvalidParameter("karma_reward must be >= 0")
        if self.karma_penalty < 0:
            raise InvalidParameter("karma_penalty must be >= 0")
        if self.minimum_voters <= 0:
            raise InvalidParameter("minimum_voters must be > 0")
        if self.minimum_total_voting_power <= 0:
            raise InvalidParameter("minimum_total_voting_power must be > 0")

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ConsensusParams:
        known = {f.name for f in fields(ConsensusParams)}
        unknown = set(data) - known
        if unknown:
            raise InvalidParameter(f"Unknown parameters: {', '.join(sorted(unknown))}")
        return ConsensusParams(**data)
