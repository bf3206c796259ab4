"""Voting power — available stake modulated by karma.

Positive karma is a linear bonus (100 karma = +1%):
    power = stake + stake * karma // 10_000

Negative karma is a quadratic penalty, saturating at |karma| > 10_000:
    a = -karma
    squared = 100_000_000 if a > 10_000 else a * a
    power = stake - stake * squared // 100_000

Power may go negative for deeply negative karma; callers must refuse
to record a vote when power <= 0. All division truncates (operands
are non-negative, so this is floor division).
"""

from __future__ import annotations

from vigil.errors import InvalidAmount

KARMA_BONUS_DENOMINATOR = 10_000
KARMA_PENALTY_DENOMINATOR = 100_000
KARMA_SATURATION = 10_000
SATURATED_SQUARE = KARMA_SATURATION * KARMA_SATURATION


class VotingPowerCalculator:
    """Pure mapping (available stake, karma) -> signed voting power."""

    @staticmethod
    def power(available_stake: int, karma: int) -> int:
        if available_stake < 0:
            raise InvalidAmount(f"Available stake cannot be negative: {available_stake}")
        if karma >= 0:
            return available_stake + available_stake * karma // KARMA_BONUS_DENOMINATOR

        magnitude = -karma
        squared = SATURATED_SQUARE if magnitude > KARMA_SATURATION else magnitude * magnitude
        penalty = available_stake * squared // KARMA_PENALTY_DENOMINATOR
        return available_stake - penalty
