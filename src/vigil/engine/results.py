"""Results processor — penalties, protocol fee, rewards and karma.

Settlement of a round that reached consensus runs two passes over the
voters in cast order, so results are reproducible from the vote
sequence alone.

Pass 1 (per voter):
    unlock the stake locked at cast time (clamped at zero)
    correct   → correct_power += voting_power
    incorrect → penalty = min(stake_snapshot * penalty_bps // 10_000,
                              committed_stake); debited from stake

Fee:
    fee = total_penalties * finalization_fee_bps // 10_000  → incentive pool
    distributable = total_penalties - fee

Pass 2 (per voter):
    correct   → karma += karma_reward, correct_votes += 1,
                stake += distributable * voting_power // correct_power
    incorrect → karma -= karma_penalty (no floor)

Rounding remainder of the proportional split stays undistributed. The
leak is bounded by (number of correct voters - 1) units and is accepted
numeric slack, not a bug.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from vigil.ledger.incentive_pool import IncentivePool
from vigil.ledger.participants import ParticipantLedger
from vigil.models.params import BPS_DENOMINATOR, ConsensusParams
from vigil.models.round import RoundOutcome, VotingRound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoterSettlement:
    """What settlement did to one voter."""
    participant_id: str
    voted_correctly: bool
    unlocked: int
    penalty: int
    reward: int
    karma_delta: int
    karma_after: int


@dataclass
class SettlementReport:
    """Totals and per-voter breakdown of one round's settlement."""
    round_id: int
    outcome: RoundOutcome
    total_penalties: int = 0
    fee: int = 0
    distributable: int = 0
    distributed: int = 0
    correct_power: int = 0
    voters: list[VoterSettlement] = field(default_factory=list)

    @property
    def rounding_remainder(self) -> int:
        return self.distributable - self.distributed


class ResultsProcessor:
    """Applies a consensus outcome to the ledger and incentive pool."""

    def __init__(self, params: ConsensusParams) -> None:
        self._params = params

    def settle(
        self,
        voting_round: VotingRound,
        outcome: RoundOutcome,
        ledger: ParticipantLedger,
        pool: IncentivePool,
    ) -> SettlementReport:
        if outcome not in (RoundOutcome.SUSPICIOUS, RoundOutcome.CLEAN):
            raise ValueError(f"Cannot settle a round with outcome {outcome.value}")

        params = self._params
        suspicious = outcome == RoundOutcome.SUSPICIOUS
        report = SettlementReport(round_id=voting_round.round_id, outcome=outcome)

        # Pass 1: unlock, classify, collect penalties
        correct: dict[str, bool] = {}
        unlocked: dict[str, int] = {}
        penalties: dict[str, int] = {}
        for pid in voting_round.voter_order:
            vote = voting_round.votes[pid]
            unlocked[pid] = ledger.unlock(pid, vote.locked_amount)
            voted_correctly = vote.voted_suspicious == suspicious
            correct[pid] = voted_correctly
            if voted_correctly:
                report.correct_power += vote.voting_power
                continue
            raw_penalty = vote.stake_snapshot * params.penalty_bps // BPS_DENOMINATOR
            penalty = ledger.debit(pid, raw_penalty)
            penalties[pid] = penalty
            report.total_penalties += penalty

        report.fee = report.total_penalties * params.finalization_fee_bps // BPS_DENOMINATOR
        pool.deposit_fee(report.fee)
        report.distributable = report.total_penalties - report.fee

        # Pass 2: rewards and karma
        for pid in voting_round.voter_order:
            vote = voting_round.votes[pid]
            reward = 0
            if correct[pid]:
                delta = params.karma_reward
                ledger.record_correct_vote(pid)
                if report.distributable > 0 and report.correct_power > 0:
                    reward = report.distributable * vote.voting_power // report.correct_power
                    ledger.credit(pid, reward)
                    report.distributed += reward
            else:
                delta = -params.karma_penalty
            karma_after = ledger.adjust_karma(pid, delta)
            report.voters.append(VoterSettlement(
                participant_id=pid,
                voted_correctly=correct[pid],
                unlocked=unlocked[pid],
                penalty=penalties.get(pid, 0),
                reward=reward,
                karma_delta=delta,
                karma_after=karma_after,
            ))
            logger.debug(
                "Round %d voter %s: correct=%s penalty=%d reward=%d karma=%+d",
                voting_round.round_id, pid, correct[pid],
                penalties.get(pid, 0), reward, delta,
            )

        return report

    @staticmethod
    def release_locks(voting_round: VotingRound, ledger: ParticipantLedger) -> dict[str, int]:
        """Unlock every voter's stake without any economic effect.

        Used for INCONCLUSIVE rounds. Returns the amount released per voter.
        """
        return {
            pid: ledger.unlock(pid, voting_round.votes[pid].locked_amount)
            for pid in voting_round.voter_order
        }
