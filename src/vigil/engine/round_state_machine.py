"""Round state machine — validates vote casting and finalization.

Round lifecycle:
    OPEN (now < closes_utc)  → votes accepted
    CLOSED (now >= closes_utc, not finalized) → awaiting finalization
    FINALIZED {SUSPICIOUS | CLEAN | INCONCLUSIVE} → immutable

Pure computation: checks preconditions and decides outcomes. Mutation
of ledger and round state is done by the service layer, which calls
these checks before touching anything.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from vigil.engine.voting_power import VotingPowerCalculator
from vigil.errors import (
    AlreadyFinalized,
    AlreadyVoted,
    InsufficientKarma,
    InsufficientStake,
    InsufficientVotingPower,
    RoundStillOpen,
    SelfVote,
    VotingClosed,
)
from vigil.models.params import ConsensusParams
from vigil.models.participant import Participant
from vigil.models.round import RoundOutcome, VotingRound


@dataclass(frozen=True)
class VoteQuote:
    """Priced vote, ready to be recorded."""
    voting_power: int
    stake_snapshot: int
    lock_amount: int


class RoundStateMachine:
    """Validates round transitions against the current parameters."""

    @staticmethod
    def validate_vote(
        voting_round: VotingRound,
        participant_id: str,
        participant: Optional[Participant],
        params: ConsensusParams,
        now: datetime,
    ) -> VoteQuote:
        """Check every cast-vote precondition and price the vote.

        Checks, in order: finalized, voting window, duplicate vote,
        self-vote, karma threshold (inclusive), minimum available stake,
        positive voting power. Raises the first failing error.
        """
        if voting_round.finalized:
            raise AlreadyFinalized(f"Round {voting_round.round_id} is already finalized")
        if now >= voting_round.closes_utc:
            raise VotingClosed(
                f"Voting on round {voting_round.round_id} closed at "
                f"{voting_round.closes_utc.isoformat()}"
            )
        if participant_id in voting_round.votes:
            raise AlreadyVoted(f"{participant_id} already voted in round {voting_round.round_id}")
        if participant_id == voting_round.report.subject_id:
            raise SelfVote(f"{participant_id} cannot vote on a report about itself")

        karma = participant.karma if participant else 0
        available = participant.available_stake if participant else 0

        if karma < params.minimum_karma_to_vote:
            raise InsufficientKarma(
                f"Karma {karma} is below minimum_karma_to_vote {params.minimum_karma_to_vote}"
            )
        if available < params.minimum_stake:
            raise InsufficientStake(
                f"Available stake {available} is below minimum_stake {params.minimum_stake}"
            )

        power = VotingPowerCalculator.power(available, karma)
        if power <= 0:
            raise InsufficientVotingPower(
                f"Voting power {power} (stake {available}, karma {karma}) is not positive"
            )
        return VoteQuote(
            voting_power=power,
            stake_snapshot=available,
            lock_amount=params.minimum_stake,
        )

    @staticmethod
    def validate_finalize(voting_round: VotingRound, now: datetime) -> None:
        if voting_round.finalized:
            raise AlreadyFinalized(f"Round {voting_round.round_id} is already finalized")
        if now < voting_round.closes_utc:
            raise RoundStillOpen(
                f"Round {voting_round.round_id} is open until "
                f"{voting_round.closes_utc.isoformat()}"
            )

    @staticmethod
    def decide_outcome(voting_round: VotingRound, quorum_passed: bool) -> RoundOutcome:
        """Consensus outcome. Ties go to CLEAN (against wins ties)."""
        if not quorum_passed:
            return RoundOutcome.INCONCLUSIVE
        if voting_round.votes_for > voting_round.votes_against:
            return RoundOutcome.SUSPICIOUS
        return RoundOutcome.CLEAN

    @staticmethod
    def is_terminal(outcome: RoundOutcome) -> bool:
        return outcome != RoundOutcome.PENDING
