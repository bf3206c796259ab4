"""Tests for the round state machine and quorum enforcer."""

import pytest
from datetime import datetime, timedelta, timezone

from vigil.engine.quorum import QuorumEnforcer
from vigil.engine.round_state_machine import RoundStateMachine
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
from vigil.models.round import Report, RoundOutcome, Vote, VotingRound


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _round(duration: int = 3600) -> VotingRound:
    report = Report(
        subject_id="0xsubject",
        origin_chain_ref="1",
        origin_source="mempool",
        magnitude=1500,
        scale=2,
        evidence_ref="0xtx",
        detector_id="detector",
    )
    return VotingRound(
        round_id=1,
        report=report,
        opened_utc=T0,
        closes_utc=T0 + timedelta(seconds=duration),
    )


def _vote(suspicious: bool, power: int) -> Vote:
    return Vote(voted_suspicious=suspicious, voting_power=power,
                stake_snapshot=power, locked_amount=100)


@pytest.fixture
def params() -> ConsensusParams:
    return ConsensusParams()


class TestValidateVote:
    def test_prices_vote(self, params: ConsensusParams) -> None:
        p = Participant("alice", committed_stake=1000, karma=100)
        quote = RoundStateMachine.validate_vote(_round(), "alice", p, params, T0)
        assert quote.voting_power == 1010
        assert quote.stake_snapshot == 1000
        assert quote.lock_amount == params.minimum_stake

    def test_snapshot_uses_available_stake(self, params: ConsensusParams) -> None:
        p = Participant("alice", committed_stake=1000, locked_stake=300)
        quote = RoundStateMachine.validate_vote(_round(), "alice", p, params, T0)
        assert quote.stake_snapshot == 700

    def test_closed_at_exact_deadline(self, params: ConsensusParams) -> None:
        r = _round()
        p = Participant("alice", committed_stake=1000)
        with pytest.raises(VotingClosed):
            RoundStateMachine.validate_vote(r, "alice", p, params, r.closes_utc)

    def test_finalized_checked_first(self, params: ConsensusParams) -> None:
        r = _round()
        r.transition_to(RoundOutcome.CLEAN)
        with pytest.raises(AlreadyFinalized):
            RoundStateMachine.validate_vote(r, "alice", None, params, r.closes_utc)

    def test_duplicate_vote(self, params: ConsensusParams) -> None:
        r = _round()
        r.add_vote("alice", _vote(True, 500))
        p = Participant("alice", committed_stake=1000)
        with pytest.raises(AlreadyVoted):
            RoundStateMachine.validate_vote(r, "alice", p, params, T0)

    def test_self_vote(self, params: ConsensusParams) -> None:
        p = Participant("0xsubject", committed_stake=1000)
        with pytest.raises(SelfVote):
            RoundStateMachine.validate_vote(_round(), "0xsubject", p, params, T0)

    def test_karma_threshold_inclusive(self, params: ConsensusParams) -> None:
        at_min = Participant("alice", committed_stake=1000, karma=params.minimum_karma_to_vote)
        RoundStateMachine.validate_vote(_round(), "alice", at_min, params, T0)
        below = Participant("bob", committed_stake=1000, karma=params.minimum_karma_to_vote - 1)
        with pytest.raises(InsufficientKarma):
            RoundStateMachine.validate_vote(_round(), "bob", below, params, T0)

    def test_karma_checked_before_stake(self, params: ConsensusParams) -> None:
        p = Participant("alice", committed_stake=0, karma=-500)
        with pytest.raises(InsufficientKarma):
            RoundStateMachine.validate_vote(_round(), "alice", p, params, T0)

    def test_minimum_stake(self, params: ConsensusParams) -> None:
        p = Participant("alice", committed_stake=99)
        with pytest.raises(InsufficientStake):
            RoundStateMachine.validate_vote(_round(), "alice", p, params, T0)

    def test_unknown_participant_has_no_stake(self, params: ConsensusParams) -> None:
        with pytest.raises(InsufficientStake):
            RoundStateMachine.validate_vote(_round(), "ghost", None, params, T0)

    def test_non_positive_power(self) -> None:
        params = ConsensusParams(minimum_karma_to_vote=-1_000)
        p = Participant("alice", committed_stake=1000, karma=-400)
        with pytest.raises(InsufficientVotingPower):
            RoundStateMachine.validate_vote(_round(), "alice", p, params, T0)


class TestValidateFinalize:
    def test_still_open(self) -> None:
        r = _round()
        with pytest.raises(RoundStillOpen):
            RoundStateMachine.validate_finalize(r, T0)

    def test_closed_ok(self) -> None:
        r = _round()
        RoundStateMachine.validate_finalize(r, r.closes_utc)

    def test_already_finalized(self) -> None:
        r = _round()
        r.transition_to(RoundOutcome.INCONCLUSIVE)
        with pytest.raises(AlreadyFinalized):
            RoundStateMachine.validate_finalize(r, r.closes_utc)


class TestOutcome:
    def test_majority_for_is_suspicious(self) -> None:
        r = _round()
        r.add_vote("a", _vote(True, 600))
        r.add_vote("b", _vote(False, 400))
        assert RoundStateMachine.decide_outcome(r, True) == RoundOutcome.SUSPICIOUS

    def test_tie_is_clean(self) -> None:
        r = _round()
        r.add_vote("a", _vote(True, 500))
        r.add_vote("b", _vote(False, 500))
        assert RoundStateMachine.decide_outcome(r, True) == RoundOutcome.CLEAN

    def test_no_quorum_is_inconclusive(self) -> None:
        r = _round()
        r.add_vote("a", _vote(True, 5000))
        assert RoundStateMachine.decide_outcome(r, False) == RoundOutcome.INCONCLUSIVE

    def test_terminal(self) -> None:
        assert not RoundStateMachine.is_terminal(RoundOutcome.PENDING)
        assert RoundStateMachine.is_terminal(RoundOutcome.CLEAN)


class TestRoundModel:
    def test_tallies(self) -> None:
        r = _round()
        r.add_vote("a", _vote(True, 600))
        r.add_vote("b", _vote(False, 400))
        assert r.votes_for + r.votes_against == r.total_voting_power == 1000
        assert r.voter_order == ["a", "b"]

    def test_terminal_outcome_is_final(self) -> None:
        r = _round()
        r.transition_to(RoundOutcome.SUSPICIOUS)
        with pytest.raises(ValueError, match="Invalid round transition"):
            r.transition_to(RoundOutcome.CLEAN)

    def test_report_amount_is_exact(self) -> None:
        assert str(_round().report.amount) == "15.00"


class TestQuorum:
    def test_passes(self, params: ConsensusParams) -> None:
        r = _round()
        for pid, power in (("a", 500), ("b", 300), ("c", 200)):
            r.add_vote(pid, _vote(True, power))
        result = QuorumEnforcer(params).evaluate(r)
        assert result.passed
        assert result.violations == ()

    def test_too_few_voters(self, params: ConsensusParams) -> None:
        r = _round()
        r.add_vote("a", _vote(True, 5000))
        r.add_vote("b", _vote(False, 5000))
        result = QuorumEnforcer(params).evaluate(r)
        assert not result.passed
        assert len(result.violations) == 1
        assert "minimum_voters" in result.violations[0]

    def test_too_little_power(self, params: ConsensusParams) -> None:
        r = _round()
        for pid in ("a", "b", "c"):
            r.add_vote(pid, _vote(True, 100))
        assert not QuorumEnforcer(params).passes(r)

    def test_both_violations_reported(self, params: ConsensusParams) -> None:
        result = QuorumEnforcer(params).evaluate(_round())
        assert len(result.violations) == 2
