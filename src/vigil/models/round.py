"""Report, vote and voting-round data models.

A voting round adjudicates exactly one report. It opens when the report
arrives (unless the subject is auto-classified), collects votes until
``closes_utc``, and is finalized exactly once afterwards.

Outcome state machine:
    PENDING → SUSPICIOUS     (quorum met, votes_for > votes_against)
    PENDING → CLEAN          (quorum met, votes_for <= votes_against)
    PENDING → INCONCLUSIVE   (quorum not met)

Terminal outcomes have no outgoing transitions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


class RoundOutcome(str, enum.Enum):
    """Outcome of a voting round."""
    PENDING = "pending"
    SUSPICIOUS = "suspicious"
    CLEAN = "clean"
    INCONCLUSIVE = "inconclusive"


# Valid outcome transitions
OUTCOME_TRANSITIONS: Dict[RoundOutcome, frozenset] = {
    RoundOutcome.PENDING: frozenset({
        RoundOutcome.SUSPICIOUS,
        RoundOutcome.CLEAN,
        RoundOutcome.INCONCLUSIVE,
    }),
    RoundOutcome.SUSPICIOUS: frozenset(),
    RoundOutcome.CLEAN: frozenset(),
    RoundOutcome.INCONCLUSIVE: frozenset(),
}


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Report:
    """An externally detected suspicious-subject report.

    Immutable. ``magnitude`` is a fixed-point integer with ``scale``
    decimal places (e.g. magnitude=1500, scale=2 means 15.00).
    """
    subject_id: str
    origin_chain_ref: str
    origin_source: str
    magnitude: int
    scale: int
    evidence_ref: str
    detector_id: str

    @property
    def amount(self) -> Decimal:
        """Exact decimal value of the reported magnitude."""
        return Decimal(self.magnitude).scaleb(-self.scale)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "origin_chain_ref": self.origin_chain_ref,
            "origin_source": self.origin_source,
            "magnitude": self.magnitude,
            "scale": self.scale,
            "evidence_ref": self.evidence_ref,
            "detector_id": self.detector_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Report:
        return Report(
            subject_id=data["subject_id"],
            origin_chain_ref=data["origin_chain_ref"],
            origin_source=data["origin_source"],
            magnitude=int(data["magnitude"]),
            scale=int(data["scale"]),
            evidence_ref=data["evidence_ref"],
            detector_id=data["detector_id"],
        )


@dataclass(frozen=True)
class Vote:
    """A single cast vote. Created once per (round, participant).

    stake_snapshot: available stake used to price the vote.
    locked_amount: stake locked on the participant at cast time.
    """
    voted_suspicious: bool
    voting_power: int
    stake_snapshot: int
    locked_amount: int
    cast_utc: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "voted_suspicious": self.voted_suspicious,
            "voting_power": self.voting_power,
            "stake_snapshot": self.stake_snapshot,
            "locked_amount": self.locked_amount,
            "cast_utc": _ts(self.cast_utc),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Vote:
        return Vote(
            voted_suspicious=bool(data["voted_suspicious"]),
            voting_power=int(data["voting_power"]),
            stake_snapshot=int(data["stake_snapshot"]),
            locked_amount=int(data["locked_amount"]),
            cast_utc=_parse_ts(data.get("cast_utc")),
        )


@dataclass
class VotingRound:
    """One time-boxed adjudication of a single report.

    Invariants:
    - votes_for + votes_against == total_voting_power
    - votes keys == set(voter_order), no duplicates
    - outcome changes at most once (PENDING → terminal)
    """
    round_id: int
    report: Report
    opened_utc: datetime
    closes_utc: datetime
    votes_for: int = 0
    votes_against: int = 0
    total_voting_power: int = 0
    finalized: bool = False
    outcome: RoundOutcome = RoundOutcome.PENDING
    votes: dict[str, Vote] = field(default_factory=dict)
    voter_order: list[str] = field(default_factory=list)

    # Settlement summary, filled in on finalization
    finalized_utc: Optional[datetime] = None
    finalized_by: Optional[str] = None
    total_penalties: int = 0
    fee_collected: int = 0
    distributed: int = 0
    finalizer_reward: int = 0

    @property
    def voter_count(self) -> int:
        return len(self.voter_order)

    def is_open(self, now: datetime) -> bool:
        """True while votes may still be cast."""
        return not self.finalized and now < self.closes_utc

    def add_vote(self, participant_id: str, vote: Vote) -> None:
        """Record a vote and update the tallies."""
        if participant_id in self.votes:
            raise ValueError(f"Duplicate vote for {participant_id} in round {self.round_id}")
        self.votes[participant_id] = vote
        self.voter_order.append(participant_id)
        if vote.voted_suspicious:
            self.votes_for += vote.voting_power
        else:
            self.votes_against += vote.voting_power
        self.total_voting_power += vote.voting_power

    def transition_to(self, new_outcome: RoundOutcome) -> None:
        """Move to a terminal outcome, validating the transition is legal."""
        allowed = OUTCOME_TRANSITIONS.get(self.outcome, frozenset())
        if new_outcome not in allowed:
            raise ValueError(
                f"Invalid round transition: {self.outcome.value} → {new_outcome.value}. "
                f"Allowed: {', '.join(s.value for s in allowed)}"
            )
        self.outcome = new_outcome
        self.finalized = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_id": self.round_id,
            "report": self.report.to_dict(),
            "opened_utc": _ts(self.opened_utc),
            "closes_utc": _ts(self.closes_utc),
            "votes_for": self.votes_for,
            "votes_against": self.votes_against,
            "total_voting_power": self.total_voting_power,
            "finalized": self.finalized,
            "outcome": self.outcome.value,
            "votes": {pid: v.to_dict() for pid, v in self.votes.items()},
            "voter_order": list(self.voter_order),
            "finalized_utc": _ts(self.finalized_utc),
            "finalized_by": self.finalized_by,
            "total_penalties": self.total_penalties,
            "fee_collected": self.fee_collected,
            "distributed": self.distributed,
            "finalizer_reward": self.finalizer_reward,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> VotingRound:
        return VotingRound(
            round_id=int(data["round_id"]),
            report=Report.from_dict(data["report"]),
            opened_utc=_parse_ts(data["opened_utc"]),
            closes_utc=_parse_ts(data["closes_utc"]),
            votes_for=int(data["votes_for"]),
            votes_against=int(data["votes_against"]),
            total_voting_power=int(data["total_voting_power"]),
            finalized=bool(data["finalized"]),
            outcome=RoundOutcome(data["outcome"]),
            votes={pid: Vote.from_dict(v) for pid, v in data["votes"].items()},
            voter_order=list(data["voter_order"]),
            finalized_utc=_parse_ts(data.get("finalized_utc")),
            finalized_by=data.get("finalized_by"),
            total_penalties=int(data.get("total_penalties", 0)),
            fee_collected=int(data.get("fee_collected", 0)),
            distributed=int(data.get("distributed", 0)),
            finalizer_reward=int(data.get("finalizer_reward", 0)),
        )
