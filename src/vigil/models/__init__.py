"""Core data models for Vigil."""

from vigil.models.participant import Participant
from vigil.models.params import ConsensusParams
from vigil.models.round import (
    Report,
    RoundOutcome,
    Vote,
    VotingRound,
)
from vigil.models.verdict import AUTO_MARKED, SubjectVerdict

__all__ = [
    "AUTO_MARKED",
    "ConsensusParams",
    "Participant",
    "Report",
    "RoundOutcome",
    "SubjectVerdict",
    "Vote",
    "VotingRound",
]
