"""Consensus engine components."""

from vigil.engine.quorum import QuorumEnforcer
from vigil.engine.results import ResultsProcessor
from vigil.engine.round_state_machine import RoundStateMachine
from vigil.engine.voting_power import VotingPowerCalculator

__all__ = [
    "QuorumEnforcer",
    "ResultsProcessor",
    "RoundStateMachine",
    "VotingPowerCalculator",
]
