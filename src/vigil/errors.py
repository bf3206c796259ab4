"""Error taxonomy for the consensus engine.

Every failure is terminal and all-or-nothing: the operation that raised
leaves no state behind. Callers switch on ``kind`` (stable string) rather
than on message text.

Families:
- ValidationError: malformed input (zero amount, blank id, bad parameter).
- PreconditionError: the input is well-formed but the current state
  forbids the operation (round still open, stake locked, ...).
- AuthorizationError: the caller lacks the required capability.
"""

from __future__ import annotations


class VigilError(Exception):
    """Base class for all engine errors."""
    kind = "error"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class ValidationError(VigilError, ValueError):
    """Raised when an input value is malformed."""
    kind = "validation"


class InvalidAmount(ValidationError):
    kind = "invalid_amount"


class InvalidIdentifier(ValidationError):
    kind = "invalid_identifier"


class InvalidParameter(ValidationError):
    kind = "invalid_parameter"


# ---------------------------------------------------------------------------
# State preconditions
# ---------------------------------------------------------------------------

class PreconditionError(VigilError):
    """Raised when current state does not permit the operation."""
    kind = "precondition"


class InvalidRoundId(PreconditionError):
    kind = "invalid_round_id"


class RoundStillOpen(PreconditionError):
    kind = "round_still_open"


class VotingClosed(PreconditionError):
    kind = "voting_closed"


class AlreadyFinalized(PreconditionError):
    kind = "already_finalized"


class AlreadyVoted(PreconditionError):
    kind = "already_voted"


class SelfVote(PreconditionError):
    kind = "self_vote"


class StakeLocked(PreconditionError):
    kind = "stake_locked"


class InsufficientStake(PreconditionError):
    kind = "insufficient_stake"


class InsufficientKarma(PreconditionError):
    kind = "insufficient_karma"


class InsufficientVotingPower(PreconditionError):
    kind = "insufficient_voting_power"


class NoVerdictToClear(PreconditionError):
    kind = "no_verdict_to_clear"


class InsufficientPoolBalance(PreconditionError):
    kind = "insufficient_pool_balance"


class ReentrantCall(PreconditionError):
    """Raised when a mutating call arrives while another is in flight
    on the same thread (e.g. from a value-ledger callback)."""
    kind = "reentrant_call"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class AuthorizationError(VigilError, PermissionError):
    kind = "authorization"


class Unauthorized(AuthorizationError):
    kind = "unauthorized"
