"""Vigil service — single-writer facade for the consensus engine.

This is the primary interface for programmatic access to Vigil. It
orchestrates all components:
- Stake accounting (deposit, withdraw) against the external value ledger
- Report intake (auto-classification or a new voting round)
- Vote casting (priced by karma-weighted voting power)
- Finalization (quorum, settlement, verdict, finalizer reward)
- Governance (verdict clearing, parameter changes, fee withdrawal)
- Audit (event log) and persistence (state snapshots)

Execution model: every public call runs to completion under one lock,
as a transaction. Each aggregate a call touches (participant, round,
verdict, pool, params) is snapshotted just before its first mutation
and restored if anything raises, so a failed call leaves no partial
effect. A call that arrives
on the same thread while another is in flight (for example from a
value-ledger callback) is rejected with ReentrantCall rather than
observing half-settled state.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

from vigil.engine.quorum import QuorumEnforcer, QuorumResult
from vigil.engine.results import ResultsProcessor, SettlementReport
from vigil.engine.round_state_machine import RoundStateMachine
from vigil.engine.voting_power import VotingPowerCalculator
from vigil.errors import (
    InvalidAmount,
    InvalidParameter,
    InvalidRoundId,
    ReentrantCall,
)
from vigil.ledger.participants import ParticipantLedger, normalize_id
from vigil.ledger.value_ledger import InMemoryValueLedger, ValueLedger
from vigil.models.params import BPS_DENOMINATOR, ConsensusParams
from vigil.models.participant import Participant
from vigil.models.round import Report, RoundOutcome, Vote, VotingRound
from vigil.models.verdict import AUTO_MARKED, SubjectVerdict
from vigil.persistence.event_log import EventKind, EventLog
from vigil.persistence.state_store import EngineSnapshot, StateStore
from vigil.policy.authorization import Authorizer, Capability, require_capability
from vigil.policy.resolver import PolicyResolver
from vigil.verdicts.store import VerdictStore

logger = logging.getLogger(__name__)

# Parameter name → capability required to change it
PARAM_CAPABILITIES: dict[str, Capability] = {
    "minimum_stake": Capability.PROTOCOL_GOVERNANCE,
    "voting_duration_seconds": Capability.PROTOCOL_GOVERNANCE,
    "penalty_bps": Capability.PROTOCOL_GOVERNANCE,
    "minimum_voters": Capability.PROTOCOL_GOVERNANCE,
    "minimum_total_voting_power": Capability.PROTOCOL_GOVERNANCE,
    "karma_reward": Capability.PARAMETER_TUNING,
    "karma_penalty": Capability.PARAMETER_TUNING,
    "minimum_karma_to_vote": Capability.PARAMETER_TUNING,
    "finalization_fee_bps": Capability.TREASURY,
    "finalization_reward_bps": Capability.TREASURY,
}


@dataclass(frozen=True)
class FinalizationResult:
    """Result of finalizing a round."""
    round_id: int
    outcome: RoundOutcome
    quorum: QuorumResult
    settlement: Optional[SettlementReport]
    finalizer_reward: int
    verdict_changed: bool


class VigilService:
    """Stake-weighted consensus engine facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = VigilService(resolver)

        service.deposit("alice", 500)
        round_id = service.submit_report("detector", "0xabc", "1", "mempool", 1500, 2, "0xtx")
        service.cast_vote("alice", round_id, True)
        # ... after the voting window ...
        result = service.finalize("keeper", round_id)

    Persistence (optional):
        service = VigilService(resolver, event_log=log, state_store=store)
        # State is saved after each committed call and loaded on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        authorizer: Optional[Authorizer] = None,
        value_ledger: Optional[ValueLedger] = None,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._authorizer = authorizer or resolver.authorizer()
        self._value_ledger = value_ledger or InMemoryValueLedger(unlimited=True)
        self._event_log = event_log or EventLog()
        self._state_store = state_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        snapshot = state_store.load() if state_store is not None else None
        if snapshot is None:
            snapshot = EngineSnapshot(params=resolver.consensus_params())
        elif snapshot.params != resolver.consensus_params():
            # Config only seeds a fresh store; later changes go through set_param
            configured = resolver.consensus_params().to_dict()
            changed = sorted(
                name for name, value in snapshot.params.to_dict().items()
                if configured.get(name) != value
            )
            logger.warning(
                "Stored parameters differ from config (%s); stored values stay in effect",
                ", ".join(changed),
            )
        # A stale snapshot must not reuse event ids already in the log
        snapshot.event_counter = max(snapshot.event_counter, self._event_log.count)
        self._bind(snapshot)

        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._pending_events: list[tuple[EventKind, str, dict[str, Any], datetime]] = []
        self._undo: list[Callable[[], None]] = []

        # Set when a snapshot write fails after events were committed.
        # In-memory state is correct; the store is stale.
        self._persistence_degraded = False

    # ------------------------------------------------------------------
    # Stake
    # ------------------------------------------------------------------

    def deposit(self, caller: str, amount: int, now: Optional[datetime] = None) -> Participant:
        """Commit stake. Funds are collected from the external ledger."""
        with self._transaction(now) as now:
            self._touch(self._state.participants, normalize_id(caller))
            participant = self._ledger.deposit(caller, amount)
            self._value_ledger.collect(participant.participant_id, amount)
            self._emit(EventKind.STAKE_DEPOSITED, participant.participant_id, {
                "amount": amount,
                "committed_stake": participant.committed_stake,
            }, now)
            return copy.deepcopy(participant)

    def withdraw(self, caller: str, amount: int, now: Optional[datetime] = None) -> Participant:
        """Withdraw unlocked stake. Blocked while any vote is active."""
        with self._transaction(now) as now:
            self._touch(self._state.participants, normalize_id(caller))
            participant = self._ledger.withdraw(caller, amount)
            self._value_ledger.disburse(participant.participant_id, amount)
            self._emit(EventKind.STAKE_WITHDRAWN, participant.participant_id, {
                "amount": amount,
                "committed_stake": participant.committed_stake,
            }, now)
            return copy.deepcopy(participant)

    # ------------------------------------------------------------------
    # Reports and rounds
    # ------------------------------------------------------------------

    def submit_report(
        self,
        caller: str,
        subject_id: str,
        origin_chain_ref: str,
        origin_source: str,
        magnitude: int,
        scale: int,
        evidence_ref: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Adjudicate a report. Returns the new round id or AUTO_MARKED (0)."""
        with self._transaction(now) as now:
            require_capability(self._authorizer, caller, Capability.REPORT_SUBMITTER)
            if magnitude < 0:
                raise InvalidAmount("Report magnitude cannot be negative")
            if scale < 0:
                raise InvalidAmount("Report scale cannot be negative")
            report = Report(
                subject_id=normalize_id(subject_id),
                origin_chain_ref=str(origin_chain_ref),
                origin_source=str(origin_source),
                magnitude=magnitude,
                scale=scale,
                evidence_ref=normalize_id(evidence_ref),
                detector_id=normalize_id(caller),
            )
            self._touch(self._state.verdicts, report.subject_id)

            round_id = self._verdicts.on_report(report, lambda r: self._open_round(r, now))
            verdict = self._verdicts.get(report.subject_id)
            if round_id == AUTO_MARKED:
                logger.info(
                    "Subject %s auto-marked suspicious (incident %d)",
                    report.subject_id, verdict.total_incidents,
                )
                self._emit(EventKind.AUTO_MARKED, report.detector_id, {
                    "subject_id": report.subject_id,
                    "evidence_ref": report.evidence_ref,
                    "total_incidents": verdict.total_incidents,
                    "last_round_id": verdict.last_round_id,
                }, now)
            else:
                voting_round = self._state.rounds[round_id]
                logger.info(
                    "Round %d opened for subject %s (closes %s)",
                    round_id, report.subject_id, voting_round.closes_utc.isoformat(),
                )
                self._emit(EventKind.ROUND_OPENED, report.detector_id, {
                    "round_id": round_id,
                    "subject_id": report.subject_id,
                    "evidence_ref": report.evidence_ref,
                    "closes_utc": voting_round.closes_utc.isoformat(),
                    "total_incidents": verdict.total_incidents,
                }, now)
            return round_id

    def cast_vote(
        self,
        caller: str,
        round_id: int,
        supports_suspicious: bool,
        now: Optional[datetime] = None,
    ) -> Vote:
        """Cast a vote, locking minimum_stake for the life of the round."""
        with self._transaction(now) as now:
            pid = normalize_id(caller)
            voting_round = self._require_round(round_id)
            self._touch(self._state.rounds, round_id)
            self._touch(self._state.participants, pid)
            quote = RoundStateMachine.validate_vote(
                voting_round, pid, self._ledger.get(pid), self._state.params, now,
            )
            vote = Vote(
                voted_suspicious=bool(supports_suspicious),
                voting_power=quote.voting_power,
                stake_snapshot=quote.stake_snapshot,
                locked_amount=quote.lock_amount,
                cast_utc=now,
            )
            self._ledger.lock(pid, quote.lock_amount)
            voting_round.add_vote(pid, vote)
            self._ledger.record_vote(pid)
            self._emit(EventKind.VOTE_CAST, pid, {
                "round_id": round_id,
                "voted_suspicious": vote.voted_suspicious,
                "voting_power": vote.voting_power,
                "stake_snapshot": vote.stake_snapshot,
            }, now)
            return vote

    def finalize(
        self,
        caller: str,
        round_id: int,
        now: Optional[datetime] = None,
    ) -> FinalizationResult:
        """Finalize an expired round. Anyone may call; the caller earns
        the finalizer reward when the round reaches consensus."""
        with self._transaction(now) as now:
            finalizer = normalize_id(caller)
            voting_round = self._require_round(round_id)
            RoundStateMachine.validate_finalize(voting_round, now)
            self._touch(self._state.rounds, round_id)
            for pid in voting_round.voter_order:
                self._touch(self._state.participants, pid)
            self._touch(self._state.verdicts, voting_round.report.subject_id)

            params = self._state.params
            quorum = QuorumEnforcer(params).evaluate(voting_round)
            outcome = RoundStateMachine.decide_outcome(voting_round, quorum.passed)
            subject_id = voting_round.report.subject_id

            if outcome == RoundOutcome.INCONCLUSIVE:
                ResultsProcessor.release_locks(voting_round, self._ledger)
                voting_round.transition_to(outcome)
                voting_round.finalized_utc = now
                voting_round.finalized_by = finalizer
                logger.info(
                    "Round %d inconclusive: %s", round_id, "; ".join(quorum.violations),
                )
                self._emit_finalized(voting_round, quorum, now)
                return FinalizationResult(
                    round_id=round_id,
                    outcome=outcome,
                    quorum=quorum,
                    settlement=None,
                    finalizer_reward=0,
                    verdict_changed=False,
                )

            settlement = ResultsProcessor(params).settle(
                voting_round, outcome, self._ledger, self._pool,
            )
            voting_round.transition_to(outcome)
            voting_round.finalized_utc = now
            voting_round.finalized_by = finalizer
            voting_round.total_penalties = settlement.total_penalties
            voting_round.fee_collected = settlement.fee
            voting_round.distributed = settlement.distributed
            self._emit_finalized(voting_round, quorum, now)
            self._emit_settlement(settlement, now)

            verdict_changed = self._verdicts.on_finalize(subject_id, round_id, outcome, now)
            self._emit(EventKind.VERDICT_RECORDED, finalizer, {
                "round_id": round_id,
                "subject_id": subject_id,
                "is_suspicious": outcome == RoundOutcome.SUSPICIOUS,
            }, now)

            reward = settlement.total_penalties * params.finalization_reward_bps // BPS_DENOMINATOR
            paid = self._pool.pay_reward(reward)
            if paid > 0:
                voting_round.finalizer_reward = paid
                self._value_ledger.disburse(finalizer, paid)
                self._emit(EventKind.FINALIZER_REWARD_PAID, finalizer, {
                    "round_id": round_id,
                    "amount": paid,
                }, now)

            logger.info(
                "Round %d finalized %s: for=%d against=%d penalties=%d fee=%d",
                round_id, outcome.value, voting_round.votes_for,
                voting_round.votes_against, settlement.total_penalties, settlement.fee,
            )
            return FinalizationResult(
                round_id=round_id,
                outcome=outcome,
                quorum=quorum,
                settlement=settlement,
                finalizer_reward=paid,
                verdict_changed=verdict_changed,
            )

    # ------------------------------------------------------------------
    # Governance and treasury
    # ------------------------------------------------------------------

    def clear_verdict(
        self, caller: str, subject_id: str, now: Optional[datetime] = None,
    ) -> SubjectVerdict:
        """Reset a subject's verdict so its next report opens a round."""
        with self._transaction(now) as now:
            require_capability(self._authorizer, caller, Capability.PROTOCOL_GOVERNANCE)
            sid = normalize_id(subject_id)
            self._touch(self._state.verdicts, sid)
            verdict = self._verdicts.clear(sid)
            logger.info("Verdict cleared for %s by %s", verdict.subject_id, caller)
            self._emit(EventKind.VERDICT_CLEARED, caller.strip(), {
                "subject_id": verdict.subject_id,
                "total_incidents": verdict.total_incidents,
            }, now)
            return copy.deepcopy(verdict)

    def set_param(
        self, caller: str, name: str, value: int, now: Optional[datetime] = None,
    ) -> ConsensusParams:
        """Change one parameter. The capability depends on the parameter."""
        capability = PARAM_CAPABILITIES.get(name)
        if capability is None:
            raise InvalidParameter(f"Unknown parameter: {name}")
        with self._transaction(now) as now:
            require_capability(self._authorizer, caller, capability)
            old = getattr(self._state.params, name)
            self._state.params = dataclasses.replace(self._state.params, **{name: value})
            logger.info("Parameter %s changed %s → %s by %s", name, old, value, caller)
            self._emit(EventKind.PARAMETER_CHANGED, caller.strip(), {
                "name": name,
                "old_value": old,
                "new_value": value,
            }, now)
            return self._state.params

    def set_minimum_stake(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "minimum_stake", value)

    def set_voting_duration(self, caller: str, seconds: int) -> ConsensusParams:
        return self.set_param(caller, "voting_duration_seconds", seconds)

    def set_penalty_bps(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "penalty_bps", value)

    def set_karma_reward(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "karma_reward", value)

    def set_karma_penalty(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "karma_penalty", value)

    def set_minimum_karma_to_vote(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "minimum_karma_to_vote", value)

    def set_finalization_fee_bps(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "finalization_fee_bps", value)

    def set_finalization_reward_bps(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "finalization_reward_bps", value)

    def set_minimum_voters(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "minimum_voters", value)

    def set_minimum_total_voting_power(self, caller: str, value: int) -> ConsensusParams:
        return self.set_param(caller, "minimum_total_voting_power", value)

    def withdraw_fees(
        self, caller: str, recipient: str, amount: int, now: Optional[datetime] = None,
    ) -> int:
        """Move collected fees out of the pool. Returns remaining balance."""
        with self._transaction(now) as now:
            require_capability(self._authorizer, caller, Capability.TREASURY)
            to = normalize_id(recipient)
            self._pool.withdraw(amount)
            self._value_ledger.disburse(to, amount)
            self._emit(EventKind.FEES_WITHDRAWN, caller.strip(), {
                "recipient": to,
                "amount": amount,
                "remaining": self._pool.collected_fees,
            }, now)
            return self._pool.collected_fees

    # ------------------------------------------------------------------
    # Queries (copies only; no references escape the engine)
    # ------------------------------------------------------------------

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        with self._guard():
            return copy.deepcopy(self._ledger.get(participant_id))

    def get_round(self, round_id: int) -> Optional[VotingRound]:
        with self._guard():
            return copy.deepcopy(self._state.rounds.get(round_id))

    def get_verdict(self, subject_id: str) -> Optional[SubjectVerdict]:
        with self._guard():
            return copy.deepcopy(self._verdicts.get(normalize_id(subject_id)))

    def subject_history(self, subject_id: str) -> list[int]:
        """Round ids per report for a subject; AUTO_MARKED for auto-marks."""
        with self._guard():
            verdict = self._verdicts.get(normalize_id(subject_id))
            return list(verdict.history) if verdict else []

    def voting_power_of(self, participant_id: str) -> int:
        """Power a vote cast now would carry."""
        with self._guard():
            return VotingPowerCalculator.power(
                self._ledger.available_stake(participant_id),
                self._ledger.karma(participant_id),
            )

    def open_rounds(self, now: Optional[datetime] = None) -> list[int]:
        with self._guard():
            now = now or self._clock()
            return sorted(r.round_id for r in self._state.rounds.values() if r.is_open(now))

    def rounds_ready_to_finalize(self, now: Optional[datetime] = None) -> list[int]:
        with self._guard():
            now = now or self._clock()
            return sorted(
                r.round_id for r in self._state.rounds.values()
                if not r.finalized and now >= r.closes_utc
            )

    @property
    def params(self) -> ConsensusParams:
        return self._state.params

    @property
    def pool_balance(self) -> int:
        return self._pool.collected_fees

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    def total_committed_stake(self) -> int:
        with self._guard():
            return self._ledger.total_committed()

    def status(self) -> dict[str, Any]:
        with self._guard():
            outcomes: dict[str, int] = {}
            for r in self._state.rounds.values():
                outcomes[r.outcome.value] = outcomes.get(r.outcome.value, 0) + 1
            return {
                "participants": len(self._ledger),
                "total_committed_stake": self._ledger.total_committed(),
                "rounds": outcomes,
                "next_round_id": self._state.next_round_id,
                "subjects": len(self._verdicts.all()),
                "pool": self._pool.to_dict(),
                "params": self._state.params.to_dict(),
                "events": self._event_log.count,
                "persistence_degraded": self._persistence_degraded,
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bind(self, snapshot: EngineSnapshot) -> None:
        """Point the components at a snapshot's collections."""
        self._state = snapshot
        self._ledger = ParticipantLedger(snapshot.participants)
        self._verdicts = VerdictStore(snapshot.verdicts)
        self._pool = snapshot.pool

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Serialize access; reject same-thread re-entry."""
        if self._owner == threading.get_ident():
            logger.warning("Rejected re-entrant call into the engine")
            raise ReentrantCall("Engine call made while another call is in flight")
        with self._lock:
            self._owner = threading.get_ident()
            try:
                yield
            finally:
                self._owner = None

    @contextmanager
    def _transaction(self, now: Optional[datetime] = None) -> Iterator[datetime]:
        """Run a mutating call atomically. Yields the effective time.

        On any exception before commit, every aggregate recorded with
        ``_touch`` is restored, along with params, the pool and the round
        counter, and pending events are discarded. Event ids already
        written to the log stay consumed. Commit appends pending events
        to the audit log first, then saves the snapshot.
        """
        with self._guard():
            params = self._state.params
            next_round_id = self._state.next_round_id
            pool = copy.copy(self._state.pool)
            self._undo = []
            self._pending_events = []
            try:
                yield now or self._clock()
                self._append_pending_events()
            except Exception as e:
                for restore in reversed(self._undo):
                    restore()
                self._state.params = params
                self._state.next_round_id = next_round_id
                self._state.pool = self._pool = pool
                self._undo = []
                self._pending_events = []
                logger.warning("Transaction rolled back: %s", e)
                raise
            self._undo = []
            self._persist_post_audit()

    def _touch(self, collection: dict[Any, Any], key: Any) -> None:
        """Snapshot ``collection[key]`` for rollback before it is mutated."""
        if key in collection:
            saved = copy.deepcopy(collection[key])

            def _rollback() -> None:
                collection[key] = saved
        else:
            def _rollback() -> None:
                collection.pop(key, None)
        self._undo.append(_rollback)

    def _append_pending_events(self) -> None:
        for kind, actor, payload, ts in self._pending_events:
            self._state.event_counter += 1
            self._event_log.record(
                event_id=f"EVT-{self._state.event_counter:08d}",
                event_kind=kind,
                actor_id=actor,
                payload=payload,
                timestamp_utc=ts,
            )
        self._pending_events = []

    def _persist_post_audit(self) -> None:
        """Save the snapshot after events are committed to the audit log.

        Must not roll back: the audit trail is already durable. On failure
        in-memory state stays correct but the store is stale, so the
        degraded flag is raised for operators.
        """
        if self._state_store is None:
            return
        try:
            self._state_store.save(self._state)
        except OSError as e:
            self._persistence_degraded = True
            logger.error("Persistence degraded: %s (state store is stale)", e)

    def _emit(
        self, kind: EventKind, actor_id: str, payload: dict[str, Any], now: datetime,
    ) -> None:
        self._pending_events.append((kind, actor_id, payload, now))

    def _emit_finalized(
        self, voting_round: VotingRound, quorum: QuorumResult, now: datetime,
    ) -> None:
        self._emit(EventKind.ROUND_FINALIZED, voting_round.finalized_by or "system", {
            "round_id": voting_round.round_id,
            "subject_id": voting_round.report.subject_id,
            "outcome": voting_round.outcome.value,
            "votes_for": voting_round.votes_for,
            "votes_against": voting_round.votes_against,
            "total_voting_power": voting_round.total_voting_power,
            "voter_count": voting_round.voter_count,
            "quorum_passed": quorum.passed,
        }, now)

    def _emit_settlement(self, settlement: SettlementReport, now: datetime) -> None:
        for entry in settlement.voters:
            if entry.penalty > 0:
                self._emit(EventKind.PENALTY_APPLIED, entry.participant_id, {
                    "round_id": settlement.round_id,
                    "amount": entry.penalty,
                }, now)
            if entry.reward > 0:
                self._emit(EventKind.REWARD_PAID, entry.participant_id, {
                    "round_id": settlement.round_id,
                    "amount": entry.reward,
                }, now)
            self._emit(EventKind.KARMA_UPDATED, entry.participant_id, {
                "round_id": settlement.round_id,
                "delta": entry.karma_delta,
                "karma": entry.karma_after,
            }, now)

    def _open_round(self, report: Report, now: datetime) -> int:
        round_id = self._state.next_round_id
        self._state.next_round_id += 1
        self._touch(self._state.rounds, round_id)
        self._state.rounds[round_id] = VotingRound(
            round_id=round_id,
            report=report,
            opened_utc=now,
            closes_utc=now + timedelta(seconds=self._state.params.voting_duration_seconds),
        )
        return round_id

    def _require_round(self, round_id: int) -> VotingRound:
        voting_round = self._state.rounds.get(round_id)
        if voting_round is None:
            raise InvalidRoundId(f"Unknown round: {round_id}")
        return voting_round
