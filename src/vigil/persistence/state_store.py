"""State store — JSON snapshot of engine state.

The event log is the audit trail; the state store is the fast path for
restarting the engine without replaying events. Writes go to a
temporary file first and are moved into place, so a crash mid-write
never leaves a half-written snapshot.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from vigil.ledger.incentive_pool import IncentivePool
from vigil.models.params import ConsensusParams
from vigil.models.participant import Participant
from vigil.models.round import VotingRound
from vigil.models.verdict import SubjectVerdict

SNAPSHOT_VERSION = 1


@dataclass
class EngineSnapshot:
    """Everything needed to rebuild the engine."""
    params: ConsensusParams
    participants: Dict[str, Participant] = field(default_factory=dict)
    rounds: Dict[int, VotingRound] = field(default_factory=dict)
    verdicts: Dict[str, SubjectVerdict] = field(default_factory=dict)
    pool: IncentivePool = field(default_factory=IncentivePool)
    next_round_id: int = 1
    event_counter: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "params": self.params.to_dict(),
            "participants": [p.to_dict() for p in self.participants.values()],
            "rounds": [r.to_dict() for r in self.rounds.values()],
            "verdicts": [v.to_dict() for v in self.verdicts.values()],
            "pool": self.pool.to_dict(),
            "next_round_id": self.next_round_id,
            "event_counter": self.event_counter,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EngineSnapshot:
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")
        participants = [Participant.from_dict(p) for p in data.get("participants", [])]
        rounds = [VotingRound.from_dict(r) for r in data.get("rounds", [])]
        verdicts = [SubjectVerdict.from_dict(v) for v in data.get("verdicts", [])]
        return EngineSnapshot(
            params=ConsensusParams.from_dict(data["params"]),
            participants={p.participant_id: p for p in participants},
            rounds={r.round_id: r for r in rounds},
            verdicts={v.subject_id: v for v in verdicts},
            pool=IncentivePool.from_dict(data.get("pool", {})),
            next_round_id=int(data.get("next_round_id", 1)),
            event_counter=int(data.get("event_counter", 0)),
        )


class StateStore:
    """Loads and saves EngineSnapshots at a fixed path."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = Path(storage_path)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def load(self) -> Optional[EngineSnapshot]:
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            return EngineSnapshot.from_dict(json.load(f))

    def save(self, snapshot: EngineSnapshot) -> None:
        """Atomically write the snapshot. Raises OSError on failure."""
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._storage_path)
