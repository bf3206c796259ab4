"""Append-only event log — outbound notifications and audit trail.

Every committed state transition of the engine produces one or more
EventRecords. Records are immutable and hash-chained: each record's hash
covers its content plus the previous record's hash, so deleting or
reordering lines in the persisted JSONL file is detected on load.

Subscribers registered with ``subscribe`` are notified after each append.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

GENESIS_HASH = "sha256:" + "0" * 64


class EventKind(str, enum.Enum):
    """Classification of engine events."""
    # Stake
    STAKE_DEPOSITED = "stake_deposited"
    STAKE_WITHDRAWN = "stake_withdrawn"
    # Round lifecycle
    ROUND_OPENED = "round_opened"
    VOTE_CAST = "vote_cast"
    ROUND_FINALIZED = "round_finalized"
    # Settlement
    PENALTY_APPLIED = "penalty_applied"
    KARMA_UPDATED = "karma_updated"
    REWARD_PAID = "reward_paid"
    FINALIZER_REWARD_PAID = "finalizer_reward_paid"
    # Verdicts
    VERDICT_RECORDED = "verdict_recorded"
    VERDICT_CLEARED = "verdict_cleared"
    AUTO_MARKED = "auto_marked"
    # Governance / treasury
    PARAMETER_CHANGED = "parameter_changed"
    FEES_WITHDRAWN = "fees_withdrawn"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
    previous_hash: str,
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
            "previous_hash": previous_hash,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable engine event."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    previous_hash: str
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        previous_hash: str = GENESIS_HASH,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            previous_hash=previous_hash,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload, previous_hash,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "previous_hash": self.previous_hash,
            "event_hash": self.event_hash,
        }


EventListener = Callable[[EventRecord], None]


class EventLog:
    """Append-only, hash-chained event log with optional JSONL persistence."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path
        self._listeners: list[EventListener] = []

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    @property
    def head_hash(self) -> str:
        return self._events[-1].event_hash if self._events else GENESIS_HASH

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def record(
        self,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create an event chained to the current head and append it."""
        event = EventRecord.create(
            event_id=event_id,
            event_kind=event_kind,
            actor_id=actor_id,
            payload=payload,
            previous_hash=self.head_hash,
            timestamp_utc=timestamp_utc,
        )
        self.append(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append an event. Raises ValueError on duplicate id or broken chain."""
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if event.previous_hash != self.head_hash:
            raise ValueError(
                f"Event {event.event_id} does not chain to head {self.head_hash}"
            )

        if self._storage_path:
            self._append_to_file(event)
        self._events.append(event)
        self._event_ids.add(event.event_id)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # Delivery is best effort; the event is already committed.
                logger.exception("Event listener failed for %s", event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_round(self, round_id: int) -> list[EventRecord]:
        return [e for e in self._events if e.payload.get("round_id") == round_id]

    def verify_chain(self) -> bool:
        previous = GENESIS_HASH
        for e in self._events:
            expected = _canonical_hash(
                e.event_id, e.event_kind.value, e.timestamp_utc,
                e.actor_id, e.payload, previous,
            )
            if e.previous_hash != previous or e.event_hash != expected:
                return False
            previous = e.event_hash
        return True

    def _append_to_file(self, event: EventRecord) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load events with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch), broken
        chains and duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )
                if data["previous_hash"] != self.head_hash:
                    raise ValueError(
                        f"Chain broken at line {line_num}: event {event_id} "
                        f"does not follow {self.head_hash}"
                    )
                expected = _canonical_hash(
                    event_id, data["event_kind"], data["timestamp_utc"],
                    data["actor_id"], data["payload"], data["previous_hash"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    previous_hash=data["previous_hash"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
