"""Persistence — append-only event log and state snapshots."""

from vigil.persistence.event_log import EventKind, EventLog, EventRecord
from vigil.persistence.state_store import EngineSnapshot, StateStore

__all__ = [
    "EngineSnapshot",
    "EventKind",
    "EventLog",
    "EventRecord",
    "StateStore",
]
