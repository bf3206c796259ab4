"""Tests for the event log — hash chaining, persistence and tamper detection."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from vigil.persistence.event_log import GENESIS_HASH, EventKind, EventLog, EventRecord


NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _fill(log: EventLog, n: int = 3) -> None:
    for i in range(1, n + 1):
        log.record(
            event_id=f"EVT-{i:08d}",
            event_kind=EventKind.VOTE_CAST,
            actor_id=f"voter-{i}",
            payload={"round_id": 1 if i % 2 else 2, "voting_power": i * 100},
            timestamp_utc=NOW,
        )


class TestInMemory:
    def test_empty_head(self) -> None:
        log = EventLog()
        assert log.head_hash == GENESIS_HASH
        assert log.count == 0
        assert log.last_event is None

    def test_chain(self) -> None:
        log = EventLog()
        _fill(log)
        events = log.events()
        assert events[0].previous_hash == GENESIS_HASH
        assert events[1].previous_hash == events[0].event_hash
        assert log.head_hash == events[-1].event_hash
        assert log.verify_chain()

    def test_timestamp_format(self) -> None:
        log = EventLog()
        _fill(log, 1)
        assert log.last_event.timestamp_utc == "2026-03-01T09:30:00Z"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        _fill(log, 1)
        dup = EventRecord.create("EVT-00000001", EventKind.VOTE_CAST, "x", {},
                                 previous_hash=log.head_hash)
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(dup)

    def test_unchained_rejected(self) -> None:
        log = EventLog()
        _fill(log, 1)
        stray = EventRecord.create("EVT-99", EventKind.VOTE_CAST, "x", {})
        with pytest.raises(ValueError, match="does not chain"):
            log.append(stray)

    def test_filters(self) -> None:
        log = EventLog()
        _fill(log, 3)
        log.record("EVT-00000004", EventKind.ROUND_FINALIZED, "keeper", {"round_id": 2})
        assert len(log.events(EventKind.VOTE_CAST)) == 3
        assert [e.event_id for e in log.events_for_round(2)] == ["EVT-00000002", "EVT-00000004"]

    def test_listeners_notified(self) -> None:
        log = EventLog()
        seen: list[str] = []
        log.subscribe(lambda e: seen.append(e.event_id))
        _fill(log, 2)
        assert seen == ["EVT-00000001", "EVT-00000002"]

    def test_failing_listener_does_not_block_append(self) -> None:
        log = EventLog()

        def broken(event: EventRecord) -> None:
            raise RuntimeError("listener down")

        log.subscribe(broken)
        _fill(log, 2)
        assert log.count == 2


class TestPersistence:
    def test_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(path)
        _fill(log, 3)

        reloaded = EventLog(path)
        assert reloaded.count == 3
        assert reloaded.head_hash == log.head_hash
        assert reloaded.verify_chain()

    def test_tampered_payload_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        _fill(EventLog(path), 2)
        lines = path.read_text().splitlines()
        record = json.loads(lines[0])
        record["payload"]["voting_power"] = 999_999
        lines[0] = json.dumps(record, sort_keys=True)
        path.write_text("\n".join(lines) + "\n")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(path)

    def test_deleted_line_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        _fill(EventLog(path), 3)
        lines = path.read_text().splitlines()
        path.write_text(lines[0] + "\n" + lines[2] + "\n")
        with pytest.raises(ValueError, match="Chain broken"):
            EventLog(path)

    def test_duplicate_line_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        _fill(EventLog(path), 1)
        line = path.read_text()
        path.write_text(line + line)
        with pytest.raises(ValueError, match="Duplicate event ID"):
            EventLog(path)
