"""Tests for Vigil CLI — proves CLI dispatches correctly."""

import json
import pytest
from pathlib import Path

from vigil.cli import build_parser, main


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

T0 = "2026-03-01T12:00:00+00:00"
DURING = "2026-03-01T13:00:00+00:00"
AFTER = "2026-03-02T12:00:00+00:00"


@pytest.fixture
def run(tmp_path: Path):
    """Invoke the CLI against a throwaway data directory."""
    def _run(*argv: str, now: str = T0) -> int:
        return main([
            "--config", str(CONFIG_DIR),
            "--data", str(tmp_path / "data"),
            "--now", now,
            *argv,
        ])
    return _run


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_vote_command(self) -> None:
        args = build_parser().parse_args(["vote", "--as", "alice", "--round", "3", "--clean"])
        assert args.command == "vote"
        assert args.caller == "alice"
        assert args.round == 3
        assert args.suspicious is False

    def test_vote_side_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["vote", "--as", "alice", "--round", "3"])

    def test_now_parsed_as_utc(self) -> None:
        args = build_parser().parse_args(["--now", "2026-03-01T12:00:00", "status"])
        assert args.now.utcoffset().total_seconds() == 0

    def test_bad_timestamp(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--now", "yesterday", "status"])

    def test_unknown_param_name(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "set-param", "--as", "governance", "--name", "quorum", "--value", "1",
            ])


class TestCLIExecution:
    def test_no_command_shows_help(self) -> None:
        assert main([]) == 0

    def test_status_runs(self, run, capsys) -> None:
        assert run("status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["participants"] == 0
        assert status["params"]["minimum_stake"] == 100

    def test_full_round(self, run, capsys, tmp_path: Path) -> None:
        for pid, stake in (("A", "5000"), ("B", "3000"), ("C", "2000")):
            assert run("deposit", "--as", pid, "--amount", stake) == 0
        assert run(
            "submit-report", "--as", "detector", "--subject", "0xbad",
            "--chain", "1", "--source", "mempool", "--magnitude", "1500",
            "--scale", "2", "--evidence", "0xtx",
        ) == 0
        assert "Opened round 1" in capsys.readouterr().out

        assert run("vote", "--as", "A", "--round", "1", "--suspicious", now=DURING) == 0
        assert run("vote", "--as", "B", "--round", "1", "--suspicious", now=DURING) == 0
        assert run("vote", "--as", "C", "--round", "1", "--clean", now=DURING) == 0
        capsys.readouterr()

        assert run("finalize", "--as", "keeper", "--round", "1", now=AFTER) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["outcome"] == "suspicious"
        assert summary["fee"] == 2
        assert summary["finalizer_reward"] == 1

        assert run("show-participant", "--id", "A") == 0
        participant = json.loads(capsys.readouterr().out)
        assert participant["committed_stake"] == 5123
        assert participant["karma"] == 10

        assert run("show-verdict", "--subject", "0xbad") == 0
        verdict = json.loads(capsys.readouterr().out)
        assert verdict["is_suspicious"] is True

        assert (tmp_path / "data" / "events.jsonl").exists()
        assert (tmp_path / "data" / "state.json").exists()

    def test_error_reports_kind(self, run, capsys) -> None:
        run("deposit", "--as", "A", "--amount", "500")
        run(
            "submit-report", "--as", "detector", "--subject", "0xbad",
            "--chain", "1", "--source", "mempool", "--magnitude", "1", "--evidence", "0xtx",
        )
        assert run("finalize", "--as", "keeper", "--round", "1", now=DURING) == 1
        assert "Failed [round_still_open]" in capsys.readouterr().err

    def test_unauthorized(self, run, capsys) -> None:
        assert run("set-param", "--as", "alice", "--name", "penalty_bps", "--value", "10") == 1
        assert "Failed [unauthorized]" in capsys.readouterr().err

    def test_governance_param(self, run, capsys) -> None:
        assert run("set-param", "--as", "governance", "--name", "penalty_bps", "--value", "2000") == 0
        assert "penalty_bps = 2000" in capsys.readouterr().out
        run("status")
        status = json.loads(capsys.readouterr().out)
        assert status["params"]["penalty_bps"] == 2000

    def test_show_missing_round(self, run, capsys) -> None:
        assert run("show-round", "--round", "5") == 1
        assert "No such round" in capsys.readouterr().err

    def test_data_dir_from_env(self, tmp_path: Path, monkeypatch) -> None:
        data = tmp_path / "envdata"
        monkeypatch.setenv("VIGIL_DATA_DIR", str(data))
        monkeypatch.setenv("VIGIL_CONFIG_DIR", str(CONFIG_DIR))
        assert main(["deposit", "--as", "alice", "--amount", "10"]) == 0
        assert (data / "state.json").exists()

    def test_check_invariants_runs(self, run, capsys) -> None:
        assert run("check-invariants") == 0
        assert "Invariant check passed." in capsys.readouterr().out

    def test_check_invariants_flags_bad_config(self, tmp_path: Path, capsys) -> None:
        config = json.loads((CONFIG_DIR / "consensus_params.json").read_text())
        config["economics"]["finalization_reward_bps"] = 500
        config["quorum"]["minimum_voters"] = 0
        bad = tmp_path / "bad"
        bad.mkdir()
        (bad / "consensus_params.json").write_text(json.dumps(config))
        assert main(["--config", str(bad), "--data", str(tmp_path / "d"), "check-invariants"]) == 1
        out = capsys.readouterr().out
        assert "finalization_reward_bps must stay below finalization_fee_bps" in out
        assert "minimum_voters must be > 0" in out
