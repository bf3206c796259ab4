"""Vigil CLI — command-line interface for the consensus engine.

Usage:
    vigil status
    vigil deposit --as alice --amount 500
    vigil submit-report --as detector --subject 0xabc --chain 1 --source mempool \\
        --magnitude 1500 --scale 2 --evidence 0xtx
    vigil vote --as alice --round 1 --suspicious
    vigil --now 2026-01-02T00:00:00+00:00 finalize --as keeper --round 1
    vigil show-round --round 1

Directories come from --config / --data, else VIGIL_CONFIG_DIR /
VIGIL_DATA_DIR (a .env file in the working directory is loaded first),
else config/ and data/ at the repository root.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from vigil.errors import VigilError
from vigil.persistence.event_log import EventLog
from vigil.persistence.state_store import StateStore
from vigil.policy.resolver import PARAMS_FILENAME, PolicyResolver
from vigil.service import PARAM_CAPABILITIES, VigilService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(args: argparse.Namespace) -> VigilService:
    """Create a VigilService with durable persistence."""
    config_dir: Path = args.config
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    if (config_dir / PARAMS_FILENAME).exists():
        resolver = PolicyResolver.from_config_dir(config_dir)
    else:
        resolver = PolicyResolver.defaults()
    return VigilService(
        resolver,
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
        state_store=StateStore(storage_path=data_dir / "state.json"),
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    _print_json(service.status())
    return 0


def cmd_deposit(args: argparse.Namespace) -> int:
    service = _make_service(args)
    participant = service.deposit(args.caller, args.amount, now=args.now)
    print(f"Deposited {args.amount}: committed stake {participant.committed_stake}")
    return 0


def cmd_withdraw(args: argparse.Namespace) -> int:
    service = _make_service(args)
    participant = service.withdraw(args.caller, args.amount, now=args.now)
    print(f"Withdrew {args.amount}: committed stake {participant.committed_stake}")
    return 0


def cmd_submit_report(args: argparse.Namespace) -> int:
    service = _make_service(args)
    round_id = service.submit_report(
        caller=args.caller,
        subject_id=args.subject,
        origin_chain_ref=args.chain,
        origin_source=args.source,
        magnitude=args.magnitude,
        scale=args.scale,
        evidence_ref=args.evidence,
        now=args.now,
    )
    if round_id == 0:
        print(f"Subject {args.subject.strip()} auto-marked suspicious")
    else:
        print(f"Opened round {round_id}")
    return 0


def cmd_vote(args: argparse.Namespace) -> int:
    service = _make_service(args)
    vote = service.cast_vote(args.caller, args.round, args.suspicious, now=args.now)
    side = "suspicious" if vote.voted_suspicious else "clean"
    print(f"Voted {side} on round {args.round} with power {vote.voting_power}")
    return 0


def cmd_finalize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.finalize(args.caller, args.round, now=args.now)
    summary: dict[str, Any] = {
        "round_id": result.round_id,
        "outcome": result.outcome.value,
        "quorum_passed": result.quorum.passed,
        "violations": list(result.quorum.violations),
        "finalizer_reward": result.finalizer_reward,
        "verdict_changed": result.verdict_changed,
    }
    if result.settlement is not None:
        summary["total_penalties"] = result.settlement.total_penalties
        summary["fee"] = result.settlement.fee
        summary["distributed"] = result.settlement.distributed
    _print_json(summary)
    return 0


def cmd_clear_verdict(args: argparse.Namespace) -> int:
    service = _make_service(args)
    verdict = service.clear_verdict(args.caller, args.subject, now=args.now)
    print(f"Cleared verdict for {verdict.subject_id}")
    return 0


def cmd_set_param(args: argparse.Namespace) -> int:
    service = _make_service(args)
    params = service.set_param(args.caller, args.name, args.value, now=args.now)
    print(f"{args.name} = {getattr(params, args.name)}")
    return 0


def cmd_withdraw_fees(args: argparse.Namespace) -> int:
    service = _make_service(args)
    remaining = service.withdraw_fees(args.caller, args.to, args.amount, now=args.now)
    print(f"Withdrew {args.amount} to {args.to.strip()}: pool balance {remaining}")
    return 0


def cmd_show_round(args: argparse.Namespace) -> int:
    service = _make_service(args)
    voting_round = service.get_round(args.round)
    if voting_round is None:
        print(f"No such round: {args.round}", file=sys.stderr)
        return 1
    _print_json(voting_round.to_dict())
    return 0


def cmd_show_participant(args: argparse.Namespace) -> int:
    service = _make_service(args)
    participant = service.get_participant(args.id)
    if participant is None:
        print(f"No such participant: {args.id}", file=sys.stderr)
        return 1
    data = participant.to_dict()
    data["available_stake"] = participant.available_stake
    data["voting_power"] = service.voting_power_of(args.id)
    _print_json(data)
    return 0


def cmd_show_verdict(args: argparse.Namespace) -> int:
    service = _make_service(args)
    verdict = service.get_verdict(args.subject)
    if verdict is None:
        print(f"No reports for subject: {args.subject}", file=sys.stderr)
        return 1
    _print_json(verdict.to_dict())
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Validate the consensus parameter file against its bounds."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check_path
    return check_path(args.config / PARAMS_FILENAME)


def _timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO-8601 timestamp: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _add_caller(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--as", dest="caller", required=True, help="Calling identity")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Vigil — stake-weighted consensus engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config directory (default: $VIGIL_CONFIG_DIR or config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="Path to data directory (default: $VIGIL_DATA_DIR or data/)",
    )
    parser.add_argument(
        "--now",
        type=_timestamp,
        default=None,
        help="Override the clock with an ISO-8601 timestamp",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show engine status")

    # deposit / withdraw
    p_dep = sub.add_parser("deposit", help="Commit stake")
    _add_caller(p_dep)
    p_dep.add_argument("--amount", type=int, required=True)

    p_wd = sub.add_parser("withdraw", help="Withdraw unlocked stake")
    _add_caller(p_wd)
    p_wd.add_argument("--amount", type=int, required=True)

    # submit-report
    p_rep = sub.add_parser("submit-report", help="Submit a report about a subject")
    _add_caller(p_rep)
    p_rep.add_argument("--subject", required=True, help="Subject identifier")
    p_rep.add_argument("--chain", required=True, help="Origin chain reference")
    p_rep.add_argument("--source", required=True, help="Origin source")
    p_rep.add_argument("--magnitude", type=int, required=True)
    p_rep.add_argument("--scale", type=int, default=0)
    p_rep.add_argument("--evidence", required=True, help="Evidence reference")

    # vote
    p_vote = sub.add_parser("vote", help="Vote on an open round")
    _add_caller(p_vote)
    p_vote.add_argument("--round", type=int, required=True)
    side = p_vote.add_mutually_exclusive_group(required=True)
    side.add_argument("--suspicious", dest="suspicious", action="store_true")
    side.add_argument("--clean", dest="suspicious", action="store_false")

    # finalize
    p_fin = sub.add_parser("finalize", help="Finalize a round after its window")
    _add_caller(p_fin)
    p_fin.add_argument("--round", type=int, required=True)

    # governance
    p_clear = sub.add_parser("clear-verdict", help="Clear a subject's verdict")
    _add_caller(p_clear)
    p_clear.add_argument("--subject", required=True)

    p_param = sub.add_parser("set-param", help="Change a consensus parameter")
    _add_caller(p_param)
    p_param.add_argument("--name", required=True, choices=sorted(PARAM_CAPABILITIES))
    p_param.add_argument("--value", type=int, required=True)

    p_fees = sub.add_parser("withdraw-fees", help="Withdraw collected fees")
    _add_caller(p_fees)
    p_fees.add_argument("--to", required=True, help="Recipient")
    p_fees.add_argument("--amount", type=int, required=True)

    # queries
    p_sr = sub.add_parser("show-round", help="Show a voting round")
    p_sr.add_argument("--round", type=int, required=True)

    p_sp = sub.add_parser("show-participant", help="Show a participant")
    p_sp.add_argument("--id", required=True)

    p_sv = sub.add_parser("show-verdict", help="Show a subject's verdict")
    p_sv.add_argument("--subject", required=True)

    sub.add_parser("check-invariants", help="Check config invariants")

    return parser


def _resolve_dirs(args: argparse.Namespace) -> None:
    load_dotenv(Path.cwd() / ".env")
    if args.config is None:
        env = os.getenv("VIGIL_CONFIG_DIR")
        args.config = Path(env) if env else DEFAULT_CONFIG
    if args.data is None:
        env = os.getenv("VIGIL_DATA_DIR")
        args.data = Path(env) if env else DEFAULT_DATA


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "deposit": cmd_deposit,
        "withdraw": cmd_withdraw,
        "submit-report": cmd_submit_report,
        "vote": cmd_vote,
        "finalize": cmd_finalize,
        "clear-verdict": cmd_clear_verdict,
        "set-param": cmd_set_param,
        "withdraw-fees": cmd_withdraw_fees,
        "show-round": cmd_show_round,
        "show-participant": cmd_show_participant,
        "show-verdict": cmd_show_verdict,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    _resolve_dirs(args)
    try:
        return handler(args)
    except VigilError as e:
        print(f"Failed [{e.kind}]: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
