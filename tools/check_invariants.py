#!/usr/bin/env python3
"""Vigil invariant checks against the consensus parameter file."""

import json
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PARAMS_PATH = ROOT / "config" / "consensus_params.json"

# Must match vigil.models.params
MAX_PENALTY_BPS = 5_000
MAX_FINALIZATION_BPS = 1_000

SECTIONS = {
    "voting": ("minimum_stake", "voting_duration_seconds", "minimum_karma_to_vote"),
    "economics": ("penalty_bps", "finalization_fee_bps", "finalization_reward_bps"),
    "karma": ("karma_reward", "karma_penalty"),
    "quorum": ("minimum_voters", "minimum_total_voting_power"),
}
CAPABILITIES = ("report_submitter", "protocol_governance", "parameter_tuning", "treasury")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def flatten(params: dict, errors: list[str]) -> dict:
    """Merge the parameter sections, reporting missing or unknown keys."""
    flat: dict = {}
    for section, names in SECTIONS.items():
        values = params.get(section)
        if not isinstance(values, dict):
            errors.append(f"Missing config section: {section}")
            continue
        for name in names:
            if name not in values:
                errors.append(f"{section}.{name} is missing")
        for name in values:
            if name not in names:
                errors.append(f"{section}.{name} is not a known parameter")
        flat.update(values)
    for name, value in flat.items():
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{name} must be an integer, got {value!r}")
    return {k: v for k, v in flat.items() if isinstance(v, int) and not isinstance(v, bool)}


def check_path(path: Path) -> int:
    params = load_json(path)
    errors: list[str] = []
    flat = flatten(params, errors)

    # --- Voting invariants ---
    if flat.get("minimum_stake", 1) <= 0:
        errors.append("minimum_stake must be > 0")
    if flat.get("voting_duration_seconds", 1) <= 0:
        errors.append("voting_duration_seconds must be > 0")

    # --- Economic invariants ---
    penalty = flat.get("penalty_bps", 0)
    if not 0 <= penalty <= MAX_PENALTY_BPS:
        errors.append(f"penalty_bps must be in [0, {MAX_PENALTY_BPS}], got {penalty}")
    fee = flat.get("finalization_fee_bps", 0)
    reward = flat.get("finalization_reward_bps", 0)
    for name, value in (("finalization_fee_bps", fee), ("finalization_reward_bps", reward)):
        if not 0 <= value <= MAX_FINALIZATION_BPS:
            errors.append(f"{name} must be in [0, {MAX_FINALIZATION_BPS}], got {value}")
    if reward and reward >= fee:
        errors.append("finalization_reward_bps must stay below finalization_fee_bps")

    # --- Karma invariants ---
    if flat.get("karma_reward", 0) < 0:
        errors.append("karma_reward must be >= 0")
    if flat.get("karma_penalty", 0) < 0:
        errors.append("karma_penalty must be >= 0")

    # --- Quorum invariants ---
    if flat.get("minimum_voters", 1) <= 0:
        errors.append("minimum_voters must be > 0")
    if flat.get("minimum_total_voting_power", 1) <= 0:
        errors.append("minimum_total_voting_power must be > 0")

    # --- Capability invariants ---
    grants = params.get("capabilities", {})
    for name, holders in grants.items():
        if name not in CAPABILITIES:
            errors.append(f"Unknown capability: {name}")
        elif not isinstance(holders, list) or not all(
            isinstance(h, str) and h.strip() for h in holders
        ):
            errors.append(f"capabilities.{name} must be a list of non-blank ids")
    if not grants.get("report_submitter"):
        errors.append("At least one report_submitter must be granted")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


def check() -> int:
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else PARAMS_PATH
    return check_path(path)


if __name__ == "__main__":
    raise SystemExit(check())
