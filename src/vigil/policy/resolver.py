"""Policy resolver — loads consensus parameters and capability grants.

Configuration lives in ``consensus_params.json`` inside a config
directory:

    {
      "voting":    {"minimum_stake": ..., "voting_duration_seconds": ...,
                    "minimum_karma_to_vote": ...},
      "economics": {"penalty_bps": ..., "finalization_fee_bps": ...,
                    "finalization_reward_bps": ...},
      "karma":     {"karma_reward": ..., "karma_penalty": ...},
      "quorum":    {"minimum_voters": ..., "minimum_total_voting_power": ...},
      "capabilities": {"report_submitter": ["detector"], ...}
    }

Missing sections fall back to ConsensusParams defaults. Values are
validated on load; an invalid file fails closed with InvalidParameter.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from vigil.errors import InvalidParameter
from vigil.models.params import ConsensusParams
from vigil.policy.authorization import Capability, StaticAuthorizer

PARAMS_FILENAME = "consensus_params.json"

_PARAM_SECTIONS = ("voting", "economics", "karma", "quorum")


class PolicyResolver:
    """Resolves initial parameters and the capability authorizer."""

    def __init__(
        self,
        params: ConsensusParams,
        grants: Optional[dict[Capability, list[str]]] = None,
    ) -> None:
        self._params = params
        self._grants = grants or {}

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        path = Path(config_dir) / PARAMS_FILENAME
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as e:
            raise InvalidParameter(f"Malformed config {path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyResolver:
        flat: dict[str, Any] = {}
        for section in _PARAM_SECTIONS:
            values = data.get(section, {})
            if not isinstance(values, dict):
                raise InvalidParameter(f"Config section '{section}' must be an object")
            flat.update(values)
        params = ConsensusParams.from_dict(flat)

        grants: dict[Capability, list[str]] = {}
        for name, holders in data.get("capabilities", {}).items():
            try:
                capability = Capability(name)
            except ValueError as e:
                raise InvalidParameter(f"Unknown capability: {name}") from e
            grants[capability] = [str(h) for h in holders]
        return cls(params, grants)

    @classmethod
    def defaults(cls) -> PolicyResolver:
        return cls(ConsensusParams())

    def consensus_params(self) -> ConsensusParams:
        return self._params

    def capability_grants(self) -> dict[Capability, list[str]]:
        return {cap: list(holders) for cap, holders in self._grants.items()}

    def authorizer(self) -> StaticAuthorizer:
        return StaticAuthorizer(self._grants)
