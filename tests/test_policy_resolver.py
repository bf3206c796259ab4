"""Tests for the policy resolver — proves config loads and validates correctly."""

import json
import pytest
from pathlib import Path

from vigil.errors import InvalidParameter, Unauthorized
from vigil.models.params import ConsensusParams
from vigil.policy.authorization import (
    AllowAllAuthorizer,
    Capability,
    StaticAuthorizer,
    require_capability,
)
from vigil.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


class TestConfigFile:
    def test_loads_defaults(self, resolver: PolicyResolver) -> None:
        assert resolver.consensus_params() == ConsensusParams()

    def test_grants(self, resolver: PolicyResolver) -> None:
        grants = resolver.capability_grants()
        assert grants[Capability.REPORT_SUBMITTER] == ["detector"]
        assert "governance" in grants[Capability.PROTOCOL_GOVERNANCE]

    def test_authorizer(self, resolver: PolicyResolver) -> None:
        auth = resolver.authorizer()
        assert auth.has_capability("detector", Capability.REPORT_SUBMITTER)
        assert auth.has_capability("tuner", Capability.PARAMETER_TUNING)
        assert not auth.has_capability("tuner", Capability.TREASURY)

    def test_malformed_file(self, tmp_path: Path) -> None:
        (tmp_path / "consensus_params.json").write_text("{not json")
        with pytest.raises(InvalidParameter):
            PolicyResolver.from_config_dir(tmp_path)

    def test_invariant_tool_matches_params(self) -> None:
        """check_invariants mirrors the parameter bounds and field names."""
        import sys
        sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "tools"))
        import check_invariants
        from vigil.models import params

        assert check_invariants.MAX_PENALTY_BPS == params.MAX_PENALTY_BPS
        assert check_invariants.MAX_FINALIZATION_BPS == params.MAX_FINALIZATION_BPS
        tool_names = {n for names in check_invariants.SECTIONS.values() for n in names}
        assert tool_names == set(ConsensusParams().to_dict())

    def test_invalid_value_fails_closed(self, tmp_path: Path) -> None:
        data = {"economics": {"penalty_bps": 6000}}
        (tmp_path / "consensus_params.json").write_text(json.dumps(data))
        with pytest.raises(InvalidParameter):
            PolicyResolver.from_config_dir(tmp_path)


class TestFromDict:
    def test_missing_sections_use_defaults(self) -> None:
        resolver = PolicyResolver.from_dict({"quorum": {"minimum_voters": 5}})
        params = resolver.consensus_params()
        assert params.minimum_voters == 5
        assert params.minimum_stake == 100

    def test_unknown_parameter(self) -> None:
        with pytest.raises(InvalidParameter):
            PolicyResolver.from_dict({"voting": {"quorum_size": 3}})

    def test_unknown_capability(self) -> None:
        with pytest.raises(InvalidParameter):
            PolicyResolver.from_dict({"capabilities": {"root": ["me"]}})

    def test_section_must_be_object(self) -> None:
        with pytest.raises(InvalidParameter):
            PolicyResolver.from_dict({"karma": [1, 2]})

    def test_defaults_grant_nothing(self) -> None:
        auth = PolicyResolver.defaults().authorizer()
        assert not auth.has_capability("detector", Capability.REPORT_SUBMITTER)


class TestConsensusParams:
    def test_penalty_bound(self) -> None:
        ConsensusParams(penalty_bps=5000)
        with pytest.raises(InvalidParameter):
            ConsensusParams(penalty_bps=5001)

    def test_fee_bound(self) -> None:
        with pytest.raises(InvalidParameter):
            ConsensusParams(finalization_fee_bps=1001)

    def test_reward_must_stay_below_fee(self) -> None:
        with pytest.raises(InvalidParameter):
            ConsensusParams(finalization_fee_bps=100, finalization_reward_bps=100)
        ConsensusParams(finalization_fee_bps=0, finalization_reward_bps=0)

    def test_positive_minimums(self) -> None:
        for name in ("minimum_stake", "voting_duration_seconds",
                     "minimum_voters", "minimum_total_voting_power"):
            with pytest.raises(InvalidParameter):
                ConsensusParams(**{name: 0})

    def test_rejects_non_integers(self) -> None:
        with pytest.raises(InvalidParameter):
            ConsensusParams(minimum_stake=1.5)
        with pytest.raises(InvalidParameter):
            ConsensusParams(minimum_voters=True)

    def test_negative_karma_settings(self) -> None:
        with pytest.raises(InvalidParameter):
            ConsensusParams(karma_penalty=-1)
        ConsensusParams(minimum_karma_to_vote=-10_000)


class TestAuthorization:
    def test_static_strips_ids(self) -> None:
        auth = StaticAuthorizer({Capability.TREASURY: [" treasury "]})
        assert auth.has_capability("treasury", Capability.TREASURY)
        assert auth.holders(Capability.TREASURY) == frozenset({"treasury"})

    def test_require_capability(self) -> None:
        auth = StaticAuthorizer({})
        with pytest.raises(Unauthorized) as exc:
            require_capability(auth, "mallory", Capability.PROTOCOL_GOVERNANCE)
        assert exc.value.kind == "unauthorized"
        assert isinstance(exc.value, PermissionError)

    def test_allow_all(self) -> None:
        require_capability(AllowAllAuthorizer(), "anyone", Capability.TREASURY)
