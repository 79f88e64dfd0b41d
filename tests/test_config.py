"""
Tests for the TOML configuration loader.
"""

from pathlib import Path

import pytest

from aether.config import (
    BridgeConfig,
    EngineConfig,
    GovernanceConfig,
    RelayConfig,
    RouterConfig,
    load_config,
)
from aether.engine import AetherEngine

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "aether.example.toml"

_ENV_KEYS = (
    "AETHER_CONFIG",
    "AETHER_LOCAL_CHAIN_ID",
    "AETHER_LOG_LEVEL",
    "AETHER_OWNER",
    "AETHER_TREASURY",
    "AETHER_QUORUM_BPS",
    "AETHER_VOTING_PERIOD",
    "AETHER_TWAP_WINDOW",
    "AETHER_SUPPORTED_CHAINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "aether.toml"
    path.write_text(text)
    return path


class TestDefaults:

    def test_defaults_validate(self):
        cfg = EngineConfig()
        assert cfg.validate()
        assert cfg.engine.local_chain_id == 1
        assert cfg.governance.quorum_bps == 400
        assert [r.name for r in cfg.bridge.relays] == ["layerzero", "hyperlane"]

    def test_governance_parameters(self):
        params = GovernanceConfig().parameters()
        assert params["voting_period"] == 3 * 86_400
        assert set(params) == {
            "voting_delay", "voting_period", "execution_delay",
            "grace_period", "quorum_bps", "proposal_threshold",
        }

    def test_to_dict_sections(self):
        assert set(EngineConfig().to_dict()) == {"engine", "governance", "oracle", "router", "bridge"}


class TestFromDict:

    def test_partial_sections(self):
        cfg = EngineConfig.from_dict({
            "engine": {"local_chain_id": 10},
            "governance": {"quorum_bps": 1000},
            "router": {"slippage_bps": 100},
        })
        assert cfg.engine.local_chain_id == 10
        assert cfg.governance.quorum_bps == 1000
        assert cfg.governance.voting_delay == 86_400
        assert cfg.router.slippage_bps == 100
        assert cfg.oracle.window_seconds == 3600

    def test_relays(self):
        cfg = BridgeConfig.from_dict({
            "default_relay": "hl",
            "relays": [{"name": "hl", "kind": "hyperlane", "chains": [1, 10]}],
        })
        assert cfg.relays[0].kind == "hyperlane"
        assert cfg.relays[0].chains == [1, 10]
        assert cfg.relays[0].base_fee == 100_000

    def test_relay_name_defaults_to_kind(self):
        assert RelayConfig.from_dict({"kind": "hyperlane"}).name == "hyperlane"


class TestFromFile:

    def test_example_file(self):
        cfg = EngineConfig.from_file(str(EXAMPLE_CONFIG))
        assert cfg.validate()
        assert cfg.bridge.default_relay == "layerzero"
        hyperlane = cfg.bridge.relays[1]
        assert hyperlane.per_byte_fee == 20
        assert hyperlane.chains == [1, 10, 137, 8453, 42161]

    def test_tmp_file(self, tmp_path):
        path = _write(tmp_path, """
[engine]
local_chain_id = 42161
log_level = "DEBUG"

[oracle]
window_seconds = 600
""")
        cfg = EngineConfig.from_file(str(path))
        assert cfg.engine.local_chain_id == 42161
        assert cfg.engine.log_level == "DEBUG"
        assert cfg.oracle.window_seconds == 600

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = EngineConfig.from_file(str(tmp_path / "nope.toml"))
        assert cfg.engine.local_chain_id == 1

    def test_engine_from_file(self, tmp_path):
        path = _write(tmp_path, "[engine]\nlocal_chain_id = 10\n")
        engine = AetherEngine.from_config_file(str(path))
        assert engine.cross_chain.local_chain_id == 10


class TestEnvOverrides:

    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "[engine]\nlocal_chain_id = 137\n")
        monkeypatch.setenv("AETHER_LOCAL_CHAIN_ID", "10")
        monkeypatch.setenv("AETHER_QUORUM_BPS", "250")
        cfg = EngineConfig.from_file(str(path))
        assert cfg.engine.local_chain_id == 10
        assert cfg.governance.quorum_bps == 250

    def test_chain_list(self, monkeypatch):
        monkeypatch.setenv("AETHER_SUPPORTED_CHAINS", "1, 10 ,8453")
        router = RouterConfig()
        router.apply_env()
        assert router.supported_chains == [1, 10, 8453]

    def test_log_level_upper_cased(self, monkeypatch):
        monkeypatch.setenv("AETHER_LOG_LEVEL", "debug")
        cfg = EngineConfig()
        cfg.apply_env()
        assert cfg.engine.log_level == "DEBUG"

    def test_load_config_env_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "[oracle]\nwindow_seconds = 120\n")
        monkeypatch.setenv("AETHER_CONFIG", str(path))
        assert load_config().oracle.window_seconds == 120

    def test_load_config_cwd(self, tmp_path, monkeypatch):
        _write(tmp_path, "[router]\nslippage_bps = 30\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().router.slippage_bps == 30


class TestValidation:

    def test_quorum_range(self):
        cfg = EngineConfig.from_dict({"governance": {"quorum_bps": 20_000}})
        with pytest.raises(ValueError, match="quorum_bps"):
            cfg.validate()

    def test_zero_owner(self):
        cfg = EngineConfig.from_dict({"governance": {"owner": "0x" + "0" * 40}})
        with pytest.raises(ValueError, match="owner"):
            cfg.validate()

    def test_unknown_relay_kind(self):
        cfg = EngineConfig.from_dict({"bridge": {"relays": [{"name": "wh", "kind": "wormhole"}],
                                                 "default_relay": "wh"}})
        with pytest.raises(ValueError, match="relay kind"):
            cfg.validate()

    def test_duplicate_relay(self):
        cfg = EngineConfig.from_dict({"bridge": {"relays": [{"name": "lz"}, {"name": "lz"}],
                                                 "default_relay": "lz"}})
        with pytest.raises(ValueError, match="Duplicate"):
            cfg.validate()

    def test_missing_default_relay(self):
        cfg = EngineConfig.from_dict({"bridge": {"default_relay": "axelar"}})
        with pytest.raises(ValueError, match="default_relay"):
            cfg.validate()

    def test_local_chain_must_be_supported(self):
        cfg = EngineConfig.from_dict({"engine": {"local_chain_id": 250}})
        with pytest.raises(ValueError, match="supported_chains"):
            cfg.validate()

    def test_bad_log_level(self):
        cfg = EngineConfig.from_dict({"engine": {"log_level": "LOUD"}})
        with pytest.raises(ValueError, match="log_level"):
            cfg.validate()

    def test_oracle_window_fits_ring(self):
        cfg = EngineConfig.from_dict({"oracle": {"window_seconds": 70_000}})
        with pytest.raises(ValueError, match="window_seconds"):
            cfg.validate()

    def test_engine_refuses_invalid_config(self):
        with pytest.raises(ValueError):
            AetherEngine(EngineConfig.from_dict({"router": {"slippage_bps": 10_000}}))
