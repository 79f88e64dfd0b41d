"""
AetherDEX TOML Configuration Loader

Loads every section of aether.toml with environment variable overrides.

Environment variable mapping:
    [engine] local_chain_id      → AETHER_LOCAL_CHAIN_ID
    [engine] log_level           → AETHER_LOG_LEVEL
    [governance] owner           → AETHER_OWNER
    [governance] treasury        → AETHER_TREASURY
    [governance] quorum_bps      → AETHER_QUORUM_BPS
    [governance] voting_period   → AETHER_VOTING_PERIOD
    [oracle] window_seconds      → AETHER_TWAP_WINDOW
    [router] supported_chains    → AETHER_SUPPORTED_CHAINS (comma separated)
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import constants as C

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
RELAY_KINDS = ("layerzero", "hyperlane")


def _int_list(value: str) -> List[int]:
    return [int(part.strip()) for part in value.split(",") if part.strip()]


# ---------------------------------------------------------------------------
# Section dataclasses, one per [section] of aether.example.toml
# ---------------------------------------------------------------------------


@dataclass
class EngineSectionConfig:
    """[engine] section."""
    local_chain_id: int = int(C.AETHER_LOCAL_CHAIN_ID)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineSectionConfig":
        return cls(
            local_chain_id=data.get("local_chain_id", int(C.AETHER_LOCAL_CHAIN_ID)),
            log_level=data.get("log_level", "INFO"),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("AETHER_LOCAL_CHAIN_ID"):
            self.local_chain_id = int(v)
        if v := os.environ.get("AETHER_LOG_LEVEL"):
            self.log_level = v.upper()


@dataclass
class GovernanceConfig:
    """[governance] section. Durations are seconds."""
    owner: str = str(C.AETHER_OWNER)
    treasury: str = C.TREASURY_ADDRESS
    voting_delay: int = C.GOVERNANCE_VOTING_DELAY_SECONDS
    voting_period: int = C.GOVERNANCE_VOTING_PERIOD_SECONDS
    execution_delay: int = C.GOVERNANCE_EXECUTION_DELAY_SECONDS
    grace_period: int = C.GOVERNANCE_GRACE_PERIOD_SECONDS
    quorum_bps: int = C.GOVERNANCE_QUORUM_BPS
    proposal_threshold: int = C.GOVERNANCE_PROPOSAL_THRESHOLD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceConfig":
        defaults = cls()
        return cls(
            owner=data.get("owner", defaults.owner),
            treasury=data.get("treasury", defaults.treasury),
            voting_delay=data.get("voting_delay", defaults.voting_delay),
            voting_period=data.get("voting_period", defaults.voting_period),
            execution_delay=data.get("execution_delay", defaults.execution_delay),
            grace_period=data.get("grace_period", defaults.grace_period),
            quorum_bps=data.get("quorum_bps", defaults.quorum_bps),
            proposal_threshold=data.get("proposal_threshold", defaults.proposal_threshold),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("AETHER_OWNER"):
            self.owner = v
        if v := os.environ.get("AETHER_TREASURY"):
            self.treasury = v
        if v := os.environ.get("AETHER_QUORUM_BPS"):
            self.quorum_bps = int(v)
        if v := os.environ.get("AETHER_VOTING_PERIOD"):
            self.voting_period = int(v)

    def validate(self) -> None:
        if not self.owner or self.owner == C.ZERO_ADDRESS:
            raise ValueError("governance.owner must be a non-zero address")
        for name in ("voting_delay", "voting_period", "execution_delay", "grace_period"):
            if getattr(self, name) < 0:
                raise ValueError(f"governance.{name} must be >= 0")
        if self.voting_period == 0:
            raise ValueError("governance.voting_period must be > 0")
        if not 0 <= self.quorum_bps <= C.BPS:
            raise ValueError(f"governance.quorum_bps must be in [0, {C.BPS}]")
        if self.proposal_threshold < 0:
            raise ValueError("governance.proposal_threshold must be >= 0")

    def parameters(self) -> Dict[str, int]:
        """Values a PARAMETER_CHANGE proposal may modify."""
        return {
            "voting_delay": self.voting_delay,
            "voting_period": self.voting_period,
            "execution_delay": self.execution_delay,
            "grace_period": self.grace_period,
            "quorum_bps": self.quorum_bps,
            "proposal_threshold": self.proposal_threshold,
        }


@dataclass
class OracleConfig:
    """[oracle] section."""
    window_seconds: int = C.TWAP_WINDOW_SECONDS
    staleness_seconds: int = C.ORACLE_STALENESS_SECONDS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OracleConfig":
        return cls(
            window_seconds=data.get("window_seconds", C.TWAP_WINDOW_SECONDS),
            staleness_seconds=data.get("staleness_seconds", C.ORACLE_STALENESS_SECONDS),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("AETHER_TWAP_WINDOW"):
            self.window_seconds = int(v)


@dataclass
class RouterConfig:
    """[router] section."""
    default_deadline_seconds: int = C.DEFAULT_DEADLINE_SECONDS
    slippage_bps: int = C.DEFAULT_SLIPPAGE_BPS
    supported_chains: List[int] = field(default_factory=lambda: list(C.DEFAULT_SUPPORTED_CHAINS))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouterConfig":
        return cls(
            default_deadline_seconds=data.get("default_deadline_seconds", C.DEFAULT_DEADLINE_SECONDS),
            slippage_bps=data.get("slippage_bps", C.DEFAULT_SLIPPAGE_BPS),
            supported_chains=list(data.get("supported_chains", C.DEFAULT_SUPPORTED_CHAINS)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("AETHER_SUPPORTED_CHAINS"):
            self.supported_chains = _int_list(v)


@dataclass
class RelayConfig:
    """One [[bridge.relays]] entry."""
    name: str
    kind: str = "layerzero"
    base_fee: int = C.DEFAULT_RELAY_BASE_FEE
    per_byte_fee: int = C.DEFAULT_RELAY_PER_BYTE_FEE
    chains: List[int] = field(default_factory=lambda: list(C.DEFAULT_SUPPORTED_CHAINS))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelayConfig":
        kind = data.get("kind", "layerzero")
        return cls(
            name=data.get("name", kind),
            kind=kind,
            base_fee=data.get("base_fee", C.DEFAULT_RELAY_BASE_FEE),
            per_byte_fee=data.get("per_byte_fee", C.DEFAULT_RELAY_PER_BYTE_FEE),
            chains=list(data.get("chains", C.DEFAULT_SUPPORTED_CHAINS)),
        )


def _default_relays() -> List[RelayConfig]:
    return [
        RelayConfig(name="layerzero", kind="layerzero"),
        RelayConfig(name="hyperlane", kind="hyperlane", base_fee=80_000, per_byte_fee=20),
    ]


@dataclass
class BridgeConfig:
    """[bridge] section."""
    default_relay: str = "layerzero"
    relays: List[RelayConfig] = field(default_factory=_default_relays)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        relays = data.get("relays")
        return cls(
            default_relay=data.get("default_relay", "layerzero"),
            relays=[RelayConfig.from_dict(r) for r in relays] if relays is not None else _default_relays(),
        )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass
class EngineConfig:
    """
    Unified engine configuration.

    Loads every section of aether.toml and applies environment variable
    overrides. This is the single source of truth at runtime.
    """
    engine: EngineSectionConfig = field(default_factory=EngineSectionConfig)
    governance: GovernanceConfig = field(default_factory=GovernanceConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    bridge: BridgeConfig = field(default_factory=BridgeConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from a parsed TOML dict."""
        return cls(
            engine=EngineSectionConfig.from_dict(data.get("engine", {})),
            governance=GovernanceConfig.from_dict(data.get("governance", {})),
            oracle=OracleConfig.from_dict(data.get("oracle", {})),
            router=RouterConfig.from_dict(data.get("router", {})),
            bridge=BridgeConfig.from_dict(data.get("bridge", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """
        Load configuration from a TOML file.

        A missing file is not an error: defaults (plus env overrides) are
        returned and a warning is logged.
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            raw = tomllib.load(f)

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.engine.apply_env()
        self.governance.apply_env()
        self.oracle.apply_env()
        self.router.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ValueError: on invalid config
        """
        if self.engine.local_chain_id < 1:
            raise ValueError("local_chain_id must be >= 1")
        if self.engine.log_level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.engine.log_level}")
        self.governance.validate()
        if self.oracle.window_seconds <= 0:
            raise ValueError("oracle.window_seconds must be > 0")
        if self.oracle.window_seconds >= C.OBSERVATION_SLOTS:
            raise ValueError(f"oracle.window_seconds must be < {C.OBSERVATION_SLOTS}")
        if self.router.default_deadline_seconds <= 0:
            raise ValueError("router.default_deadline_seconds must be > 0")
        if not 0 <= self.router.slippage_bps < C.BPS:
            raise ValueError(f"router.slippage_bps must be in [0, {C.BPS})")
        if self.engine.local_chain_id not in self.router.supported_chains:
            raise ValueError("local_chain_id must be one of router.supported_chains")

        names = set()
        for relay in self.bridge.relays:
            if relay.kind not in RELAY_KINDS:
                raise ValueError(f"Unknown relay kind: {relay.kind}")
            if relay.name in names:
                raise ValueError(f"Duplicate relay name: {relay.name}")
            if relay.base_fee < 0 or relay.per_byte_fee < 0:
                raise ValueError(f"Relay {relay.name} fees must be >= 0")
            names.add(relay.name)
        if self.bridge.relays and self.bridge.default_relay not in names:
            raise ValueError(f"default_relay {self.bridge.default_relay!r} is not configured")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "engine": {
                "local_chain_id": self.engine.local_chain_id,
                "log_level": self.engine.log_level,
            },
            "governance": {
                "owner": self.governance.owner,
                "treasury": self.governance.treasury,
                **self.governance.parameters(),
            },
            "oracle": {
                "window_seconds": self.oracle.window_seconds,
                "staleness_seconds": self.oracle.staleness_seconds,
            },
            "router": {
                "default_deadline_seconds": self.router.default_deadline_seconds,
                "slippage_bps": self.router.slippage_bps,
                "supported_chains": list(self.router.supported_chains),
            },
            "bridge": {
                "default_relay": self.bridge.default_relay,
                "relays": [
                    {
                        "name": r.name,
                        "kind": r.kind,
                        "base_fee": r.base_fee,
                        "per_byte_fee": r.per_byte_fee,
                        "chains": list(r.chains),
                    }
                    for r in self.bridge.relays
                ],
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration.

    Resolution order:
        1. Explicit *path* argument
        2. AETHER_CONFIG env var
        3. ./aether.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("AETHER_CONFIG", "aether.toml")

    return EngineConfig.from_file(path)
