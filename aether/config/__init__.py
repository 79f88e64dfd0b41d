"""
AetherDEX Configuration

Loads all sections of aether.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    BridgeConfig,
    EngineConfig,
    EngineSectionConfig,
    GovernanceConfig,
    OracleConfig,
    RelayConfig,
    RouterConfig,
    load_config,
)

__all__ = [
    "BridgeConfig",
    "EngineConfig",
    "EngineSectionConfig",
    "GovernanceConfig",
    "OracleConfig",
    "RelayConfig",
    "RouterConfig",
    "load_config",
]
