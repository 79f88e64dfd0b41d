"""
AetherDEX Core Package

Core imports are lazily loaded so that ``import aether`` stays cheap.
For direct module access, import from submodules:

    from aether.exchange import PoolManager, TWAPOracle
    from aether.governance import FeeGovernance
    from aether.bridge import CrossChainRouter
"""

__version__ = "0.4.0"


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'AetherEngine':
        from .engine import AetherEngine
        return AetherEngine
    elif name == 'EngineConfig':
        from .config import EngineConfig
        return EngineConfig
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'AetherError':
        from .exceptions import AetherError
        return AetherError
    raise AttributeError(f"module 'aether' has no attribute {name!r}")

__all__ = ['AetherEngine', 'EngineConfig', 'load_config', 'AetherError']
