"""
AetherDEX Cross-Chain Routing

Provides:
  - types: ChainId, route saga records, relay payload encoding
  - adapters: Relay adapters (LayerZero-style, Hyperlane-style)
  - router: RelayRegistry and CrossChainRouter
"""

from .types import (
    CHAIN_NAMES,
    ChainId,
    CrossChainRoute,
    DeliveryStatus,
    RouteData,
    RouteHop,
    RouteStatus,
    chain_name,
    decode_payload,
    encode_payload,
)

from .adapters import (
    ADAPTER_KINDS,
    BaseRelayAdapter,
    HyperlaneAdapter,
    LAYERZERO_ENDPOINT_IDS,
    LayerZeroAdapter,
    RelayMessage,
)

from .router import (
    CrossChainRouter,
    RelayRegistry,
    create_adapter,
)

__all__ = [
    # Types
    "CHAIN_NAMES",
    "ChainId",
    "CrossChainRoute",
    "DeliveryStatus",
    "RouteData",
    "RouteHop",
    "RouteStatus",
    "chain_name",
    "decode_payload",
    "encode_payload",
    # Adapters
    "ADAPTER_KINDS",
    "BaseRelayAdapter",
    "HyperlaneAdapter",
    "LAYERZERO_ENDPOINT_IDS",
    "LayerZeroAdapter",
    "RelayMessage",
    # Router
    "CrossChainRouter",
    "RelayRegistry",
    "create_adapter",
]
