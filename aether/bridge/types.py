"""
AetherDEX Cross-Chain Types

Core data structures for cross-chain routing.

Defines:
  - ChainId enum for the supported EVM chains
  - RouteStatus: saga states of a cross-chain route
  - DeliveryStatus: relay-side status of a single message
  - RouteData: optional routing hints (adapter, local swap path, bridge token)
  - RouteHop: one cross-chain leg and its dispatch record
  - CrossChainRoute: the saga record itself
  - Canonical relay payload encoding
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..exceptions import InvalidPayload, InvalidRouteState
from ..logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  CHAIN IDENTIFIERS
# ══════════════════════════════════════════════════════════════════════

class ChainId(IntEnum):
    """EVM chain ids the router knows by name."""
    ETHEREUM  = 1
    OPTIMISM  = 10
    BSC       = 56
    POLYGON   = 137
    BASE      = 8453
    ARBITRUM  = 42161
    AVALANCHE = 43114


CHAIN_NAMES: Dict[int, str] = {
    ChainId.ETHEREUM: "Ethereum",
    ChainId.OPTIMISM: "Optimism",
    ChainId.BSC: "BNB Chain",
    ChainId.POLYGON: "Polygon",
    ChainId.BASE: "Base",
    ChainId.ARBITRUM: "Arbitrum One",
    ChainId.AVALANCHE: "Avalanche C-Chain",
}


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"chain-{chain_id}")


# ══════════════════════════════════════════════════════════════════════
#  STATUS ENUMS
# ══════════════════════════════════════════════════════════════════════

class RouteStatus(IntEnum):
    """
    Saga states.

        PENDING ──▶ LOCAL_SWAPPED ──▶ DISPATCHED ──▶ DELIVERED
                                         └──────────▶ FAILED
        (dispatch rejected) ─────────────────────────▶ FAILED
    """
    PENDING       = 0
    LOCAL_SWAPPED = 1
    DISPATCHED    = 2
    DELIVERED     = 3
    FAILED        = 4

    @property
    def is_terminal(self) -> bool:
        return self in (RouteStatus.DELIVERED, RouteStatus.FAILED)


_ROUTE_TRANSITIONS = {
    RouteStatus.PENDING: {RouteStatus.LOCAL_SWAPPED, RouteStatus.FAILED},
    RouteStatus.LOCAL_SWAPPED: {RouteStatus.DISPATCHED, RouteStatus.FAILED},
    RouteStatus.DISPATCHED: {RouteStatus.DELIVERED, RouteStatus.FAILED},
    RouteStatus.DELIVERED: set(),
    RouteStatus.FAILED: set(),
}


class DeliveryStatus(IntEnum):
    """Relay-side status of one dispatched message."""
    PENDING   = 0
    DELIVERED = 1
    FAILED    = 2


# ══════════════════════════════════════════════════════════════════════
#  ROUTE DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass
class RouteData:
    """
    Optional routing hints supplied by the caller.

    Attributes:
        adapter: Relay adapter name; the registry picks one when unset
        bridge_token: Token actually bridged; a local swap converts
            ``token_in`` into it when the source chain is local
        swap_path: Explicit local swap path (defaults to [token_in, bridge_token])
        min_bridge_amount: Slippage floor for the local swap
        extra: Opaque data forwarded in the relay payload
    """
    adapter: Optional[str] = None
    bridge_token: Optional[str] = None
    swap_path: Optional[List[str]] = None
    min_bridge_amount: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def local_path(self, token_in: str) -> Optional[List[str]]:
        """Local swap path, or None when no swap is needed."""
        if self.swap_path:
            return list(self.swap_path)
        if self.bridge_token and self.bridge_token != token_in:
            return [token_in, self.bridge_token]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "adapter": self.adapter,
            "bridgeToken": self.bridge_token,
            "swapPath": list(self.swap_path) if self.swap_path else None,
            "minBridgeAmount": self.min_bridge_amount,
            "extra": dict(self.extra),
        }


# ══════════════════════════════════════════════════════════════════════
#  ROUTE HOP
# ══════════════════════════════════════════════════════════════════════

@dataclass
class RouteHop:
    """
    One cross-chain leg.

    ``amount_out_min`` is the minimum the destination must deliver; it is
    also the input amount of the next hop.
    """
    dst_chain: int
    token_out: str
    amount_out_min: int
    adapter: Optional[str] = None

    # Dispatch record
    src_chain: int = 0
    message_handle: str = ""
    fee_paid: int = 0
    delivery: DeliveryStatus = DeliveryStatus.PENDING

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RouteHop":
        try:
            return cls(
                dst_chain=int(d["dst_chain"]),
                token_out=d["token_out"],
                amount_out_min=int(d.get("amount_out_min", 0)),
                adapter=d.get("adapter"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidPayload(f"Malformed hop {d!r}: {e}") from e

    @property
    def dispatched(self) -> bool:
        return bool(self.message_handle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "srcChain": self.src_chain,
            "dstChain": self.dst_chain,
            "tokenOut": self.token_out,
            "amountOutMin": self.amount_out_min,
            "adapter": self.adapter,
            "messageHandle": self.message_handle,
            "feePaid": self.fee_paid,
            "delivery": self.delivery.name,
        }


# ══════════════════════════════════════════════════════════════════════
#  CROSS-CHAIN ROUTE
# ══════════════════════════════════════════════════════════════════════

@dataclass
class CrossChainRoute:
    """
    Saga record of one cross-chain call.

    Attributes:
        id: Deterministic route id (blake2b over caller, nonce and legs)
        escrow_token / escrow_amount: What the router holds for this route
        refunded: Escrow has been returned to the caller
        settled: Escrow has been released to the relay vault
    """
    id: str
    caller: str
    recipient: str
    token_in: str
    amount_in: int
    src_chain: int
    hops: List[RouteHop]
    status: RouteStatus = RouteStatus.PENDING
    escrow_token: str = ""
    escrow_amount: int = 0
    refunded: bool = False
    settled: bool = False
    failure_reason: str = ""
    created_at: int = 0
    updated_at: int = 0
    route_data: RouteData = field(default_factory=RouteData)

    @staticmethod
    def compute_id(caller: str, nonce: int, src_chain: int, dst_chains: List[int], amount_in: int) -> str:
        raw = f"{caller}:{nonce}:{src_chain}:{','.join(map(str, dst_chains))}:{amount_in}".encode()
        return "0x" + hashlib.blake2b(raw, digest_size=16).hexdigest()

    @property
    def dst_chain(self) -> int:
        return self.hops[-1].dst_chain

    @property
    def total_fee_paid(self) -> int:
        return sum(h.fee_paid for h in self.hops)

    @property
    def unresolved_hops(self) -> List[int]:
        """Accepted hops whose message has not been reported FAILED."""
        return [i for i, h in enumerate(self.hops) if h.dispatched and h.delivery != DeliveryStatus.FAILED]

    @property
    def refundable(self) -> bool:
        # A live message may still pay out on its destination.
        return (
            self.status == RouteStatus.FAILED
            and not self.refunded
            and not self.settled
            and self.escrow_amount > 0
            and not self.unresolved_hops
        )

    def transition(self, status: RouteStatus, now: int) -> None:
        if status not in _ROUTE_TRANSITIONS[self.status]:
            raise InvalidRouteState(
                f"Route {self.id} cannot move from {self.status.name} to {status.name}"
            )
        logger.debug(f"Route {self.id}: {self.status.name} → {status.name}")
        self.status = status
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "caller": self.caller,
            "recipient": self.recipient,
            "tokenIn": self.token_in,
            "amountIn": self.amount_in,
            "srcChain": self.src_chain,
            "dstChain": self.dst_chain,
            "hops": [h.to_dict() for h in self.hops],
            "status": self.status.name,
            "escrowToken": self.escrow_token,
            "escrowAmount": self.escrow_amount,
            "refunded": self.refunded,
            "settled": self.settled,
            "failureReason": self.failure_reason,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "routeData": self.route_data.to_dict(),
        }


# ══════════════════════════════════════════════════════════════════════
#  RELAY PAYLOAD
# ══════════════════════════════════════════════════════════════════════

PAYLOAD_VERSION = 1


def encode_payload(
    route_id: str,
    hop_index: int,
    src_chain: int,
    token_out: str,
    amount_out_min: int,
    recipient: str,
    extra: Optional[Dict[str, Any]] = None,
) -> bytes:
    """
    Canonical JSON message carried by the relay.

    Keys are sorted and separators compact so the same route always
    produces the same bytes (and therefore the same fee estimate).
    """
    body = {
        "v": PAYLOAD_VERSION,
        "routeId": route_id,
        "hop": hop_index,
        "srcChain": src_chain,
        "tokenOut": token_out,
        "amountOutMin": amount_out_min,
        "recipient": recipient,
    }
    if extra:
        body["extra"] = extra
    try:
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f"Route payload is not serializable: {e}") from e


def decode_payload(payload: bytes) -> Dict[str, Any]:
    try:
        body = json.loads(payload.decode())
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidPayload(f"Relay payload is not valid JSON: {e}") from e
    if not isinstance(body, dict) or body.get("v") != PAYLOAD_VERSION:
        raise InvalidPayload("Unsupported relay payload version")
    for key in ("routeId", "hop", "tokenOut", "amountOutMin", "recipient"):
        if key not in body:
            raise InvalidPayload(f"Relay payload missing {key}")
    return body
