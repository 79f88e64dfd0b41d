"""
AetherDEX Relay Adapters: Cross-Chain Messaging Layer

Each adapter provides a uniform interface for:
  - Quoting the native fee of a message to a destination chain
  - Dispatching a message (accepted once, delivered at least once)
  - Reporting the delivery status of a dispatched message

The adapters here simulate LayerZero- and Hyperlane-style endpoints with
in-memory outboxes. Delivery happens out of band: the relay side calls
``deliver()`` or ``fail()`` on a message handle.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..clock import Clock, SystemClock
from ..constants import DEFAULT_RELAY_BASE_FEE, DEFAULT_RELAY_PER_BYTE_FEE, DEFAULT_SUPPORTED_CHAINS
from ..exceptions import (
    InsufficientFee,
    InvalidDstChain,
    InvalidPayload,
    MessageNotFound,
    RelayRejected,
)
from ..logger import get_logger
from .types import ChainId, DeliveryStatus, chain_name

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  OUTBOX MESSAGE
# ══════════════════════════════════════════════════════════════════════

@dataclass
class RelayMessage:
    """
    A message accepted by a relay.

    Attributes:
        handle: Adapter-specific message id (hex)
        nonce: Per-adapter sequence number
        dst_chain: Destination chain id
        recipient: Destination-side receiver
        payload: Opaque message bytes
        fee_paid: Native fee attached at dispatch
        status: Relay-side delivery status
        attempts: Delivery attempts seen (at-least-once)
    """
    handle: str
    nonce: int
    dst_chain: int
    recipient: str
    payload: bytes
    fee_paid: int
    sent_at: int
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    failure_reason: str = ""
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle": self.handle,
            "nonce": self.nonce,
            "dstChain": self.dst_chain,
            "recipient": self.recipient,
            "payloadSize": len(self.payload),
            "feePaid": self.fee_paid,
            "sentAt": self.sent_at,
            "status": self.status.name,
            "attempts": self.attempts,
            "failureReason": self.failure_reason,
        }


# ══════════════════════════════════════════════════════════════════════
#  BASE RELAY ADAPTER  (Abstract)
# ══════════════════════════════════════════════════════════════════════

class BaseRelayAdapter(ABC):
    """
    Abstract interface to an asynchronous cross-chain message relay.

    Fee model: ``base_fee + per_byte_fee * len(payload)`` in native units.
    The router pays the fee into ``address`` before calling ``dispatch``.
    """

    def __init__(
        self,
        name: Optional[str] = None,
        chains: Iterable[int] = DEFAULT_SUPPORTED_CHAINS,
        base_fee: int = DEFAULT_RELAY_BASE_FEE,
        per_byte_fee: int = DEFAULT_RELAY_PER_BYTE_FEE,
        clock: Optional[Clock] = None,
    ):
        if base_fee < 0 or per_byte_fee < 0:
            raise ValueError("Relay fees cannot be negative")
        self.name = name or self.kind
        self.chains = frozenset(int(c) for c in chains)
        self.base_fee = base_fee
        self.per_byte_fee = per_byte_fee
        self.clock = clock or SystemClock()
        self._outbox: Dict[str, RelayMessage] = {}
        self._nonce = 0
        self._rejecting = False
        self._reject_reason = ""

    # ── Identity ────────────────────────────────────────────────────

    @property
    @abstractmethod
    def kind(self) -> str:
        """Relay protocol family (``layerzero``, ``hyperlane``)."""
        ...

    @abstractmethod
    def _message_handle(self, nonce: int, dst_chain: int, recipient: str, payload: bytes) -> str:
        """Protocol-specific message id."""
        ...

    @property
    def address(self) -> str:
        """Ledger account that receives dispatch fees."""
        digest = hashlib.blake2b(f"relay:{self.name}".encode(), digest_size=20).hexdigest()
        return "0x" + digest

    def supports(self, chain_id: int) -> bool:
        return chain_id in self.chains

    # ── Fee estimation ──────────────────────────────────────────────

    def estimate_fee(self, dest_chain: int, payload: bytes) -> int:
        """
        Native fee for sending ``payload`` to ``dest_chain``.

        Raises:
            InvalidDstChain: the relay does not serve ``dest_chain``
        """
        if not self.supports(dest_chain):
            raise InvalidDstChain(f"{self.name} does not serve {chain_name(dest_chain)}")
        return self.base_fee + self.per_byte_fee * len(payload)

    # ── Dispatch ────────────────────────────────────────────────────

    def dispatch(self, dest_chain: int, recipient: str, payload: bytes, fee_paid: int) -> str:
        """
        Accept a message for delivery.

        Returns:
            Message handle

        Raises:
            RelayRejected, InvalidDstChain, InsufficientFee, InvalidPayload
        """
        if self._rejecting:
            logger.warning(f"{self.name}: rejecting message to {chain_name(dest_chain)}: {self._reject_reason}")
            raise RelayRejected(f"{self.name} rejected message: {self._reject_reason}")
        if not payload:
            raise InvalidPayload("Relay payload is empty")
        required = self.estimate_fee(dest_chain, payload)
        if fee_paid < required:
            raise InsufficientFee(f"{self.name} requires {required}, got {fee_paid}")

        self._nonce += 1
        handle = self._message_handle(self._nonce, dest_chain, recipient, payload)
        now = self.clock.now()
        self._outbox[handle] = RelayMessage(
            handle=handle,
            nonce=self._nonce,
            dst_chain=dest_chain,
            recipient=recipient,
            payload=payload,
            fee_paid=fee_paid,
            sent_at=now,
            updated_at=now,
        )
        logger.info(f"{self.name}: message {handle[:18]} → {chain_name(dest_chain)} accepted (fee={fee_paid})")
        return handle

    def delivery_status(self, handle: str) -> DeliveryStatus:
        return self.get_message(handle).status

    def get_message(self, handle: str) -> RelayMessage:
        message = self._outbox.get(handle)
        if message is None:
            raise MessageNotFound(f"{self.name} has no message {handle}")
        return message

    # ── Relay-side callbacks ────────────────────────────────────────

    def deliver(self, handle: str) -> RelayMessage:
        """
        Record a delivery attempt. Redelivery of a delivered message is a
        no-op beyond the attempt counter.
        """
        message = self.get_message(handle)
        message.attempts += 1
        if message.status == DeliveryStatus.FAILED:
            raise RelayRejected(f"Message {handle} already failed: {message.failure_reason}")
        message.status = DeliveryStatus.DELIVERED
        message.updated_at = self.clock.now()
        logger.info(f"{self.name}: message {handle[:18]} delivered (attempt {message.attempts})")
        return message

    def fail(self, handle: str, reason: str = "execution reverted on destination") -> RelayMessage:
        message = self.get_message(handle)
        if message.status == DeliveryStatus.DELIVERED:
            raise RelayRejected(f"Message {handle} already delivered")
        message.status = DeliveryStatus.FAILED
        message.failure_reason = reason
        message.updated_at = self.clock.now()
        logger.warning(f"{self.name}: message {handle[:18]} FAILED: {reason}")
        return message

    def set_rejecting(self, rejecting: bool, reason: str = "relay paused") -> None:
        """Make every following ``dispatch`` raise ``RelayRejected``."""
        self._rejecting = rejecting
        self._reject_reason = reason if rejecting else ""

    # ── Queries ─────────────────────────────────────────────────────

    @property
    def outbox(self) -> List[RelayMessage]:
        return list(self._outbox.values())

    def pending_messages(self) -> List[RelayMessage]:
        return [m for m in self._outbox.values() if m.status == DeliveryStatus.PENDING]

    @property
    def fees_collected(self) -> int:
        return sum(m.fee_paid for m in self._outbox.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "address": self.address,
            "chains": sorted(self.chains),
            "baseFee": self.base_fee,
            "perByteFee": self.per_byte_fee,
            "rejecting": self._rejecting,
            "messages": len(self._outbox),
            "pending": len(self.pending_messages()),
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} chains={sorted(self.chains)} outbox={len(self._outbox)}>"


# ══════════════════════════════════════════════════════════════════════
#  LAYERZERO ADAPTER
# ══════════════════════════════════════════════════════════════════════

# LayerZero v1 endpoint ids
LAYERZERO_ENDPOINT_IDS: Dict[int, int] = {
    ChainId.ETHEREUM: 101,
    ChainId.BSC: 102,
    ChainId.AVALANCHE: 106,
    ChainId.POLYGON: 109,
    ChainId.ARBITRUM: 110,
    ChainId.OPTIMISM: 111,
    ChainId.BASE: 184,
}


class LayerZeroAdapter(BaseRelayAdapter):
    """
    LayerZero-style endpoint.

    Messages are addressed by endpoint id; the handle is a GUID over
    (nonce, endpoint id, receiver, payload).
    """

    @property
    def kind(self) -> str:
        return "layerzero"

    def supports(self, chain_id: int) -> bool:
        return super().supports(chain_id) and chain_id in LAYERZERO_ENDPOINT_IDS

    def endpoint_id(self, chain_id: int) -> int:
        if chain_id not in LAYERZERO_ENDPOINT_IDS:
            raise InvalidDstChain(f"No LayerZero endpoint for {chain_name(chain_id)}")
        return LAYERZERO_ENDPOINT_IDS[chain_id]

    def _message_handle(self, nonce: int, dst_chain: int, recipient: str, payload: bytes) -> str:
        h = hashlib.blake2b(digest_size=32)
        h.update(b"lz-guid")
        h.update(nonce.to_bytes(8, "big"))
        h.update(self.endpoint_id(dst_chain).to_bytes(4, "big"))
        h.update(recipient.encode())
        h.update(payload)
        return "0x" + h.hexdigest()


# ══════════════════════════════════════════════════════════════════════
#  HYPERLANE ADAPTER
# ══════════════════════════════════════════════════════════════════════

class HyperlaneAdapter(BaseRelayAdapter):
    """
    Hyperlane-style mailbox.

    Domains equal EVM chain ids; the handle is the message id over
    (nonce, origin domain, destination domain, recipient, body).
    """

    def __init__(self, *args: Any, origin_domain: int = ChainId.ETHEREUM, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.origin_domain = int(origin_domain)

    @property
    def kind(self) -> str:
        return "hyperlane"

    def _message_handle(self, nonce: int, dst_chain: int, recipient: str, payload: bytes) -> str:
        h = hashlib.blake2b(digest_size=32)
        h.update(b"hyperlane-mailbox")
        h.update(nonce.to_bytes(4, "big"))
        h.update(self.origin_domain.to_bytes(4, "big"))
        h.update(int(dst_chain).to_bytes(4, "big"))
        h.update(recipient.encode())
        h.update(payload)
        return "0x" + h.hexdigest()


ADAPTER_KINDS = {
    "layerzero": LayerZeroAdapter,
    "hyperlane": HyperlaneAdapter,
}
