"""
AetherDEX Events

Immutable records of every state change in the core. The off-chain read
model (REST API, indexers) consumes these through an ``EventLog``; nothing in
the core reads them back.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

from .logger import get_logger

logger = get_logger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True)
class Event:
    """Base event. Subclasses set ``name`` to their stable wire name."""

    name: ClassVar[str] = "Event"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"event": self.name}
        for f in fields(self):
            data[_camel(f.name)] = getattr(self, f.name)
        return data


# ══════════════════════════════════════════════════════════════════════
#  POOL
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PoolCreated(Event):
    name: ClassVar[str] = "PoolCreated"
    pool_id: str
    token0: str
    token1: str
    fee: int
    timestamp: int = 0


@dataclass(frozen=True)
class Mint(Event):
    name: ClassVar[str] = "Mint"
    pool_id: str
    sender: str
    recipient: str
    amount0: int
    amount1: int
    shares: int
    timestamp: int = 0


@dataclass(frozen=True)
class Burn(Event):
    name: ClassVar[str] = "Burn"
    pool_id: str
    owner: str
    recipient: str
    amount0: int
    amount1: int
    shares: int
    timestamp: int = 0


@dataclass(frozen=True)
class Swap(Event):
    name: ClassVar[str] = "Swap"
    pool_id: str
    sender: str
    recipient: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    fee: int
    timestamp: int = 0


@dataclass(frozen=True)
class Donate(Event):
    name: ClassVar[str] = "Donate"
    pool_id: str
    donor: str
    amount0: int
    amount1: int
    timestamp: int = 0


# ══════════════════════════════════════════════════════════════════════
#  FEES & REVENUE
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FeeUpdated(Event):
    name: ClassVar[str] = "FeeUpdated"
    pool_id: str
    old_fee: int
    new_fee: int
    timestamp: int = 0


@dataclass(frozen=True)
class FeeTierAdded(Event):
    name: ClassVar[str] = "FeeTierAdded"
    fee: int
    tick_spacing: int
    timestamp: int = 0


@dataclass(frozen=True)
class FeeTierUpdated(Event):
    name: ClassVar[str] = "FeeTierUpdated"
    fee: int
    tick_spacing: int
    active: bool
    timestamp: int = 0


@dataclass(frozen=True)
class FeeTierRemoved(Event):
    name: ClassVar[str] = "FeeTierRemoved"
    fee: int
    timestamp: int = 0


@dataclass(frozen=True)
class RevenueDistributed(Event):
    name: ClassVar[str] = "RevenueDistributed"
    token: str
    amount: int
    distributed: int
    retained: int
    timestamp: int = 0


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProposalCreated(Event):
    name: ClassVar[str] = "ProposalCreated"
    proposal_id: int
    proposer: str
    proposal_type: str
    start: int
    end: int
    description: str = ""
    timestamp: int = 0


@dataclass(frozen=True)
class VoteCast(Event):
    name: ClassVar[str] = "VoteCast"
    proposal_id: int
    voter: str
    support: str
    weight: int
    timestamp: int = 0


@dataclass(frozen=True)
class ProposalCanceled(Event):
    name: ClassVar[str] = "ProposalCanceled"
    proposal_id: int
    timestamp: int = 0


@dataclass(frozen=True)
class ProposalExecuted(Event):
    name: ClassVar[str] = "ProposalExecuted"
    proposal_id: int
    timestamp: int = 0


# ══════════════════════════════════════════════════════════════════════
#  CROSS-CHAIN
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CrossChainRouteInitiated(Event):
    name: ClassVar[str] = "CrossChainRouteInitiated"
    route_id: str
    caller: str
    token_in: str
    amount_in: int
    src_chain: int
    dst_chain: int
    timestamp: int = 0


@dataclass(frozen=True)
class CrossChainHopDispatched(Event):
    name: ClassVar[str] = "CrossChainHopDispatched"
    route_id: str
    hop_index: int
    adapter: str
    dst_chain: int
    message_handle: str
    fee_paid: int
    timestamp: int = 0


@dataclass(frozen=True)
class CrossChainRouteCompleted(Event):
    name: ClassVar[str] = "CrossChainRouteCompleted"
    route_id: str
    timestamp: int = 0


@dataclass(frozen=True)
class CrossChainRouteFailed(Event):
    name: ClassVar[str] = "CrossChainRouteFailed"
    route_id: str
    reason: str = ""
    timestamp: int = 0


@dataclass(frozen=True)
class RefundClaimed(Event):
    name: ClassVar[str] = "RefundClaimed"
    route_id: str
    recipient: str
    token: str
    amount: int
    timestamp: int = 0


# ══════════════════════════════════════════════════════════════════════
#  EVENT LOG
# ══════════════════════════════════════════════════════════════════════

Subscriber = Callable[[Event], None]


class EventLog:
    """
    Append-only log of emitted events with synchronous subscribers.

    Subscribers run in registration order right after the event is
    appended. An exception raised by a subscriber propagates to the
    emitter.
    """

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._subscribers: List[Subscriber] = []

    def emit(self, event: Event) -> Event:
        self._events.append(event)
        logger.debug(f"[{event.name}] {event.to_dict()}")
        for callback in list(self._subscribers):
            callback(event)
        return event

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def events(self) -> Tuple[Event, ...]:
        return tuple(self._events)

    def filter(self, name: str, **match: Any) -> List[Event]:
        """Events called ``name`` whose attributes equal every ``match`` item."""
        result = []
        for event in self._events:
            if event.name != name:
                continue
            if all(getattr(event, k, None) == v for k, v in match.items()):
                result.append(event)
        return result

    def last(self, name: Optional[str] = None) -> Optional[Event]:
        for event in reversed(self._events):
            if name is None or event.name == name:
                return event
        return None

    def __len__(self) -> int:
        return len(self._events)
