"""
AetherDEX Cross-Chain Router

Implements:
  - RelayRegistry: named relay adapters with per-chain default selection
  - CrossChainRouter: single-hop and multi-hop cross-chain routes

A route is a saga, not a transaction. The local leg (escrow pull and
optional swap) is atomic; once a relay accepts a message the router's
responsibility ends and the route waits in DISPATCHED for an external
callback (``mark_delivered`` / ``mark_failed``) or a ``sync_status`` poll.

Fund flow:
  caller ──token_in──▶ escrow ──(local swap)──▶ escrow holds bridge token
  caller ──native fee──▶ relay adapter
  DELIVERED: escrow ──▶ relay vault        FAILED: escrow ──▶ caller (claim_refund)
  FAILED with a delivered hop: escrow ──▶ relay vault
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..clock import Clock, SystemClock
from ..config.loader import BridgeConfig, RelayConfig
from ..constants import (
    CROSS_CHAIN_ESCROW_ADDRESS,
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_SUPPORTED_CHAINS,
    NATIVE_TOKEN,
    RELAY_VAULT_ADDRESS,
    ZERO_ADDRESS,
)
from ..events import (
    CrossChainHopDispatched,
    CrossChainRouteCompleted,
    CrossChainRouteFailed,
    CrossChainRouteInitiated,
    EventLog,
    RefundClaimed,
)
from ..exceptions import (
    AdapterNotFound,
    BridgeOperationFailed,
    DeadlineExpired,
    InsufficientFee,
    InvalidAmountIn,
    InvalidDstChain,
    InvalidPath,
    InvalidRouteState,
    InvalidSrcChain,
    RefundUnavailable,
    RouteNotFound,
    Unauthorized,
    ZeroAddress,
)
from ..exchange.router import Router
from ..logger import get_logger
from ..tokens.ledger import TokenLedger
from .adapters import ADAPTER_KINDS, BaseRelayAdapter
from .types import (
    CrossChainRoute,
    DeliveryStatus,
    RouteData,
    RouteHop,
    RouteStatus,
    chain_name,
    encode_payload,
)

logger = get_logger(__name__)

HopSpec = Union[RouteHop, Dict[str, Any]]


# ══════════════════════════════════════════════════════════════════════
#  RELAY REGISTRY
# ══════════════════════════════════════════════════════════════════════

class RelayRegistry:
    """
    Named relay adapters.

    Selection for a destination chain: explicit adapter name, then the
    per-chain default, then the registry default, then the first
    registered adapter serving the chain.
    """

    def __init__(self, default: Optional[str] = None):
        self._adapters: Dict[str, BaseRelayAdapter] = {}
        self._chain_defaults: Dict[int, str] = {}
        self.default = default

    @classmethod
    def from_config(cls, config: BridgeConfig, clock: Optional[Clock] = None) -> "RelayRegistry":
        registry = cls(default=config.default_relay)
        for relay in config.relays:
            registry.register(create_adapter(relay, clock))
        return registry

    def register(self, adapter: BaseRelayAdapter) -> None:
        if adapter.name in self._adapters:
            raise ValueError(f"Relay adapter {adapter.name} already registered")
        self._adapters[adapter.name] = adapter
        if self.default is None:
            self.default = adapter.name
        logger.info(f"Relay registered: {adapter.name} ({adapter.kind}) chains={sorted(adapter.chains)}")

    def unregister(self, name: str) -> BaseRelayAdapter:
        adapter = self.get(name)
        del self._adapters[name]
        self._chain_defaults = {c: n for c, n in self._chain_defaults.items() if n != name}
        if self.default == name:
            self.default = next(iter(self._adapters), None)
        return adapter

    def get(self, name: str) -> BaseRelayAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise AdapterNotFound(f"Relay adapter {name} not registered")
        return adapter

    def set_chain_default(self, chain_id: int, name: str) -> None:
        adapter = self.get(name)
        if not adapter.supports(chain_id):
            raise InvalidDstChain(f"{name} does not serve {chain_name(chain_id)}")
        self._chain_defaults[chain_id] = name

    def select(self, dst_chain: int, preferred: Optional[str] = None) -> BaseRelayAdapter:
        """
        Raises:
            AdapterNotFound: ``preferred`` is not registered
            InvalidDstChain: no adapter serves ``dst_chain``
        """
        if preferred is not None:
            adapter = self.get(preferred)
            if not adapter.supports(dst_chain):
                raise InvalidDstChain(f"{preferred} does not serve {chain_name(dst_chain)}")
            return adapter

        candidates = [self._chain_defaults.get(dst_chain), self.default, *self._adapters]
        for name in candidates:
            if name is not None and name in self._adapters and self._adapters[name].supports(dst_chain):
                return self._adapters[name]
        raise InvalidDstChain(f"No relay serves {chain_name(dst_chain)}")

    def find_message(self, handle: str) -> BaseRelayAdapter:
        for adapter in self._adapters.values():
            if any(m.handle == handle for m in adapter.outbox):
                return adapter
        raise RouteNotFound(f"No relay holds message {handle}")

    @property
    def names(self) -> List[str]:
        return list(self._adapters)

    def adapters(self) -> List[BaseRelayAdapter]:
        return list(self._adapters.values())

    def supported_chains(self) -> List[int]:
        chains = set()
        for adapter in self._adapters.values():
            chains.update(c for c in adapter.chains if adapter.supports(c))
        return sorted(chains)

    def __len__(self) -> int:
        return len(self._adapters)


def create_adapter(relay: RelayConfig, clock: Optional[Clock] = None) -> BaseRelayAdapter:
    adapter_cls = ADAPTER_KINDS.get(relay.kind)
    if adapter_cls is None:
        raise AdapterNotFound(f"Unknown relay kind: {relay.kind}")
    return adapter_cls(
        name=relay.name,
        chains=relay.chains,
        base_fee=relay.base_fee,
        per_byte_fee=relay.per_byte_fee,
        clock=clock,
    )


# ══════════════════════════════════════════════════════════════════════
#  CROSS-CHAIN ROUTER
# ══════════════════════════════════════════════════════════════════════

class CrossChainRouter:
    """
    Coordinates local swaps with cross-chain relay dispatches.

    Every check that can fail runs before any token moves; a call that
    raises before dispatch leaves balances, pools and the route table
    untouched. A failed dispatch is the one exception: the route is kept
    as FAILED. Its escrow is refundable once no accepted hop is still
    live; a hop that later delivers sends the escrow to the relay vault.
    """

    def __init__(
        self,
        ledger: TokenLedger,
        local_router: Router,
        relays: RelayRegistry,
        local_chain_id: int,
        supported_chains: Iterable[int] = DEFAULT_SUPPORTED_CHAINS,
        events: Optional[EventLog] = None,
        clock: Optional[Clock] = None,
        default_deadline_seconds: int = DEFAULT_DEADLINE_SECONDS,
        escrow: str = CROSS_CHAIN_ESCROW_ADDRESS,
        vault: str = RELAY_VAULT_ADDRESS,
    ):
        self.ledger = ledger
        self.local_router = local_router
        self.relays = relays
        self.local_chain_id = int(local_chain_id)
        self.supported_chains = frozenset(int(c) for c in supported_chains) | {self.local_chain_id}
        self.events = events
        self.clock = clock or SystemClock()
        self.default_deadline_seconds = default_deadline_seconds
        self.escrow = escrow
        self.vault = vault
        self._routes: Dict[str, CrossChainRoute] = {}
        self._nonces: Dict[str, int] = {}

    # ── Helpers ─────────────────────────────────────────────────────

    def _emit(self, event) -> None:
        if self.events is not None:
            self.events.emit(event)

    def _check_deadline(self, deadline: Optional[int]) -> int:
        now = self.clock.now()
        if deadline is None:
            return now + self.default_deadline_seconds
        if now > deadline:
            raise DeadlineExpired(f"Transaction deadline {deadline} passed (now={now})")
        return deadline

    def _check_chains(self, src_chain: int, hops: Sequence[RouteHop]) -> None:
        if src_chain not in self.supported_chains:
            raise InvalidSrcChain(f"Source chain {src_chain} is not supported")
        previous = src_chain
        for hop in hops:
            if hop.dst_chain not in self.supported_chains:
                raise InvalidDstChain(f"Destination chain {hop.dst_chain} is not supported")
            if hop.dst_chain == previous:
                raise InvalidDstChain(f"Hop from {chain_name(previous)} to itself")
            hop.src_chain = previous
            previous = hop.dst_chain

    def _payloads(self, route_id: str, hops: Sequence[RouteHop], recipient: str,
                  route_data: RouteData) -> List[bytes]:
        return [
            encode_payload(route_id, i, hop.src_chain, hop.token_out, hop.amount_out_min,
                           recipient, route_data.extra or None)
            for i, hop in enumerate(hops)
        ]

    def _next_route_id(self, caller: str, src_chain: int, hops: Sequence[RouteHop], amount_in: int) -> str:
        nonce = self._nonces.get(caller, 0)
        return CrossChainRoute.compute_id(caller, nonce, src_chain, [h.dst_chain for h in hops], amount_in)

    # ── Fee estimation ──────────────────────────────────────────────

    def estimate_route_fee(
        self,
        caller: str,
        token_in: str,
        amount_in: int,
        hops: Sequence[HopSpec],
        recipient: str,
        src_chain: Optional[int] = None,
        route_data: Optional[RouteData] = None,
    ) -> int:
        """Total native fee the next route with these arguments would pay."""
        route_data = route_data or RouteData()
        src_chain = self.local_chain_id if src_chain is None else src_chain
        legs = self._normalize_hops(hops)
        self._check_chains(src_chain, legs)
        route_id = self._next_route_id(caller, src_chain, legs, amount_in)
        return self._estimate(route_id, legs, recipient, route_data)[0]

    def _estimate(self, route_id: str, hops: Sequence[RouteHop], recipient: str,
                  route_data: RouteData) -> tuple:
        payloads = self._payloads(route_id, hops, recipient, route_data)
        adapters = [self.relays.select(h.dst_chain, h.adapter or route_data.adapter) for h in hops]
        fees = [a.estimate_fee(h.dst_chain, p) for a, h, p in zip(adapters, hops, payloads)]
        return sum(fees), fees, adapters, payloads

    @staticmethod
    def _normalize_hops(hops: Sequence[HopSpec]) -> List[RouteHop]:
        if not hops:
            raise InvalidPath("Route needs at least one hop")
        legs = []
        for hop in hops:
            leg = RouteHop.from_dict(hop) if isinstance(hop, dict) else RouteHop(
                hop.dst_chain, hop.token_out, hop.amount_out_min, hop.adapter,
            )
            if not leg.token_out or leg.token_out == ZERO_ADDRESS:
                raise InvalidPath("Hop token_out is missing")
            if leg.amount_out_min < 0:
                raise InvalidPath("Hop amount_out_min cannot be negative")
            legs.append(leg)
        return legs

    # ── Entry points ────────────────────────────────────────────────

    def execute_cross_chain_route(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        amount_out_min: int,
        recipient: str,
        src_chain: int,
        dst_chain: int,
        route_data: Optional[RouteData] = None,
        value: int = 0,
        deadline: Optional[int] = None,
    ) -> CrossChainRoute:
        """
        Move ``amount_in`` of ``token_in`` from ``src_chain`` to
        ``recipient`` on ``dst_chain`` as ``token_out``.

        ``value`` is the native fee the caller offers; only the relay's
        estimate is taken.

        Raises (in check order):
            DeadlineExpired, InvalidAmountIn, ZeroAddress, InvalidSrcChain,
            InvalidDstChain, InsufficientFee, then InsufficientBalance,
            swap errors, BridgeOperationFailed
        """
        return self._execute(
            caller=caller,
            token_in=token_in,
            amount_in=amount_in,
            hops=[RouteHop(dst_chain, token_out, amount_out_min,
                           route_data.adapter if route_data else None)],
            recipient=recipient,
            src_chain=src_chain,
            route_data=route_data,
            value=value,
            deadline=deadline,
        )

    def execute_multi_path_route(
        self,
        caller: str,
        token_in: str,
        amount_in: int,
        hops: Sequence[HopSpec],
        recipient: str,
        value: int = 0,
        deadline: Optional[int] = None,
        route_data: Optional[RouteData] = None,
    ) -> CrossChainRoute:
        """
        Local leg, then one dispatch per hop in order. Hop *i* leaves from
        the previous hop's chain and its ``amount_out_min`` is hop *i+1*'s
        input. Dispatches are best-effort and never retried.
        """
        return self._execute(
            caller=caller,
            token_in=token_in,
            amount_in=amount_in,
            hops=hops,
            recipient=recipient,
            src_chain=self.local_chain_id,
            route_data=route_data,
            value=value,
            deadline=deadline,
        )

    def _execute(
        self,
        caller: str,
        token_in: str,
        amount_in: int,
        hops: Sequence[HopSpec],
        recipient: str,
        src_chain: int,
        route_data: Optional[RouteData],
        value: int,
        deadline: Optional[int],
    ) -> CrossChainRoute:
        deadline = self._check_deadline(deadline)
        if amount_in <= 0:
            raise InvalidAmountIn("Cross-chain amount must be positive")
        if caller == ZERO_ADDRESS or recipient == ZERO_ADDRESS:
            raise ZeroAddress("Caller and recipient cannot be the zero address")
        legs = self._normalize_hops(hops)
        self._check_chains(src_chain, legs)

        route_data = route_data or RouteData()
        route_id = self._next_route_id(caller, src_chain, legs, amount_in)
        total_fee, fees, adapters, payloads = self._estimate(route_id, legs, recipient, route_data)
        if value < total_fee:
            logger.warning(f"Route {route_id[:18]}: fee {value} below estimate {total_fee}")
            raise InsufficientFee(f"Relay fee estimate is {total_fee}, value supplied is {value}")

        if token_in == NATIVE_TOKEN:
            self.ledger.require_balance(NATIVE_TOKEN, caller, amount_in + total_fee)
        else:
            self.ledger.require_balance(token_in, caller, amount_in)
            self.ledger.require_balance(NATIVE_TOKEN, caller, total_fee)

        now = self.clock.now()
        route = CrossChainRoute(
            id=route_id,
            caller=caller,
            recipient=recipient,
            token_in=token_in,
            amount_in=amount_in,
            src_chain=src_chain,
            hops=legs,
            created_at=now,
            updated_at=now,
            route_data=route_data,
        )

        # Local leg: all-or-nothing.
        with self.ledger.atomic():
            self.ledger.transfer(token_in, caller, self.escrow, amount_in)
            route.escrow_token, route.escrow_amount = token_in, amount_in
            path = route_data.local_path(token_in) if src_chain == self.local_chain_id else None
            if path is not None:
                if path[0] != token_in:
                    raise InvalidPath(f"Local swap path must start with {token_in}")
                amounts = self.local_router.swap_exact_tokens_for_tokens(
                    self.escrow, amount_in, route_data.min_bridge_amount, path, self.escrow, deadline,
                )
                route.escrow_token, route.escrow_amount = path[-1], amounts[-1]
            route.transition(RouteStatus.LOCAL_SWAPPED, now)

        self._routes[route_id] = route
        self._nonces[caller] = self._nonces.get(caller, 0) + 1
        logger.info(
            f"Route {route_id[:18]} initiated by {caller}: {amount_in} {token_in} "
            f"{chain_name(src_chain)} → {' → '.join(chain_name(h.dst_chain) for h in legs)}"
        )
        self._emit(CrossChainRouteInitiated(route_id, caller, token_in, amount_in, src_chain,
                                            route.dst_chain, timestamp=now))

        for index, (hop, adapter, payload, fee) in enumerate(zip(legs, adapters, payloads, fees)):
            try:
                with self.ledger.atomic():
                    self.ledger.transfer(NATIVE_TOKEN, caller, adapter.address, fee)
                    handle = adapter.dispatch(hop.dst_chain, recipient, payload, fee)
            except Exception as e:
                self._fail(route, f"hop {index} rejected by {adapter.name}: {e}")
                held = (
                    "escrow is refundable" if route.refundable
                    else f"escrow is held until hops {route.unresolved_hops} resolve"
                )
                raise BridgeOperationFailed(
                    f"Route {route_id} dispatch rejected at hop {index}; {held}"
                ) from e
            hop.adapter = adapter.name
            hop.message_handle = handle
            hop.fee_paid = fee
            self._emit(CrossChainHopDispatched(route_id, index, adapter.name, hop.dst_chain, handle,
                                               fee, timestamp=self.clock.now()))

        route.transition(RouteStatus.DISPATCHED, self.clock.now())
        return route

    # ── Saga callbacks ──────────────────────────────────────────────

    def get_route(self, route_id: str) -> CrossChainRoute:
        route = self._routes.get(route_id)
        if route is None:
            raise RouteNotFound(f"Route {route_id} not found")
        return route

    def list_routes(self, status: Optional[RouteStatus] = None) -> List[CrossChainRoute]:
        return [r for r in self._routes.values() if status is None or r.status == status]

    def mark_delivered(self, route_id: str) -> CrossChainRoute:
        """Destination confirmed execution; escrow moves to the relay vault."""
        route = self.get_route(route_id)
        route.transition(RouteStatus.DELIVERED, self.clock.now())
        for hop in route.hops:
            hop.delivery = DeliveryStatus.DELIVERED
        if route.escrow_amount > 0:
            self.ledger.transfer(route.escrow_token, self.escrow, self.vault, route.escrow_amount)
        logger.info(f"Route {route_id[:18]} DELIVERED")
        self._emit(CrossChainRouteCompleted(route_id, timestamp=self.clock.now()))
        return route

    def mark_failed(self, route_id: str, reason: str = "destination execution failed") -> CrossChainRoute:
        """Destination reported failure; escrow becomes refundable."""
        route = self.get_route(route_id)
        if route.status != RouteStatus.DISPATCHED:
            raise InvalidRouteState(f"Route {route_id} is {route.status.name}, not DISPATCHED")
        for hop in route.hops:
            if hop.dispatched and hop.delivery == DeliveryStatus.PENDING:
                hop.delivery = DeliveryStatus.FAILED
        self._fail(route, reason)
        self._settle_partial_delivery(route)
        return route

    def _fail(self, route: CrossChainRoute, reason: str) -> None:
        route.transition(RouteStatus.FAILED, self.clock.now())
        route.failure_reason = reason
        logger.warning(f"Route {route.id[:18]} FAILED: {reason}")
        self._emit(CrossChainRouteFailed(route.id, reason, timestamp=self.clock.now()))

    def _settle_partial_delivery(self, route: CrossChainRoute) -> None:
        """A FAILED route with a delivered hop pays its escrow to the vault, not the caller."""
        if route.settled or route.refunded or route.escrow_amount == 0:
            return
        if not any(h.delivery == DeliveryStatus.DELIVERED for h in route.hops):
            return
        self.ledger.transfer(route.escrow_token, self.escrow, self.vault, route.escrow_amount)
        route.settled = True
        route.updated_at = self.clock.now()
        logger.warning(
            f"Route {route.id[:18]} partially delivered: {route.escrow_amount} "
            f"{route.escrow_token} released to the relay vault"
        )

    def sync_status(self, route_id: str) -> RouteStatus:
        """
        Poll the relays for a route's accepted hops.

        On a DISPATCHED route any failed hop fails the route and all hops
        delivered completes it. On a FAILED route the hops that were still
        live are polled until each one either fails (escrow becomes
        refundable) or is delivered (escrow goes to the relay vault).
        """
        route = self.get_route(route_id)
        if route.status == RouteStatus.FAILED:
            for index in route.unresolved_hops:
                hop = route.hops[index]
                hop.delivery = self.relays.get(hop.adapter).delivery_status(hop.message_handle)
            self._settle_partial_delivery(route)
            return route.status
        if route.status != RouteStatus.DISPATCHED:
            return route.status

        for hop in route.hops:
            hop.delivery = self.relays.get(hop.adapter).delivery_status(hop.message_handle)

        failed = [i for i, h in enumerate(route.hops) if h.delivery == DeliveryStatus.FAILED]
        if failed:
            message = self.relays.get(route.hops[failed[0]].adapter).get_message(
                route.hops[failed[0]].message_handle
            )
            self._fail(route, f"hop {failed[0]} failed: {message.failure_reason}")
            self._settle_partial_delivery(route)
        elif all(h.delivery == DeliveryStatus.DELIVERED for h in route.hops):
            self.mark_delivered(route_id)
        return route.status

    def claim_refund(self, route_id: str, caller: str) -> int:
        """
        Return a failed route's escrow to its caller.

        Raises:
            RouteNotFound, Unauthorized, RefundUnavailable
        """
        route = self.get_route(route_id)
        if caller != route.caller:
            raise Unauthorized(f"Only {route.caller} can claim the refund of route {route_id}")
        if not route.refundable:
            detail = ""
            if route.refunded:
                detail = " and already refunded"
            elif route.settled:
                detail = " and its escrow was released to the relay vault"
            elif route.status == RouteStatus.FAILED and route.unresolved_hops:
                detail = f" with hops {route.unresolved_hops} still in flight"
            raise RefundUnavailable(f"Route {route_id} is {route.status.name}{detail}")
        amount = route.escrow_amount
        self.ledger.transfer(route.escrow_token, self.escrow, route.caller, amount)
        route.refunded = True
        route.updated_at = self.clock.now()
        logger.info(f"Route {route_id[:18]} refunded {amount} {route.escrow_token} to {route.caller}")
        self._emit(RefundClaimed(route_id, route.caller, route.escrow_token, amount,
                                 timestamp=self.clock.now()))
        return amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "localChainId": self.local_chain_id,
            "supportedChains": sorted(self.supported_chains),
            "relays": [a.to_dict() for a in self.relays.adapters()],
            "routes": [r.to_dict() for r in self._routes.values()],
        }

    def __repr__(self) -> str:
        return f"<CrossChainRouter chain={self.local_chain_id} routes={len(self._routes)} relays={len(self.relays)}>"
