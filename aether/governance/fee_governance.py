"""
Fee Governance

Single entry point for everything governed:
  - Fee tier CRUD and per-pool fees (owner or executed proposal)
  - Dynamic fee calculation for DynamicFeeHook
  - Revenue recipients and distribution
  - Voting power, delegation, proposals, votes, cancellation, execution
  - Emergency pause of revenue distribution
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from ..logger import get_logger
from ..clock import Clock, SystemClock
from ..config.loader import GovernanceConfig
from ..constants import ZERO_ADDRESS
from ..events import (
    EventLog,
    FeeTierAdded,
    FeeTierRemoved,
    FeeTierUpdated,
    FeeUpdated,
    ProposalCanceled,
    ProposalCreated,
    ProposalExecuted,
    VoteCast,
)
from ..exceptions import (
    InsufficientVotingPower,
    ProposalAlreadyExecuted,
    ProposalNotActive,
    ProposalNotFound,
    Unauthorized,
    ZeroAddress,
)
from ..tokens.ledger import TokenLedger
from .execution import GovernanceExecutor
from .fees import FeeTier, FeeTierCatalog, PoolFeeRegistry, PoolMetrics, validate_fee
from .proposals import Proposal, ProposalState, ProposalType, Receipt, VoteType
from .revenue import RevenueDistributor, RevenueShare
from .voting import VotingEngine

logger = get_logger(__name__)


class FeeGovernance:
    """
    Owner- and proposal-controlled fee registry.

    Mutations marked owner-only accept either the owner as ``caller`` or
    run while a proposal is being executed.
    """

    def __init__(
        self,
        owner: str,
        ledger: TokenLedger,
        clock: Optional[Clock] = None,
        events: Optional[EventLog] = None,
        config: Optional[GovernanceConfig] = None,
    ):
        if owner == ZERO_ADDRESS:
            raise ZeroAddress("Owner cannot be the zero address")
        self.config = config or GovernanceConfig(owner=owner)
        self.owner = owner
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.events = events

        self.catalog = FeeTierCatalog()
        self.pool_fees = PoolFeeRegistry()
        self.revenue = RevenueDistributor(ledger, self.config.treasury, events, self.clock)
        self.voting = VotingEngine()
        self.executor = GovernanceExecutor(self.config.parameters())
        self._register_executors()

        self._proposals: Dict[int, Proposal] = {}
        self._next_proposal_id = 1
        self._executing = False

    # ── Access control ────────────────────────────────────────────────

    def _only_owner(self, caller: str) -> None:
        if self._executing:
            return
        if caller != self.owner:
            logger.warning(f"Unauthorized governance call by {caller}")
            raise Unauthorized(f"{caller} is not the governance owner")

    @contextmanager
    def _as_governance(self) -> Iterator[None]:
        self._executing = True
        try:
            yield
        finally:
            self._executing = False

    def _emit(self, event) -> None:
        if self.events is not None:
            self.events.emit(event)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if new_owner == ZERO_ADDRESS:
            raise ZeroAddress("Owner cannot be the zero address")
        logger.warning(f"Governance ownership: {self.owner} → {new_owner}")
        self.owner = new_owner

    # ── Fee tiers ─────────────────────────────────────────────────────

    @staticmethod
    def validate_fee(fee: int) -> bool:
        return validate_fee(fee)

    def add_fee_tier(self, caller: str, fee: int, tick_spacing: int, description: str = "") -> FeeTier:
        self._only_owner(caller)
        tier = self.catalog.add_fee_tier(fee, tick_spacing, description)
        self._emit(FeeTierAdded(fee, tick_spacing, timestamp=self.clock.now()))
        return tier

    def update_fee_tier(
        self,
        caller: str,
        fee: int,
        tick_spacing: Optional[int] = None,
        active: Optional[bool] = None,
        description: Optional[str] = None,
    ) -> FeeTier:
        self._only_owner(caller)
        tier = self.catalog.update_fee_tier(fee, tick_spacing, active, description)
        self._emit(FeeTierUpdated(fee, tier.tick_spacing, tier.active, timestamp=self.clock.now()))
        return tier

    def remove_fee_tier(self, caller: str, fee: int) -> FeeTier:
        self._only_owner(caller)
        tier = self.catalog.remove_fee_tier(fee)
        self._emit(FeeTierRemoved(fee, timestamp=self.clock.now()))
        return tier

    def get_fee_tier(self, fee: int) -> FeeTier:
        return self.catalog.get_fee_tier(fee)

    def list_fee_tiers(self, active_only: bool = False) -> List[FeeTier]:
        return self.catalog.list_fee_tiers(active_only)

    def is_active_tier(self, fee: int) -> bool:
        return self.catalog.is_active_tier(fee)

    # ── Pool fees ─────────────────────────────────────────────────────

    def register_pool(self, pool_id: str, fee: int) -> None:
        """Record a new pool's base fee (called by the engine on creation)."""
        self.pool_fees.register_pool(pool_id, fee)

    def set_pool_fee(self, caller: str, pool_id: str, fee: int) -> int:
        self._only_owner(caller)
        old = self.pool_fees.set_pool_fee(pool_id, fee)
        self._emit(FeeUpdated(pool_id, old, fee, timestamp=self.clock.now()))
        return old

    def get_pool_fee(self, pool_id: str) -> int:
        return self.pool_fees.get_pool_fee(pool_id)

    def set_pool_metrics(self, caller: str, pool_id: str, volatility: int, liquidity: int, activity: int) -> PoolMetrics:
        self._only_owner(caller)
        return self.pool_fees.set_pool_metrics(pool_id, volatility, liquidity, activity)

    def calculate_fee(self, pool_id: str, amount: int) -> int:
        return self.pool_fees.calculate_fee(pool_id, amount)

    # ── Revenue ───────────────────────────────────────────────────────

    def add_revenue_recipient(self, caller: str, recipient: str, percentage_bps: int) -> RevenueShare:
        self._only_owner(caller)
        return self.revenue.add_revenue_recipient(recipient, percentage_bps)

    def update_revenue_recipient(
        self,
        caller: str,
        recipient: str,
        percentage_bps: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> RevenueShare:
        self._only_owner(caller)
        return self.revenue.update_revenue_recipient(recipient, percentage_bps, active)

    def remove_revenue_recipient(self, caller: str, recipient: str) -> RevenueShare:
        self._only_owner(caller)
        return self.revenue.remove_revenue_recipient(recipient)

    def distribute_revenue(self, caller: str, token: str, amount: int) -> Dict[str, int]:
        return self.revenue.distribute_revenue(caller, token, amount)

    def total_distributed(self, token: str) -> int:
        return self.revenue.total_distributed(token)

    def pause(self, caller: str) -> None:
        self._only_owner(caller)
        self.revenue.pause()

    def unpause(self, caller: str) -> None:
        self._only_owner(caller)
        self.revenue.unpause()

    @property
    def paused(self) -> bool:
        return self.revenue.is_paused

    # ── Voting power ──────────────────────────────────────────────────

    def set_voting_power(self, caller: str, account: str, power: int) -> None:
        self._only_owner(caller)
        self.voting.set_voting_power(account, power)

    def delegate(self, delegator: str, delegatee: str) -> None:
        self.voting.delegate(delegator, delegatee)

    def undelegate(self, delegator: str) -> None:
        self.voting.undelegate(delegator)

    def get_voting_power(self, account: str) -> int:
        return self.voting.get_voting_power(account)

    @property
    def total_voting_power(self) -> int:
        return self.voting.total_voting_power

    # ── Proposals ─────────────────────────────────────────────────────

    def propose(
        self,
        proposer: str,
        proposal_type: ProposalType,
        payload: Dict[str, Any],
        description: str = "",
    ) -> Proposal:
        """
        Open a proposal. Voting starts after ``voting_delay`` and lasts
        ``voting_period``; quorum and total power are snapshotted now.
        """
        proposal_type = ProposalType(proposal_type)
        params = self.executor.parameters
        power = self.voting.get_voting_power(proposer)
        if power <= 0 or power < params["proposal_threshold"]:
            raise InsufficientVotingPower(
                f"{proposer} has {power} voting power, threshold is {params['proposal_threshold']}"
            )
        self.executor.validate(proposal_type, payload)

        now = self.clock.now()
        start = now + params["voting_delay"]
        proposal = Proposal(
            id=self._next_proposal_id,
            proposer=proposer,
            proposal_type=proposal_type,
            payload=dict(payload),
            description=description,
            start=start,
            end=start + params["voting_period"],
            execution_delay=params["execution_delay"],
            grace_period=params["grace_period"],
            quorum_bps=params["quorum_bps"],
            total_voting_power_snapshot=self.voting.total_voting_power,
            created_at=now,
        )
        self._proposals[proposal.id] = proposal
        self._next_proposal_id += 1

        logger.info(
            f"Proposal #{proposal.id} created by {proposer}: {proposal_type.name} "
            f"(voting {proposal.start}..{proposal.end})"
        )
        self._emit(ProposalCreated(
            proposal.id, proposer, proposal_type.name, proposal.start, proposal.end,
            description, timestamp=now,
        ))
        return proposal

    def get_proposal(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound(f"Proposal #{proposal_id} not found")
        return proposal

    def list_proposals(self) -> List[Proposal]:
        return list(self._proposals.values())

    def state(self, proposal_id: int) -> ProposalState:
        return self.get_proposal(proposal_id).state(self.clock.now())

    def cast_vote(self, voter: str, proposal_id: int, support: VoteType) -> Receipt:
        proposal = self.get_proposal(proposal_id)
        now = self.clock.now()
        receipt = self.voting.cast_vote(proposal, voter, support, now)
        self._emit(VoteCast(proposal_id, voter, receipt.support.name, receipt.weight, timestamp=now))
        return receipt

    def cancel(self, caller: str, proposal_id: int) -> Proposal:
        self._only_owner(caller)
        proposal = self.get_proposal(proposal_id)
        if proposal.executed:
            raise ProposalAlreadyExecuted(f"Proposal #{proposal_id} already executed")
        if proposal.canceled:
            raise ProposalNotActive(f"Proposal #{proposal_id} already canceled")
        proposal.canceled = True
        logger.warning(f"Proposal #{proposal_id} CANCELED by {caller}")
        self._emit(ProposalCanceled(proposal_id, timestamp=self.clock.now()))
        return proposal

    def execute(self, proposal_id: int) -> Dict[str, Any]:
        """Execute a succeeded proposal; anyone may call this."""
        proposal = self.get_proposal(proposal_id)
        now = self.clock.now()
        with self._as_governance():
            changes = self.executor.execute(proposal, now)
        self._emit(ProposalExecuted(proposal_id, timestamp=now))
        return changes

    # ── Payload handlers ──────────────────────────────────────────────

    def _register_executors(self) -> None:
        ex = self.executor
        ex.register_executor(ProposalType.ADD_FEE_TIER, self._exec_add_fee_tier)
        ex.register_executor(ProposalType.UPDATE_FEE_TIER, self._exec_update_fee_tier)
        ex.register_executor(ProposalType.REMOVE_FEE_TIER, self._exec_remove_fee_tier)
        ex.register_executor(ProposalType.SET_POOL_FEE, self._exec_set_pool_fee)
        ex.register_executor(ProposalType.ADD_REVENUE_RECIPIENT, self._exec_add_recipient)
        ex.register_executor(ProposalType.REMOVE_REVENUE_RECIPIENT, self._exec_remove_recipient)

    def _exec_add_fee_tier(self, p: Dict[str, Any]) -> Dict[str, Any]:
        tier = self.add_fee_tier(self.owner, p["fee"], p["tick_spacing"], p.get("description", ""))
        return {"feeTier": tier.to_dict()}

    def _exec_update_fee_tier(self, p: Dict[str, Any]) -> Dict[str, Any]:
        tier = self.update_fee_tier(
            self.owner, p["fee"], p.get("tick_spacing"), p.get("active"), p.get("description"),
        )
        return {"feeTier": tier.to_dict()}

    def _exec_remove_fee_tier(self, p: Dict[str, Any]) -> Dict[str, Any]:
        tier = self.remove_fee_tier(self.owner, p["fee"])
        return {"removedFeeTier": tier.fee}

    def _exec_set_pool_fee(self, p: Dict[str, Any]) -> Dict[str, Any]:
        old = self.set_pool_fee(self.owner, p["pool_id"], p["fee"])
        return {"poolId": p["pool_id"], "fee": {"old": old, "new": p["fee"]}}

    def _exec_add_recipient(self, p: Dict[str, Any]) -> Dict[str, Any]:
        share = self.add_revenue_recipient(self.owner, p["recipient"], p["percentage_bps"])
        return {"recipient": share.to_dict()}

    def _exec_remove_recipient(self, p: Dict[str, Any]) -> Dict[str, Any]:
        share = self.remove_revenue_recipient(self.owner, p["recipient"])
        return {"removedRecipient": share.recipient}

    def to_dict(self) -> Dict[str, Any]:
        now = self.clock.now()
        return {
            "owner": self.owner,
            "paused": self.paused,
            "feeTiers": [t.to_dict() for t in self.catalog.list_fee_tiers()],
            "pools": self.pool_fees.to_dict(),
            "revenue": self.revenue.to_dict(),
            "voting": self.voting.to_dict(),
            "proposals": [p.to_dict(now) for p in self._proposals.values()],
            "executor": self.executor.to_dict(),
        }
