"""
Voting Engine

Implements:
  - Owner-managed voting power table
  - Transitive delegation: power flows to the end of the delegation chain
  - Cycle rejection on delegate()
  - For / Against / Abstain votes (abstain counts toward quorum)
  - One ballot per address per proposal; each account's power is counted
    at most once per proposal even if delegation changes mid-vote
"""

from typing import Any, Dict, List

from ..logger import get_logger
from ..exceptions import (
    DelegationCycle,
    InsufficientVotingPower,
    ProposalAlreadyVoted,
    ProposalNotActive,
    ZeroAddress,
)
from ..constants import ZERO_ADDRESS
from .proposals import Proposal, ProposalState, Receipt, VoteType

logger = get_logger(__name__)


class VotingEngine:
    """
    Voting power, delegation and ballot casting.

    Power is not snapshotted per account; double counting is prevented by
    recording, per proposal, every account whose power has been used.
    """

    def __init__(self) -> None:
        self._power: Dict[str, int] = {}
        self._delegates: Dict[str, str] = {}  # delegator → delegatee

    # ── Power table ───────────────────────────────────────────────────

    def set_voting_power(self, account: str, power: int) -> None:
        if account == ZERO_ADDRESS:
            raise ZeroAddress("Cannot assign voting power to the zero address")
        if power < 0:
            raise InsufficientVotingPower("Voting power cannot be negative")
        if power == 0:
            self._power.pop(account, None)
        else:
            self._power[account] = power
        logger.info(f"Voting power: {account} = {power}")

    def own_power(self, account: str) -> int:
        return self._power.get(account, 0)

    @property
    def total_voting_power(self) -> int:
        return sum(self._power.values())

    # ── Delegation ────────────────────────────────────────────────────

    def delegate(self, delegator: str, delegatee: str) -> None:
        """
        Route ``delegator``'s power to ``delegatee`` (and onwards along
        ``delegatee``'s own delegation). Delegating to oneself clears it.

        Raises:
            DelegationCycle: the chain from ``delegatee`` leads back to
                ``delegator``
        """
        if delegatee == ZERO_ADDRESS:
            raise ZeroAddress("Cannot delegate to the zero address")
        if delegatee == delegator:
            self.undelegate(delegator)
            return

        # The existing graph is acyclic, so walking the chain terminates.
        node = delegatee
        while True:
            if node == delegator:
                raise DelegationCycle(f"Delegating {delegator} → {delegatee} creates a cycle")
            if node not in self._delegates:
                break
            node = self._delegates[node]

        self._delegates[delegator] = delegatee
        logger.info(f"Delegation: {delegator} → {delegatee}")

    def undelegate(self, delegator: str) -> None:
        if self._delegates.pop(delegator, None) is not None:
            logger.info(f"Delegation cleared: {delegator}")

    def delegate_of(self, account: str) -> str:
        """Final recipient of ``account``'s power."""
        node = account
        while node in self._delegates:
            node = self._delegates[node]
        return node

    def delegators_of(self, account: str) -> List[str]:
        """Accounts (including ``account`` itself) whose power ends at ``account``."""
        return [a for a in self._power if self.delegate_of(a) == account]

    def get_voting_power(self, account: str) -> int:
        return sum(self._power[a] for a in self.delegators_of(account))

    # ── Voting ────────────────────────────────────────────────────────

    def cast_vote(self, proposal: Proposal, voter: str, support: VoteType, now: int) -> Receipt:
        """
        Cast ``voter``'s ballot with all not-yet-counted power routed to it.

        Raises:
            ProposalNotActive, ProposalAlreadyVoted, InsufficientVotingPower
        """
        support = VoteType(support)
        state = proposal.state(now)
        if state != ProposalState.ACTIVE:
            raise ProposalNotActive(f"Proposal #{proposal.id} is {state.name}, not ACTIVE")
        if proposal.has_voted(voter):
            raise ProposalAlreadyVoted(f"{voter} has already voted on proposal #{proposal.id}")

        sources = [a for a in self.delegators_of(voter) if a not in proposal.counted]
        weight = sum(self._power[a] for a in sources)
        if weight <= 0:
            raise InsufficientVotingPower(f"{voter} has no voting power on proposal #{proposal.id}")

        receipt = Receipt(proposal.id, voter, support, weight, timestamp=now)
        proposal.receipts[voter] = receipt
        proposal.counted.update(sources)
        if support == VoteType.FOR:
            proposal.for_votes += weight
        elif support == VoteType.AGAINST:
            proposal.against_votes += weight
        else:
            proposal.abstain_votes += weight

        logger.info(f"Vote: {voter} → {support.name} on Proposal #{proposal.id} (power={weight})")
        return receipt

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalVotingPower": self.total_voting_power,
            "accounts": dict(self._power),
            "delegations": dict(self._delegates),
        }

    def __repr__(self) -> str:
        return f"<VotingEngine accounts={len(self._power)} delegations={len(self._delegates)}>"
