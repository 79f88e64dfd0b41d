"""
Governance Proposals

Defines proposal types, vote receipts and the Proposal dataclass. A
proposal's state is never stored: it is derived from the clock, the tally
and the executed/canceled flags.

Lifecycle:
    PENDING ──start──▶ ACTIVE ──end──▶ DEFEATED
                                  └──▶ SUCCEEDED ──execute──▶ EXECUTED
                                            └──grace elapsed──▶ EXPIRED
    (owner) any non-executed state ──▶ CANCELED
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Set

from ..constants import BPS


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalType(IntEnum):
    """What an executed proposal changes."""
    ADD_FEE_TIER = 1
    UPDATE_FEE_TIER = 2
    REMOVE_FEE_TIER = 3
    SET_POOL_FEE = 4
    ADD_REVENUE_RECIPIENT = 5
    REMOVE_REVENUE_RECIPIENT = 6
    PARAMETER_CHANGE = 7


class ProposalState(IntEnum):
    PENDING = 0
    ACTIVE = 1
    CANCELED = 2
    DEFEATED = 3
    SUCCEEDED = 4
    EXPIRED = 5
    EXECUTED = 6


class VoteType(IntEnum):
    AGAINST = 0
    FOR = 1
    ABSTAIN = 2


# ══════════════════════════════════════════════════════════════════════
#  RECEIPTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Receipt:
    """A single voter's ballot on a proposal."""
    proposal_id: int
    voter: str
    support: VoteType
    weight: int
    timestamp: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "support": self.support.name,
            "weight": self.weight,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    Fee-governance proposal.

    Fields:
        start / end:                   Voting window, inclusive
        execution_delay:               Seconds after ``end`` before execution
        grace_period:                  Seconds after the ETA before expiry
        quorum_bps:                    Quorum snapshot taken at creation
        total_voting_power_snapshot:   Total voting power at creation
        counted:                       Accounts whose power has been cast
    """
    id: int
    proposer: str
    proposal_type: ProposalType
    payload: Dict[str, Any]
    description: str
    start: int
    end: int
    execution_delay: int
    grace_period: int
    quorum_bps: int
    total_voting_power_snapshot: int
    for_votes: int = 0
    against_votes: int = 0
    abstain_votes: int = 0
    executed: bool = False
    canceled: bool = False
    created_at: int = 0
    executed_at: int = 0
    receipts: Dict[str, Receipt] = field(default_factory=dict)
    counted: Set[str] = field(default_factory=set, repr=False)

    # ── Tally ─────────────────────────────────────────────────────────

    @property
    def total_votes(self) -> int:
        return self.for_votes + self.against_votes + self.abstain_votes

    @property
    def quorum_votes(self) -> int:
        return self.quorum_bps * self.total_voting_power_snapshot // BPS

    @property
    def quorum_reached(self) -> bool:
        # Compared without division so the threshold is never rounded down.
        return self.total_votes * BPS >= self.quorum_bps * self.total_voting_power_snapshot

    @property
    def vote_succeeded(self) -> bool:
        return self.for_votes > self.against_votes and self.quorum_reached

    @property
    def eta(self) -> int:
        """Earliest execution time."""
        return self.end + self.execution_delay

    @property
    def expires_at(self) -> int:
        return self.eta + self.grace_period

    # ── State ─────────────────────────────────────────────────────────

    def state(self, now: int) -> ProposalState:
        if self.canceled:
            return ProposalState.CANCELED
        if self.executed:
            return ProposalState.EXECUTED
        if now < self.start:
            return ProposalState.PENDING
        if now <= self.end:
            return ProposalState.ACTIVE
        if not self.vote_succeeded:
            return ProposalState.DEFEATED
        if now >= self.expires_at:
            return ProposalState.EXPIRED
        return ProposalState.SUCCEEDED

    def has_voted(self, voter: str) -> bool:
        return voter in self.receipts

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "proposer": self.proposer,
            "proposalType": self.proposal_type.name,
            "payload": dict(self.payload),
            "description": self.description,
            "start": self.start,
            "end": self.end,
            "eta": self.eta,
            "expiresAt": self.expires_at,
            "forVotes": self.for_votes,
            "againstVotes": self.against_votes,
            "abstainVotes": self.abstain_votes,
            "quorumVotes": self.quorum_votes,
            "totalVotingPowerSnapshot": self.total_voting_power_snapshot,
            "executed": self.executed,
            "canceled": self.canceled,
            "receipts": [r.to_dict() for r in self.receipts.values()],
        }
        if now is not None:
            data["state"] = self.state(now).name
        return data

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.id} type={self.proposal_type.name} "
            f"for={self.for_votes} against={self.against_votes} abstain={self.abstain_votes}>"
        )
