"""
AetherDEX Fee Governance

Modules:
    fees            Fee validation, fee tier catalog, pool fees and dynamic fee
    revenue         Revenue recipients and distribution
    proposals       Proposal types, derived lifecycle state, vote receipts
    voting          Voting power, delegation and ballots
    execution       Payload validation and proposal execution
    fee_governance  FeeGovernance facade
"""

from .execution import GovernanceExecutor, validate_payload
from .fee_governance import FeeGovernance
from .fees import (
    FeeTier,
    FeeTierCatalog,
    PoolFeeRegistry,
    PoolMetrics,
    snap_fee,
    validate_fee,
)
from .proposals import Proposal, ProposalState, ProposalType, Receipt, VoteType
from .revenue import RevenueDistributor, RevenueShare
from .voting import VotingEngine

__all__ = [
    # fees
    "FeeTier",
    "FeeTierCatalog",
    "PoolFeeRegistry",
    "PoolMetrics",
    "snap_fee",
    "validate_fee",
    # revenue
    "RevenueDistributor",
    "RevenueShare",
    # proposals
    "Proposal",
    "ProposalState",
    "ProposalType",
    "Receipt",
    "VoteType",
    # voting
    "VotingEngine",
    # execution
    "GovernanceExecutor",
    "validate_payload",
    # facade
    "FeeGovernance",
]
