"""
Proposal Execution

Implements:
  - Payload validation per proposal type (at proposal time and again at
    execution time)
  - GovernanceExecutor: applies a succeeded proposal once its execution
    delay has elapsed and before its grace period runs out
  - Governable parameters (PARAMETER_CHANGE) and an execution log
"""

from typing import Any, Callable, Dict, List

from ..logger import get_logger
from ..constants import BPS
from ..exceptions import (
    ExecutionDelayNotMet,
    InvalidPayload,
    ProposalAlreadyExecuted,
    ProposalExpired,
    ProposalNotSucceeded,
)
from .proposals import Proposal, ProposalState, ProposalType

logger = get_logger(__name__)

PayloadHandler = Callable[[Dict[str, Any]], Dict[str, Any]]


# ══════════════════════════════════════════════════════════════════════
#  PAYLOAD SCHEMAS
# ══════════════════════════════════════════════════════════════════════

# proposal type → (required keys, optional keys)
_PAYLOAD_KEYS: Dict[ProposalType, tuple] = {
    ProposalType.ADD_FEE_TIER:             ({"fee", "tick_spacing"}, {"description"}),
    ProposalType.UPDATE_FEE_TIER:          ({"fee"}, {"tick_spacing", "active", "description"}),
    ProposalType.REMOVE_FEE_TIER:          ({"fee"}, set()),
    ProposalType.SET_POOL_FEE:             ({"pool_id", "fee"}, set()),
    ProposalType.ADD_REVENUE_RECIPIENT:    ({"recipient", "percentage_bps"}, set()),
    ProposalType.REMOVE_REVENUE_RECIPIENT: ({"recipient"}, set()),
}

_INT_KEYS = {"fee", "tick_spacing", "percentage_bps"}


def validate_payload(proposal_type: ProposalType, payload: Dict[str, Any], parameters: Dict[str, Any]) -> None:
    """
    Shape check only; value checks (fee grid, shares) happen when the
    payload is applied.

    Raises:
        InvalidPayload
    """
    if not isinstance(payload, dict) or not payload:
        raise InvalidPayload("Payload must be a non-empty mapping")

    if proposal_type == ProposalType.PARAMETER_CHANGE:
        unknown = set(payload) - set(parameters)
        if unknown:
            raise InvalidPayload(f"Unknown governance parameters: {sorted(unknown)}")
        for key, value in payload.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidPayload(f"Parameter {key} must be a non-negative integer")
        if "quorum_bps" in payload and payload["quorum_bps"] > BPS:
            raise InvalidPayload(f"quorum_bps must be <= {BPS}")
        if payload.get("voting_period") == 0:
            raise InvalidPayload("voting_period must be > 0")
        return

    required, optional = _PAYLOAD_KEYS[ProposalType(proposal_type)]
    missing = required - set(payload)
    if missing:
        raise InvalidPayload(f"{ProposalType(proposal_type).name} payload missing {sorted(missing)}")
    extra = set(payload) - required - optional
    if extra:
        raise InvalidPayload(f"{ProposalType(proposal_type).name} payload has unknown keys {sorted(extra)}")
    for key in _INT_KEYS & set(payload):
        value = payload[key]
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidPayload(f"{key} must be an integer")


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE EXECUTOR
# ══════════════════════════════════════════════════════════════════════

class GovernanceExecutor:
    """
    Executes succeeded proposals.

    Manages the governable parameters and dispatches every other proposal
    type to a handler registered by the owning FeeGovernance.
    """

    def __init__(self, initial_parameters: Dict[str, Any]):
        self._parameters: Dict[str, Any] = dict(initial_parameters)
        self._execution_log: List[Dict[str, Any]] = []
        self._handlers: Dict[ProposalType, PayloadHandler] = {}

    # ── Parameters ────────────────────────────────────────────────────

    def get_parameter(self, key: str) -> Any:
        return self._parameters.get(key)

    @property
    def parameters(self) -> Dict[str, Any]:
        return dict(self._parameters)

    # ── Handlers ──────────────────────────────────────────────────────

    def register_executor(self, proposal_type: ProposalType, handler: PayloadHandler) -> None:
        """Register the function that applies ``proposal_type`` payloads."""
        self._handlers[proposal_type] = handler

    def validate(self, proposal_type: ProposalType, payload: Dict[str, Any]) -> None:
        validate_payload(proposal_type, payload, self._parameters)
        if proposal_type != ProposalType.PARAMETER_CHANGE and proposal_type not in self._handlers:
            raise InvalidPayload(f"No executor registered for {ProposalType(proposal_type).name}")

    # ── Execute ───────────────────────────────────────────────────────

    def execute(self, proposal: Proposal, now: int) -> Dict[str, Any]:
        """
        Apply ``proposal``.

        Checks, in order: already executed, expired, succeeded, execution
        delay. The payload is applied before the proposal is marked
        executed, so a failing payload leaves the proposal executable.
        """
        if proposal.executed:
            raise ProposalAlreadyExecuted(f"Proposal #{proposal.id} already executed")
        state = proposal.state(now)
        if state == ProposalState.EXPIRED:
            raise ProposalExpired(f"Proposal #{proposal.id} expired at {proposal.expires_at}")
        if state != ProposalState.SUCCEEDED:
            raise ProposalNotSucceeded(f"Proposal #{proposal.id} is {state.name}")
        if now < proposal.eta:
            raise ExecutionDelayNotMet(
                f"Proposal #{proposal.id} executable at {proposal.eta} "
                f"(remaining={proposal.eta - now}s)"
            )

        self.validate(proposal.proposal_type, proposal.payload)
        changes = self._apply_proposal(proposal)

        proposal.executed = True
        proposal.executed_at = now
        self._execution_log.append({
            "proposalId": proposal.id,
            "proposalType": proposal.proposal_type.name,
            "changes": changes,
            "executedAt": now,
        })
        logger.info(f"Proposal #{proposal.id} EXECUTED: {proposal.proposal_type.name} {changes}")
        return changes

    def _apply_proposal(self, proposal: Proposal) -> Dict[str, Any]:
        if proposal.proposal_type == ProposalType.PARAMETER_CHANGE:
            changes: Dict[str, Any] = {}
            for key, value in proposal.payload.items():
                old = self._parameters.get(key)
                self._parameters[key] = value
                changes[key] = {"old": old, "new": value}
            return changes
        return self._handlers[proposal.proposal_type](dict(proposal.payload))

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def execution_log(self) -> List[Dict[str, Any]]:
        return list(self._execution_log)

    def execution_count(self) -> int:
        return len(self._execution_log)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": dict(self._parameters),
            "executionLog": list(self._execution_log),
            "executors": [t.name for t in self._handlers],
        }

    def __repr__(self) -> str:
        return (
            f"<GovernanceExecutor params={len(self._parameters)} "
            f"executed={len(self._execution_log)}>"
        )
