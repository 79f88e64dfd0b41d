"""
AetherDEX Exceptions

Custom exception classes for the exchange core. Every failing operation
raises one of these; none of them is retried internally.
"""


class AetherError(Exception):
    """Base exception for AetherDEX."""
    pass


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class ValidationError(AetherError):
    """Caller-supplied input is malformed."""
    pass


class ZeroAddress(ValidationError):
    """An address argument is the zero address."""
    pass


class IdenticalAddresses(ValidationError):
    """Both pool tokens are the same address."""
    pass


class InvalidAmountIn(ValidationError):
    """Input amount is zero or negative."""
    pass


class InvalidToken(ValidationError):
    """Token is not part of the pool, or the pair is not ordered."""
    pass


class InvalidFee(ValidationError):
    """Fee is out of range or off the fee grid."""
    pass


class InvalidTickSpacing(ValidationError):
    pass


class InvalidPath(ValidationError):
    """Swap or cross-chain path is malformed."""
    pass


class InvalidPercentage(ValidationError):
    """Basis-point share is zero, above 10000, or overflows the total."""
    pass


class ZeroAmount(ValidationError):
    pass


class InvalidPrice(ValidationError):
    pass


class InvalidTimestamp(ValidationError):
    """Oracle timestamp moved backwards."""
    pass


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

class StateError(AetherError):
    """Operation is not allowed in the current state."""
    pass


class PoolNotFound(StateError):
    pass


class PoolAlreadyExists(StateError):
    pass


class AlreadyInitialized(StateError):
    pass


class NotInitialized(StateError):
    pass


class FeeTierExists(StateError):
    pass


class FeeTierNotFound(StateError):
    pass


class RecipientExists(StateError):
    pass


class RecipientNotFound(StateError):
    pass


class Locked(StateError):
    """Reentrancy detected: the resource is already mid-mutation."""
    pass


class Paused(StateError):
    pass


class Unauthorized(StateError):
    """Caller is neither the owner nor an executed proposal."""
    pass


class ObservationNotFound(StateError):
    """No oracle observation covers the requested timestamp."""
    pass


# ---------------------------------------------------------------------------
# Economic
# ---------------------------------------------------------------------------

class EconomicError(AetherError):
    """Operation would violate a pool or balance invariant."""
    pass


class InsufficientLiquidity(EconomicError):
    pass


class InsufficientLiquidityMinted(EconomicError):
    pass


class InsufficientLiquidityBurned(EconomicError):
    pass


class InsufficientOutputAmount(EconomicError):
    pass


class InsufficientAmount(EconomicError):
    pass


class KInvariantFailed(EconomicError):
    """reserve0 * reserve1 decreased across a swap."""
    pass


class Overflow(EconomicError):
    """Amount or reserve exceeds the 112-bit reserve width."""
    pass


class InsufficientBalance(EconomicError):
    pass


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

class TimingError(AetherError):
    pass


class DeadlineExpired(TimingError):
    pass


class ExecutionDelayNotMet(TimingError):
    pass


class ProposalExpired(TimingError):
    pass


# ---------------------------------------------------------------------------
# Governance
# ---------------------------------------------------------------------------

class GovernanceError(AetherError):
    """Base governance error."""
    pass


class InsufficientVotingPower(GovernanceError):
    pass


class ProposalNotActive(GovernanceError):
    pass


class ProposalNotFound(GovernanceError):
    pass


class ProposalAlreadyVoted(GovernanceError):
    pass


class ProposalNotSucceeded(GovernanceError):
    pass


class ProposalAlreadyExecuted(GovernanceError):
    pass


class DelegationCycle(GovernanceError):
    """Delegation would route voting power back to the delegator."""
    pass


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------

class HookError(AetherError):
    pass


class HookNotRegistered(HookError):
    pass


class HookCallFailed(HookError):
    """The hook raised while being dispatched."""
    pass


class InvalidHookResponse(HookError):
    """The hook returned something other than its own acknowledgement."""
    pass


class HookRejected(HookError):
    """A before-hook vetoed the operation."""
    pass


# ---------------------------------------------------------------------------
# Cross-chain
# ---------------------------------------------------------------------------

class CrossChainError(AetherError):
    """Base cross-chain error."""
    pass


class InvalidSrcChain(CrossChainError):
    pass


class InvalidDstChain(CrossChainError):
    pass


class InsufficientFee(CrossChainError):
    """Attached native value is below the relay fee estimate."""
    pass


class BridgeOperationFailed(CrossChainError):
    pass


class InvalidPayload(CrossChainError):
    pass


class RelayRejected(CrossChainError):
    """The relay adapter refused to accept a message."""
    pass


class RouteNotFound(CrossChainError):
    pass


class RefundUnavailable(CrossChainError):
    pass


class AdapterNotFound(CrossChainError):
    pass


class MessageNotFound(CrossChainError):
    """Relay adapter has no message with the given handle."""
    pass


class InvalidRouteState(CrossChainError):
    """Route callback does not match the route's current saga state."""
    pass
