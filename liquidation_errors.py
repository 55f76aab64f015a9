"""Error taxonomy for flash liquidations.

Every error is fatal to the atomic unit it is raised in; nothing here is
retried internally.
"""


class LiquidationError(RuntimeError):
    pass


# --- Authorization ---

class AuthorizationError(LiquidationError):
    pass


class AlreadyInitialized(AuthorizationError):
    pass


class Unauthorized(AuthorizationError):
    pass


class UnauthorizedLender(AuthorizationError):
    pass


# --- Request validation ---

class RequestValidationError(LiquidationError):
    pass


class LoanTooLarge(RequestValidationError):
    pass


class LoanRequestRejected(RequestValidationError):
    pass


class CallbackContextMismatch(RequestValidationError):
    pass


class UnsupportedAsset(RequestValidationError):
    pass


# --- Execution (a collaborator refused a required step) ---

class ExecutionError(LiquidationError):
    pass


class RepaymentFailed(ExecutionError):
    pass


class ReclaimFailed(ExecutionError):
    pass


class ConversionFailed(ExecutionError):
    pass


# --- Routing ---

class RoutingError(LiquidationError):
    pass


class PoolAssetMismatch(RoutingError):
    pass


class EmptyReserves(RoutingError):
    pass


class ZeroOutput(RoutingError):
    pass


# --- Policy ---

class PolicyError(LiquidationError):
    pass


class InsufficientProfit(PolicyError):
    pass


# --- Collaborator side ---

class ProtocolError(RuntimeError):
    """A collaborator (token, pool, lender, lending protocol) reverted."""


class UnknownContract(ProtocolError):
    pass


class InsufficientBalance(ProtocolError):
    pass


class InsufficientAllowance(ProtocolError):
    pass


class InvariantViolation(ProtocolError):
    pass
