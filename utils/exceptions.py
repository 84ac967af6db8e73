"""
Error taxonomy for routing, ledger and settlement failures.

Every error carries an ErrorKind so callers (and the HTTP layer) can react to
the kind of failure without inspecting messages.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_AMOUNT = "invalid_amount"
    INVALID_REQUEST = "invalid_request"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    NO_BALANCES = "no_balances"
    NO_ELIGIBLE_CHAINS = "no_eligible_chains"
    NO_VIABLE_ROUTE = "no_viable_route"
    SETTLEMENT_FAILED = "settlement_failed"
    LEDGER_CONFLICT = "ledger_conflict"
    NOT_FOUND = "not_found"


ROUTING_KINDS = frozenset({
    ErrorKind.NO_BALANCES,
    ErrorKind.NO_ELIGIBLE_CHAINS,
    ErrorKind.NO_VIABLE_ROUTE,
})


class StableRouteError(Exception):
    """Base class for all service errors"""

    default_kind = ErrorKind.INVALID_REQUEST
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, kind: Optional[ErrorKind] = None):
        self.message = message or self.default_message
        self.kind = kind or self.default_kind
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.kind.value, "message": self.message}


class InvalidAmount(StableRouteError):
    default_kind = ErrorKind.INVALID_AMOUNT
    default_message = "Transfer amount must be greater than zero"


class InvalidTransferRequest(StableRouteError):
    default_kind = ErrorKind.INVALID_REQUEST
    default_message = "Sender and receiver must differ"


class InsufficientBalance(StableRouteError):
    default_kind = ErrorKind.INSUFFICIENT_BALANCE
    default_message = "Insufficient balance for this operation"


class RoutingUnavailable(StableRouteError):
    """No feasible path exists (no balances, no eligible chains or no viable route)"""

    default_kind = ErrorKind.NO_VIABLE_ROUTE
    default_message = "No viable route could be found for this transfer"

    def __init__(self, message: Optional[str] = None, kind: Optional[ErrorKind] = None):
        if kind is not None and kind not in ROUTING_KINDS:
            raise ValueError(f"{kind} is not a routing error kind")
        super().__init__(message, kind)


class SettlementFailed(StableRouteError):
    default_kind = ErrorKind.SETTLEMENT_FAILED
    default_message = "Settlement call failed"


class LedgerConflict(StableRouteError):
    default_kind = ErrorKind.LEDGER_CONFLICT
    default_message = "Concurrent balance update conflict"


class NotFound(StableRouteError):
    default_kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


_KIND_TO_ERROR = {
    ErrorKind.INVALID_AMOUNT: InvalidAmount,
    ErrorKind.INVALID_REQUEST: InvalidTransferRequest,
    ErrorKind.INSUFFICIENT_BALANCE: InsufficientBalance,
    ErrorKind.NO_BALANCES: RoutingUnavailable,
    ErrorKind.NO_ELIGIBLE_CHAINS: RoutingUnavailable,
    ErrorKind.NO_VIABLE_ROUTE: RoutingUnavailable,
    ErrorKind.SETTLEMENT_FAILED: SettlementFailed,
    ErrorKind.LEDGER_CONFLICT: LedgerConflict,
    ErrorKind.NOT_FOUND: NotFound,
}


def error_for(kind: ErrorKind, message: str) -> StableRouteError:
    """Build the exception matching an error kind"""
    return _KIND_TO_ERROR[kind](message, kind)
