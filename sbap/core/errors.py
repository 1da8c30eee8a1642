"""
Contract errors.

Handlers raise a ContractError for conditions that must roll back the
current invocation. The host rolls back the invocation's savepoint and
either propagates the error to the caller or, for sub-messages that asked
for a reply on error, hands it to the parent contract's reply handler.

Conditions that are recovered locally (a refunded bid, a rejected
consignment) are not errors: they are answered with a Failure status.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of contract failure."""
    UNAUTHORIZED = "unauthorized"
    ALREADY_CLOSED = "already_closed"
    BELOW_MINIMUM_BID = "below_minimum_bid"
    ZERO_AMOUNT = "zero_amount"
    SAME_TOKEN_PAIR = "same_token_pair"
    INSUFFICIENT_ALLOWANCE_OR_BALANCE = "insufficient_allowance_or_balance"
    AUTHENTICATION_FAILED = "authentication_failed"
    STOPPED = "stopped"
    TRANSFERS_STOPPED = "transfers_stopped"
    INVALID_MESSAGE = "invalid_message"
    NOT_FOUND = "not_found"


class ContractError(Exception):
    """Base class for errors raised by contract handlers."""

    kind: ErrorKind = ErrorKind.INVALID_MESSAGE

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value.replace("_", " "))
        self.message = str(self)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class Unauthorized(ContractError):
    kind = ErrorKind.UNAUTHORIZED


class AlreadyClosed(ContractError):
    kind = ErrorKind.ALREADY_CLOSED


class BelowMinimumBid(ContractError):
    kind = ErrorKind.BELOW_MINIMUM_BID


class ZeroAmount(ContractError):
    kind = ErrorKind.ZERO_AMOUNT


class SameTokenPair(ContractError):
    kind = ErrorKind.SAME_TOKEN_PAIR


class InsufficientAllowanceOrBalance(ContractError):
    kind = ErrorKind.INSUFFICIENT_ALLOWANCE_OR_BALANCE


class AuthenticationFailed(ContractError):
    kind = ErrorKind.AUTHENTICATION_FAILED


class Stopped(ContractError):
    kind = ErrorKind.STOPPED


class TransfersStopped(ContractError):
    kind = ErrorKind.TRANSFERS_STOPPED


class InvalidMessage(ContractError):
    kind = ErrorKind.INVALID_MESSAGE


class NotFound(ContractError):
    kind = ErrorKind.NOT_FOUND


__all__ = [
    "ErrorKind",
    "ContractError",
    "Unauthorized",
    "AlreadyClosed",
    "BelowMinimumBid",
    "ZeroAmount",
    "SameTokenPair",
    "InsufficientAllowanceOrBalance",
    "AuthenticationFailed",
    "Stopped",
    "TransfersStopped",
    "InvalidMessage",
    "NotFound",
]
