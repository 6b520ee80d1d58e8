"""
Ledger Client failure taxonomy.
"""
from typing import Optional


class LedgerError(Exception):
    """Base class for every failure raised by the Ledger Client."""


class LedgerUnavailable(LedgerError):
    """No node, contract or signing identity reachable. Safe to retry later."""


class LedgerRejected(LedgerError):
    """The network explicitly refused the transaction (revert, gas, RPC error)."""

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash


class LedgerTimeout(LedgerError):
    """
    Mining confirmation was not observed in time.

    The transaction may still be mined later, so callers must treat the
    outcome as unknown rather than as a rejection.
    """

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash


class InvalidReference(LedgerError):
    """A chain identifier is missing or malformed. Never sent to the node."""


class InvalidStatusCode(LedgerError, ValueError):
    """A status has no on-chain encoding. Never sent to the node."""
