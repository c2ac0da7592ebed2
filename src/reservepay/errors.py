"""
Exception hierarchy for the payment core.

Insufficient funds is deliberately absent: an unfundable request is
reported in ``AllocationResult.failed_requests``, not raised.
"""

from __future__ import annotations


class ReservePayError(Exception):
    """Base class for all payment core errors."""


class ChainIOError(ReservePayError):
    """Chain node or explorer was unreachable or returned an unusable result.

    Retryable by the caller; the core never retries on its own.
    """


class DataIntegrityError(ReservePayError):
    """Caller-supplied bookkeeping contradicts the chain."""


class PendingSpendError(DataIntegrityError):
    def __init__(self, address: str, confirmed: object, pending: object):
        self.address = address
        self.confirmed = confirmed
        self.pending = pending
        super().__init__(
            f"Pending spend {pending} exceeds confirmed balance {confirmed} for {address}"
        )


class StaleSequencingError(ReservePayError):
    """Sequencing state was already used by an earlier signing call.

    Fatal for the transaction being signed. Retrying with the same state
    would repeat the nonce / output collision, so fresh state must be
    fetched with a new ``prepare_payment`` call.
    """


class TransactionSigningError(ReservePayError):
    pass
