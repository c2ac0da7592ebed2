"""
reservepay: custodial reserve-wallet payment core for account-model and
unspent-output-model currencies.
"""

from reservepay.errors import (
    ChainIOError,
    DataIntegrityError,
    PendingSpendError,
    ReservePayError,
    StaleSequencingError,
    TransactionSigningError,
)
from reservepay.models import (
    AllocationResult,
    FailureReason,
    IncomingTransaction,
    PaymentRequest,
    ReserveWallet,
    SignedTransaction,
)

__version__ = "0.1.0"

__all__ = [
    "AllocationResult",
    "ChainIOError",
    "DataIntegrityError",
    "FailureReason",
    "IncomingTransaction",
    "PaymentRequest",
    "PendingSpendError",
    "ReservePayError",
    "ReserveWallet",
    "SignedTransaction",
    "StaleSequencingError",
    "TransactionSigningError",
]
