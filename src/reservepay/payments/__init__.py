"""
Payment preparation pipeline: reconcile, classify, allocate, sign.
"""

from reservepay.payments.allocation import allocate_batch, allocate_first_fit
from reservepay.payments.bitcoin import BitcoinProvider
from reservepay.payments.deposits import (
    classify_account_transfers,
    classify_output_transactions,
)
from reservepay.payments.ethereum import EthereumProvider
from reservepay.payments.pipeline import PaymentBatchReport, process_payments
from reservepay.payments.provider import PaymentProvider
from reservepay.payments.reconcile import reconcile, reconcile_wallets
from reservepay.payments.sequencing import NonceLedger, SpentOutputs, sign_in_sequence

__all__ = [
    "BitcoinProvider",
    "EthereumProvider",
    "NonceLedger",
    "PaymentBatchReport",
    "PaymentProvider",
    "SpentOutputs",
    "allocate_batch",
    "allocate_first_fit",
    "classify_account_transfers",
    "classify_output_transactions",
    "process_payments",
    "reconcile",
    "reconcile_wallets",
    "sign_in_sequence",
]
