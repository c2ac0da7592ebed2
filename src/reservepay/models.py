"""
Payment core data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from reservepay.amounts import to_major_units
from reservepay.constants import BITCOIN_DECIMALS

OutPoint = tuple[str, int]


@dataclass(frozen=True)
class ReserveWallet:
    """Custodial address/key pair. The key never appears in repr or logs."""

    address: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class WalletBalance:
    confirmed: Decimal
    unconfirmed: Decimal

    @property
    def total(self) -> Decimal:
        return self.confirmed + self.unconfirmed


@dataclass(frozen=True)
class FundedWallet:
    """Reserve wallet with its balance net of pending spends."""

    wallet: ReserveWallet
    spendable: Decimal

    @property
    def address(self) -> str:
        return self.wallet.address


@dataclass(frozen=True)
class UnspentOutput:
    txid: str
    vout: int
    value: int  # satoshis
    address: str
    confirmations: int
    scriptpubkey: str = ""
    height: int | None = None

    @property
    def outpoint(self) -> OutPoint:
        return (self.txid, self.vout)

    @property
    def amount(self) -> Decimal:
        return to_major_units(self.value, BITCOIN_DECIMALS)


@dataclass(frozen=True)
class PaymentRequest:
    id: str
    address: str
    amount: Decimal


class FailureReason(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_ADDRESS = "invalid_address"
    INVALID_AMOUNT = "invalid_amount"
    AMOUNT_BELOW_FEE = "amount_below_fee"


@dataclass(frozen=True)
class Allocation:
    """A request matched to its funding source.

    Account model: ``wallet`` is set. Output model: ``inputs`` holds the
    whole batch's inputs, since every payment shares one transaction.
    """

    request: PaymentRequest
    net_amount: Decimal
    wallet: ReserveWallet | None = None
    inputs: tuple[UnspentOutput, ...] = ()


@dataclass(frozen=True)
class FailedRequest:
    request: PaymentRequest
    amount: Decimal
    reason: FailureReason


@dataclass(frozen=True)
class PaymentOutput:
    address: str
    value: int  # satoshis
    request_id: str | None = None

    @property
    def is_change(self) -> bool:
        return self.request_id is None


@dataclass
class AllocationResult:
    success_requests: list[Allocation]
    failed_requests: list[FailedRequest]
    fee: Decimal
    # NonceLedger (account model) or SpentOutputs (output model)
    sequencing_state: Any
    inputs: list[UnspentOutput] = field(default_factory=list)
    outputs: list[PaymentOutput] = field(default_factory=list)
    gas_price: int | None = None

    @property
    def request_ids(self) -> list[str]:
        return [a.request.id for a in self.success_requests] + [
            f.request.id for f in self.failed_requests
        ]


@dataclass(frozen=True)
class SignedTransaction:
    hash: str
    raw: str
    sequencing_state: Any
    fee: Decimal = Decimal(0)
    request_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class IncomingTransaction:
    from_address: str
    reserve_address: str
    amount: Decimal
    fee: Decimal
    confirmations: int
    hash: str


@dataclass(frozen=True)
class AccountTransfer:
    """Explorer txlist row for an account-model chain (values in wei)."""

    hash: str
    from_address: str
    to_address: str
    value: int
    gas_price: int
    input: str
    confirmations: int
    is_error: bool = False


@dataclass(frozen=True)
class TxIn:
    address: str | None
    value: int  # satoshis


@dataclass(frozen=True)
class TxOut:
    addresses: tuple[str, ...]
    value: int  # satoshis


@dataclass(frozen=True)
class ChainTransaction:
    """Output-model transaction with per-input and per-output addresses."""

    txid: str
    inputs: tuple[TxIn, ...]
    outputs: tuple[TxOut, ...]
    confirmations: int
    block_height: int | None = None


@dataclass(frozen=True)
class TransactionReceipt:
    hash: str
    block_number: int | None
    status: bool
