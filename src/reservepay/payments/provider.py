"""
Uniform payment provider contract.

Each currency is served by one independent implementation selected at
construction. Callers treat every currency through this capability set
and never branch on the ledger model except via ``payment_strategy``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any, Literal, Protocol, runtime_checkable

from reservepay.models import (
    AllocationResult,
    FundedWallet,
    IncomingTransaction,
    PaymentRequest,
    ReserveWallet,
    SignedTransaction,
    WalletBalance,
)

# One transaction per payment, or one transaction for the whole batch
PaymentStrategy = Literal["consistently", "batch"]


@runtime_checkable
class PaymentProvider(Protocol):
    currency: str
    payment_strategy: PaymentStrategy
    reserve_wallets: Sequence[ReserveWallet]

    def is_valid_address(self, address: str) -> bool: ...

    def generate_wallet(self, mnemonic: str | None = None) -> ReserveWallet: ...

    async def get_balance(self, address: str) -> WalletBalance: ...

    async def is_confirmed_transaction_by_hash(self, tx_hash: str) -> bool: ...

    async def get_received_transactions(self, address: str) -> list[IncomingTransaction]: ...

    async def get_received_reserves_transactions(self) -> list[IncomingTransaction]: ...

    async def get_reserve_balances(
        self, pending_spend: Mapping[str, Decimal] | None = None
    ) -> list[FundedWallet]: ...

    async def prepare_payment(
        self, requests: Sequence[PaymentRequest], pending_spend: Any = None
    ) -> AllocationResult: ...

    def sign_payments(self, result: AllocationResult) -> list[SignedTransaction]: ...

    async def send_signed_transaction(self, raw: str) -> str: ...

    async def close(self) -> None: ...
