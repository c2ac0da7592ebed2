"""
Deposit classification.

Raw chain transactions touching a reserve address are filtered down to
genuine inbound deposits. Each rule is a separate predicate so the
classifiers below are plain conjunctions of them.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from decimal import Decimal
from typing import TypeVar

from reservepay.amounts import to_major_units
from reservepay.constants import BITCOIN_DECIMALS, ETHER_DECIMALS, SIMPLE_TRANSFER_GAS
from reservepay.models import AccountTransfer, ChainTransaction, IncomingTransaction
from reservepay.wallet.address import normalize_bitcoin_address

T = TypeVar("T")


def dedupe_by_hash(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Drop repeated transactions across overlapping pages; first occurrence wins."""
    seen: set[Hashable] = set()
    unique = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


def has_single_foreign_sender(
    senders: Iterable[str | None],
    reserve_address: str,
    normalize: Callable[[str], str] = str.lower,
) -> bool:
    """Exactly one identifiable sender, and it is not the reserve itself."""
    distinct = set()
    for sender in senders:
        if not sender:
            return False
        distinct.add(normalize(sender))
    return len(distinct) == 1 and normalize(reserve_address) not in distinct


# Account model


def has_empty_call_data(transfer: AccountTransfer) -> bool:
    return transfer.input in ("", "0x")


def succeeded(transfer: AccountTransfer) -> bool:
    return not transfer.is_error


def pays_reserve(transfer: AccountTransfer, reserve_address: str) -> bool:
    return transfer.to_address.lower() == reserve_address.lower()


def is_account_deposit(transfer: AccountTransfer, reserve_address: str) -> bool:
    return (
        has_empty_call_data(transfer)
        and succeeded(transfer)
        and has_single_foreign_sender([transfer.from_address], reserve_address)
        and pays_reserve(transfer, reserve_address)
    )


def classify_account_transfers(
    reserve_address: str, transfers: Iterable[AccountTransfer]
) -> list[IncomingTransaction]:
    reserve = reserve_address.lower()
    deposits = []
    for transfer in dedupe_by_hash(transfers, key=lambda t: t.hash.lower()):
        if not is_account_deposit(transfer, reserve):
            continue
        deposits.append(
            IncomingTransaction(
                from_address=transfer.from_address.lower(),
                reserve_address=reserve,
                amount=to_major_units(transfer.value, ETHER_DECIMALS),
                fee=to_major_units(transfer.gas_price * SIMPLE_TRANSFER_GAS, ETHER_DECIMALS),
                confirmations=transfer.confirmations,
                hash=transfer.hash.lower(),
            )
        )
    return deposits


# Output model


def outputs_are_unambiguous(tx: ChainTransaction) -> bool:
    """Every output names exactly one address, so value can be attributed."""
    return all(len(out.addresses) == 1 for out in tx.outputs)


def value_to_address(tx: ChainTransaction, reserve_address: str) -> int:
    reserve = normalize_bitcoin_address(reserve_address)
    return sum(
        out.value
        for out in tx.outputs
        if len(out.addresses) == 1 and normalize_bitcoin_address(out.addresses[0]) == reserve
    )


def network_fee(tx: ChainTransaction) -> int:
    return sum(i.value for i in tx.inputs) - sum(o.value for o in tx.outputs)


def is_output_deposit(tx: ChainTransaction, reserve_address: str) -> bool:
    return (
        has_single_foreign_sender(
            [i.address for i in tx.inputs], reserve_address, normalize_bitcoin_address
        )
        and outputs_are_unambiguous(tx)
        and value_to_address(tx, reserve_address) > 0
    )


def classify_output_transactions(
    reserve_address: str, transactions: Iterable[ChainTransaction]
) -> list[IncomingTransaction]:
    deposits = []
    for tx in dedupe_by_hash(transactions, key=lambda t: t.txid):
        if not is_output_deposit(tx, reserve_address):
            continue
        deposits.append(
            IncomingTransaction(
                from_address=tx.inputs[0].address or "",
                reserve_address=reserve_address,
                amount=to_major_units(value_to_address(tx, reserve_address), BITCOIN_DECIMALS),
                fee=to_major_units(network_fee(tx), BITCOIN_DECIMALS),
                confirmations=tx.confirmations,
                hash=tx.txid,
            )
        )
    return deposits


def total_amount(deposits: Iterable[IncomingTransaction]) -> Decimal:
    return sum((d.amount for d in deposits), Decimal(0))
