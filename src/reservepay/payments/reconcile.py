"""
Spendable balance reconciliation.

A reserve wallet's spendable balance is its confirmed on-chain balance
minus whatever the caller has already earmarked for prepared but not yet
confirmed payments.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from decimal import Decimal

from loguru import logger

from reservepay.errors import PendingSpendError
from reservepay.models import FundedWallet, ReserveWallet


def reconcile(confirmed: Decimal, pending: Decimal = Decimal(0), address: str = "") -> Decimal:
    """
    Return ``confirmed - pending``.

    Raises:
        PendingSpendError: If pending exceeds confirmed. This is never
            clamped to zero, since that would hide a double-spend risk.
    """
    spendable = confirmed - pending
    if spendable < 0:
        raise PendingSpendError(address, confirmed, pending)
    return spendable


async def reconcile_wallets(
    wallets: Sequence[ReserveWallet],
    pending_spend: Mapping[str, Decimal],
    fetch_confirmed: Callable[[str], Awaitable[Decimal]],
    normalize: Callable[[str], str] = str.lower,
) -> list[FundedWallet]:
    """
    Reconcile every wallet, fetching confirmed balances concurrently.

    Results keep the order of ``wallets``.
    """
    pending = {normalize(address): Decimal(amount) for address, amount in pending_spend.items()}

    confirmed = await asyncio.gather(*(fetch_confirmed(w.address) for w in wallets))

    funded = []
    for wallet, balance in zip(wallets, confirmed):
        committed = pending.get(normalize(wallet.address), Decimal(0))
        spendable = reconcile(balance, committed, wallet.address)
        if committed:
            logger.debug(
                f"Reserve {wallet.address}: confirmed {balance}, pending {committed}, "
                f"spendable {spendable}"
            )
        funded.append(FundedWallet(wallet=wallet, spendable=spendable))
    return funded
