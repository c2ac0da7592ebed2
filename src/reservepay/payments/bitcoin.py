"""
Output-model payment provider (Bitcoin).

All payments of a batch share one transaction whose inputs are pooled
across every reserve wallet.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from coincurve import PrivateKey
from loguru import logger

from reservepay.amounts import to_major_units
from reservepay.backends.base import OutputChainClient
from reservepay.constants import (
    BITCOIN_DECIMALS,
    BITCOIN_HD_PATH,
    DEFAULT_FEE_TARGET_BLOCKS,
    OUTPUT_HISTORY_PAGES,
)
from reservepay.errors import TransactionSigningError
from reservepay.models import (
    AllocationResult,
    FundedWallet,
    IncomingTransaction,
    OutPoint,
    PaymentRequest,
    ReserveWallet,
    SignedTransaction,
    WalletBalance,
)
from reservepay.payments.allocation import allocate_batch
from reservepay.payments.deposits import classify_output_transactions
from reservepay.payments.provider import PaymentStrategy
from reservepay.payments.reconcile import reconcile_wallets
from reservepay.payments.sequencing import SpentOutputs
from reservepay.wallet.address import (
    is_valid_bitcoin_address,
    normalize_bitcoin_address,
    wif_to_private_key,
)
from reservepay.wallet.keys import BitcoinKeyDerivation, generate_mnemonic, mnemonic_to_seed
from reservepay.wallet.transaction import build_signed_transaction


def sats_to_btc(value: int) -> Decimal:
    return to_major_units(value, BITCOIN_DECIMALS)


def as_spent_outputs(spent: Any) -> SpentOutputs:
    """
    Accept a SpentOutputs token, ``(txid, vout)`` pairs, ``{"txid", "vout"}``
    dicts, or a mapping keyed by outpoints.
    """
    if spent is None:
        return SpentOutputs()
    if isinstance(spent, SpentOutputs):
        # fresh token per batch; the one passed in may already be consumed
        return SpentOutputs(spent.outpoints)

    outpoints: list[OutPoint] = []
    for item in spent:
        if isinstance(item, Mapping):
            outpoints.append((item["txid"], int(item["vout"])))
        else:
            txid, vout = item
            outpoints.append((txid, int(vout)))
    return SpentOutputs(outpoints)


class BitcoinProvider:
    """
    Bitcoin reserve pool (P2WPKH).

    The fee is paid by the pooled inputs on top of the requested amounts,
    so recipients receive exactly what was requested.
    """

    currency = "bitcoin"
    payment_strategy: PaymentStrategy = "batch"

    def __init__(
        self,
        client: OutputChainClient,
        reserve_wallets: Sequence[ReserveWallet] = (),
        confirmations: int = 3,
        network: str = "mainnet",
        hd_path: str = BITCOIN_HD_PATH,
        fee_target_blocks: int = DEFAULT_FEE_TARGET_BLOCKS,
        history_pages: int = OUTPUT_HISTORY_PAGES,
    ):
        self.client = client
        self.reserve_wallets = list(reserve_wallets)
        self.confirmations = confirmations
        self.network = network
        self.hd_path = hd_path
        self.fee_target_blocks = fee_target_blocks
        self.history_pages = history_pages
        self.derivation = BitcoinKeyDerivation(network)

    def is_valid_address(self, address: str) -> bool:
        return is_valid_bitcoin_address(address, self.network)

    def generate_wallet(self, mnemonic: str | None = None) -> ReserveWallet:
        seed = mnemonic_to_seed(mnemonic or generate_mnemonic())
        return self.derivation.derive(seed, self.hd_path)

    async def get_balance(self, address: str) -> WalletBalance:
        confirmed, unconfirmed = await self.client.get_address_balance(address)
        return WalletBalance(confirmed=sats_to_btc(confirmed), unconfirmed=sats_to_btc(unconfirmed))

    async def _confirmed_balance(self, address: str) -> Decimal:
        balance = await self.get_balance(address)
        return balance.confirmed

    async def is_confirmed_transaction_by_hash(self, tx_hash: str) -> bool:
        tx = await self.client.get_transaction(tx_hash)
        return tx is not None and tx.confirmations >= self.confirmations

    async def get_received_transactions(self, address: str) -> list[IncomingTransaction]:
        """Deposits to ``address`` found in the first ``history_pages`` history pages."""
        pages = await asyncio.gather(
            *(
                self.client.get_address_transactions(address, page)
                for page in range(self.history_pages)
            )
        )
        return classify_output_transactions(address, [tx for page in pages for tx in page])

    async def get_received_reserves_transactions(self) -> list[IncomingTransaction]:
        per_reserve = await asyncio.gather(
            *(self.get_received_transactions(w.address) for w in self.reserve_wallets)
        )
        return [tx for txs in per_reserve for tx in txs]

    async def get_reserve_balances(
        self, pending_spend: Mapping[str, Decimal] | None = None
    ) -> list[FundedWallet]:
        return await reconcile_wallets(
            self.reserve_wallets,
            pending_spend or {},
            self._confirmed_balance,
            normalize=normalize_bitcoin_address,
        )

    async def prepare_payment(
        self,
        requests: Sequence[PaymentRequest],
        pending_spend: SpentOutputs | Iterable[Any] | None = None,
    ) -> AllocationResult:
        """
        Batch ``requests`` into one transaction.

        ``pending_spend`` lists outputs already claimed by signed but
        unconfirmed batches; they are never selected again.
        """
        if not self.reserve_wallets:
            raise ValueError("No reserve wallets configured")

        spent = as_spent_outputs(pending_spend)
        per_wallet, fee_rate = await asyncio.gather(
            asyncio.gather(*(self.client.get_utxos(w.address) for w in self.reserve_wallets)),
            self.client.estimate_fee(self.fee_target_blocks),
        )
        utxos = [utxo for wallet_utxos in per_wallet for utxo in wallet_utxos]

        result = allocate_batch(
            utxos,
            requests,
            fee_rate,
            change_address=self.reserve_wallets[0].address,
            spent=spent,
            is_valid_address=self.is_valid_address,
        )

        for failed in result.failed_requests:
            logger.warning(
                f"Payment {failed.request.id} ({failed.amount} BTC) not funded: "
                f"{failed.reason.value}"
            )
        logger.info(
            f"Prepared BTC batch: {len(result.success_requests)}/{len(requests)} payments, "
            f"{len(result.inputs)} inputs, fee {result.fee} BTC at {fee_rate} sat/vB"
        )
        return result

    def _signing_keys(self) -> dict[str, PrivateKey]:
        keys = {}
        for wallet in self.reserve_wallets:
            try:
                secret = wif_to_private_key(wallet.private_key, self.network)
            except ValueError as e:
                raise TransactionSigningError(f"Unusable key for reserve {wallet.address}") from e
            keys[wallet.address] = PrivateKey(secret)
        return keys

    def sign_transaction(self, result: AllocationResult) -> SignedTransaction:
        """
        Sign the batch transaction of ``result``.

        Each input is signed in input order with the reserve key owning
        its address. The result's SpentOutputs is consumed only once signing
        succeeds; the returned transaction carries the successor including
        this batch's inputs.

        Raises:
            StaleSequencingError: If an input was already consumed
            TransactionSigningError: If an input has no reserve key
        """
        built = build_signed_transaction(
            result.inputs, result.outputs, self._signing_keys(), self.network
        )
        spent: SpentOutputs = result.sequencing_state
        successor = spent.consume(result.inputs)
        fee_sats = sum(i.value for i in result.inputs) - sum(o.value for o in result.outputs)
        fee = sats_to_btc(fee_sats)
        logger.debug(
            f"Signed {built.txid}: {len(result.inputs)} inputs, {len(result.outputs)} outputs, "
            f"{built.vsize} vbytes"
        )
        return SignedTransaction(
            hash=built.txid,
            raw=built.hex,
            sequencing_state=successor,
            fee=fee,
            request_ids=tuple(a.request.id for a in result.success_requests),
        )

    def sign_payments(self, result: AllocationResult) -> list[SignedTransaction]:
        if not result.success_requests:
            return []
        return [self.sign_transaction(result)]

    async def send_signed_transaction(self, raw: str) -> str:
        return await self.client.broadcast_transaction(raw)

    async def close(self) -> None:
        await self.client.close()
