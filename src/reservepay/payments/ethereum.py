"""
Account-model payment provider (Ethereum).

One signed transfer per payment, each funded by a single reserve wallet
and sequenced by that wallet's nonce.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from decimal import Decimal

from eth_account import Account
from eth_utils import to_checksum_address
from loguru import logger

from reservepay.amounts import to_major_units, to_minor_units
from reservepay.backends.base import AccountChainClient
from reservepay.constants import (
    ACCOUNT_HISTORY_PAGE_SIZE,
    ETHER_DECIMALS,
    ETHEREUM_HD_PATH,
    SIMPLE_TRANSFER_GAS,
)
from reservepay.errors import TransactionSigningError
from reservepay.models import (
    Allocation,
    AllocationResult,
    FundedWallet,
    IncomingTransaction,
    PaymentRequest,
    ReserveWallet,
    SignedTransaction,
    WalletBalance,
)
from reservepay.payments.allocation import allocate_first_fit
from reservepay.payments.deposits import classify_account_transfers, dedupe_by_hash
from reservepay.payments.provider import PaymentStrategy
from reservepay.payments.reconcile import reconcile_wallets
from reservepay.payments.sequencing import NonceLedger, sign_in_sequence
from reservepay.wallet.address import is_valid_ethereum_address
from reservepay.wallet.keys import EthereumKeyDerivation, generate_mnemonic, mnemonic_to_seed


def wei_to_ether(value: int) -> Decimal:
    return to_major_units(value, ETHER_DECIMALS)


class EthereumProvider:
    """
    Ethereum reserve pool.

    The network fee (``gasPrice * 21000``) is deducted from each payment,
    so a recipient receives ``amount - fee``.
    """

    currency = "ethereum"
    payment_strategy: PaymentStrategy = "consistently"

    def __init__(
        self,
        client: AccountChainClient,
        reserve_wallets: Sequence[ReserveWallet] = (),
        confirmations: int = 12,
        hd_path: str = ETHEREUM_HD_PATH,
        chain_id: int | None = None,
        history_pages: int = 1,
    ):
        self.client = client
        self.reserve_wallets = list(reserve_wallets)
        self.confirmations = confirmations
        self.hd_path = hd_path
        self.chain_id = chain_id
        self.history_pages = history_pages
        self.derivation = EthereumKeyDerivation()

    def is_valid_address(self, address: str) -> bool:
        return is_valid_ethereum_address(address)

    def generate_wallet(self, mnemonic: str | None = None) -> ReserveWallet:
        """Derive a reserve wallet at ``hd_path``; a fresh mnemonic is used when omitted."""
        seed = mnemonic_to_seed(mnemonic or generate_mnemonic())
        return self.derivation.derive(seed, self.hd_path)

    async def get_balance(self, address: str) -> WalletBalance:
        confirmed, pending = await self.client.get_balance(address)
        return WalletBalance(
            confirmed=wei_to_ether(confirmed),
            unconfirmed=wei_to_ether(pending - confirmed),
        )

    async def _confirmed_balance(self, address: str) -> Decimal:
        balance = await self.get_balance(address)
        return balance.confirmed

    async def is_confirmed_transaction_by_hash(self, tx_hash: str) -> bool:
        """Mined at least ``confirmations`` blocks deep and executed successfully."""
        receipt, height = await asyncio.gather(
            self.client.get_transaction_receipt(tx_hash),
            self.client.get_block_height(),
        )
        if receipt is None or receipt.block_number is None:
            return False
        return receipt.status and height - receipt.block_number >= self.confirmations

    async def get_received_transactions(self, address: str) -> list[IncomingTransaction]:
        pages = await asyncio.gather(
            *(
                self.client.get_address_transactions(address, page)
                for page in range(1, self.history_pages + 1)
            )
        )
        transfers = dedupe_by_hash(
            (t for page in pages for t in page), key=lambda t: t.hash.lower()
        )
        deposits = classify_account_transfers(address, transfers)
        logger.debug(
            f"{address}: {len(deposits)} deposits in {len(transfers)} transfers "
            f"(last {self.history_pages * ACCOUNT_HISTORY_PAGE_SIZE})"
        )
        return deposits

    async def get_received_reserves_transactions(self) -> list[IncomingTransaction]:
        per_reserve = await asyncio.gather(
            *(self.get_received_transactions(w.address) for w in self.reserve_wallets)
        )
        return [tx for txs in per_reserve for tx in txs]

    async def get_reserve_balances(
        self, pending_spend: Mapping[str, Decimal] | None = None
    ) -> list[FundedWallet]:
        return await reconcile_wallets(
            self.reserve_wallets, pending_spend or {}, self._confirmed_balance
        )

    async def prepare_payment(
        self,
        requests: Sequence[PaymentRequest],
        pending_spend: Mapping[str, Decimal] | None = None,
    ) -> AllocationResult:
        """
        Allocate ``requests`` first-fit across the reserve wallets.

        Balances, the gas price and every wallet's pending nonce are
        fetched concurrently before allocation. The returned result carries
        the initial NonceLedger and the gas price used for the fee.
        """
        reserves, gas_price, nonces = await asyncio.gather(
            self.get_reserve_balances(pending_spend),
            self.client.get_gas_price(),
            self.client.get_transaction_counts([w.address for w in self.reserve_wallets]),
        )

        fee = wei_to_ether(gas_price * SIMPLE_TRANSFER_GAS)
        result = allocate_first_fit(
            reserves, requests, fee, NonceLedger(nonces), self.is_valid_address
        )
        result.gas_price = gas_price

        for failed in result.failed_requests:
            logger.warning(
                f"Payment {failed.request.id} ({failed.amount} ETH) not funded: "
                f"{failed.reason.value}"
            )
        logger.info(
            f"Prepared {len(result.success_requests)}/{len(requests)} ETH payments, "
            f"fee {fee} ETH each"
        )
        return result

    def sign_transaction(
        self, allocation: Allocation, ledger: NonceLedger, gas_price: int
    ) -> SignedTransaction:
        """
        Sign one transfer from the allocated wallet.

        Claims the wallet's nonce from ``ledger``; the returned transaction
        carries the successor ledger for the next call.

        Raises:
            StaleSequencingError: If ``ledger`` was already used
            TransactionSigningError: If the allocation has no wallet or the
                transfer cannot be signed
        """
        wallet = allocation.wallet
        if wallet is None:
            raise TransactionSigningError(
                f"Payment {allocation.request.id} has no funding wallet"
            )

        nonce, successor = ledger.claim(wallet.address)

        try:
            tx = {
                "nonce": nonce,
                "gasPrice": gas_price,
                "gas": SIMPLE_TRANSFER_GAS,
                "to": to_checksum_address(allocation.request.address),
                "value": to_minor_units(allocation.net_amount, ETHER_DECIMALS),
                "data": b"",
            }
            if self.chain_id is not None:
                tx["chainId"] = self.chain_id
            signed = Account.sign_transaction(tx, wallet.private_key)
        except (TypeError, ValueError) as e:
            raise TransactionSigningError(
                f"Cannot sign payment {allocation.request.id} from {wallet.address}: {e}"
            ) from e

        tx_hash = "0x" + bytes(signed.hash).hex()
        logger.debug(f"Signed {tx_hash} from {wallet.address} with nonce {nonce}")
        return SignedTransaction(
            hash=tx_hash,
            raw="0x" + bytes(signed.raw_transaction).hex(),
            sequencing_state=successor,
            fee=wei_to_ether(gas_price * SIMPLE_TRANSFER_GAS),
            request_ids=(allocation.request.id,),
        )

    def sign_payments(self, result: AllocationResult) -> list[SignedTransaction]:
        if result.gas_price is None:
            raise TransactionSigningError("Allocation result has no gas price")
        signed, _ = sign_in_sequence(
            result.success_requests,
            result.sequencing_state,
            lambda allocation, ledger: self.sign_transaction(allocation, ledger, result.gas_price),
        )
        return signed

    async def send_signed_transaction(self, raw: str) -> str:
        return await self.client.broadcast_transaction(raw)

    async def close(self) -> None:
        await self.client.close()
