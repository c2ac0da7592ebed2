"""
Chain client interfaces.

Two shapes: an RPC-style client for account-model chains and a REST-style
client for unspent-output chains. Amounts at this layer are integers in
the chain's minor unit (wei / satoshi).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reservepay.models import (
    AccountTransfer,
    ChainTransaction,
    TransactionReceipt,
    UnspentOutput,
)


class AccountChainClient(ABC):
    """
    Node + explorer access for account/nonce ledgers.
    """

    @abstractmethod
    async def get_balance(self, address: str) -> tuple[int, int]:
        """Get (confirmed, pending) balance in wei"""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Get receipt, or None while the transaction is not mined"""

    @abstractmethod
    async def get_block_height(self) -> int:
        """Get current blockchain height"""

    @abstractmethod
    async def get_gas_price(self) -> int:
        """Get current gas price in wei"""

    @abstractmethod
    async def get_transaction_counts(self, addresses: list[str]) -> dict[str, int]:
        """Get pending transaction count (next nonce) per address"""

    @abstractmethod
    async def get_address_transactions(self, address: str, page: int = 1) -> list[AccountTransfer]:
        """Get one page of transaction history for an address, newest first"""

    @abstractmethod
    async def broadcast_transaction(self, raw_tx: str) -> str:
        """Broadcast signed transaction, returns hash"""

    async def close(self) -> None:
        """Close client connection"""
        pass


class OutputChainClient(ABC):
    """
    Explorer access for unspent-output ledgers.
    """

    @abstractmethod
    async def get_utxos(self, address: str) -> list[UnspentOutput]:
        """Get UTXOs for an address"""

    @abstractmethod
    async def get_address_balance(self, address: str) -> tuple[int, int]:
        """Get (confirmed, unconfirmed) balance in satoshis"""

    @abstractmethod
    async def estimate_fee(self, target_blocks: int) -> int:
        """Estimate fee in sat/vbyte for target confirmation blocks"""

    @abstractmethod
    async def get_address_transactions(self, address: str, page: int = 0) -> list[ChainTransaction]:
        """Get one page of transaction history for an address"""

    @abstractmethod
    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        """Get transaction by txid"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    async def close(self) -> None:
        """Close client connection"""
        pass
