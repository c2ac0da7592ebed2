"""
Tests for the account-model provider with a mocked chain client.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import ETH_RECIPIENT, SAMPLE_ETHEREUM_ADDRESS
from eth_account import Account
from eth_utils import keccak

from reservepay.backends.base import AccountChainClient
from reservepay.errors import PendingSpendError, StaleSequencingError, TransactionSigningError
from reservepay.models import (
    AccountTransfer,
    Allocation,
    FailureReason,
    PaymentRequest,
    TransactionReceipt,
)
from reservepay.payments.ethereum import EthereumProvider
from reservepay.payments.provider import PaymentProvider
from reservepay.payments.sequencing import NonceLedger

GWEI = 10**9
ETHER = 10**18


@pytest.fixture
def client():
    return AsyncMock(spec=AccountChainClient)


@pytest.fixture
def provider(client, eth_wallets):
    return EthereumProvider(client, eth_wallets, confirmations=12, chain_id=1)


def funded_client(client, eth_wallets, balances=(5, 3), nonces=(7, 2)):
    by_address = {w.address: b * ETHER for w, b in zip(eth_wallets, balances)}
    client.get_balance.side_effect = lambda address: (by_address[address], by_address[address])
    client.get_gas_price.return_value = 20 * GWEI
    client.get_transaction_counts.return_value = {
        w.address: n for w, n in zip(eth_wallets, nonces)
    }


def payment(request_id: str, amount: str) -> PaymentRequest:
    return PaymentRequest(request_id, ETH_RECIPIENT, Decimal(amount))


class TestContract:
    def test_satisfies_provider_protocol(self, provider):
        assert isinstance(provider, PaymentProvider)
        assert provider.payment_strategy == "consistently"

    def test_is_valid_address(self, provider):
        assert provider.is_valid_address(ETH_RECIPIENT)
        assert not provider.is_valid_address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4")
        assert not provider.is_valid_address(None)

    def test_generate_wallet(self, provider, sample_mnemonic):
        assert provider.generate_wallet(sample_mnemonic).address == SAMPLE_ETHEREUM_ADDRESS

    def test_generate_wallet_fresh_mnemonic(self, provider):
        wallet = provider.generate_wallet()
        assert provider.is_valid_address(wallet.address)
        assert wallet.address != SAMPLE_ETHEREUM_ADDRESS

    @pytest.mark.asyncio
    async def test_close(self, provider, client):
        await provider.close()
        client.close.assert_awaited_once()


class TestBalances:
    @pytest.mark.asyncio
    async def test_get_balance(self, provider, client):
        client.get_balance.return_value = (2 * ETHER, 3 * ETHER)

        balance = await provider.get_balance(SAMPLE_ETHEREUM_ADDRESS)

        assert balance.confirmed == Decimal(2)
        assert balance.unconfirmed == Decimal(1)
        assert balance.total == Decimal(3)

    @pytest.mark.asyncio
    async def test_reserve_balances_subtract_pending(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)

        funded = await provider.get_reserve_balances(
            {eth_wallets[0].address.upper(): Decimal("1.5")}
        )

        assert [f.spendable for f in funded] == [Decimal("3.5"), Decimal(3)]

    @pytest.mark.asyncio
    async def test_pending_above_balance(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)

        with pytest.raises(PendingSpendError):
            await provider.prepare_payment([], {eth_wallets[1].address: Decimal(4)})


class TestConfirmation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "height,status,expected",
        [(112, True, True), (111, True, False), (200, False, False)],
    )
    async def test_threshold(self, provider, client, height, status, expected):
        client.get_transaction_receipt.return_value = TransactionReceipt("0xaa", 100, status)
        client.get_block_height.return_value = height

        assert await provider.is_confirmed_transaction_by_hash("0xaa") is expected

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, provider, client):
        client.get_transaction_receipt.return_value = None
        client.get_block_height.return_value = 500

        assert await provider.is_confirmed_transaction_by_hash("0xaa") is False


class TestDeposits:
    @pytest.mark.asyncio
    async def test_received_transactions(self, client, eth_wallets):
        reserve = eth_wallets[0].address
        deposit = AccountTransfer("0xaa", ETH_RECIPIENT, reserve, ETHER, 20 * GWEI, "0x", 3)
        token_call = AccountTransfer(
            "0xbb", ETH_RECIPIENT, reserve, 0, 20 * GWEI, "0xa9059cbb", 3
        )
        client.get_address_transactions.side_effect = [[deposit, token_call], [deposit]]
        provider = EthereumProvider(client, eth_wallets, history_pages=2)

        deposits = await provider.get_received_transactions(reserve)

        assert [d.hash for d in deposits] == ["0xaa"]
        assert deposits[0].fee == Decimal("0.00042")
        assert [c.args[1] for c in client.get_address_transactions.await_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_all_reserves(self, provider, client, eth_wallets):
        def history(address, page):
            tx_hash = f"0x{address[-4:]}"
            return [AccountTransfer(tx_hash, ETH_RECIPIENT, address, ETHER, GWEI, "0x", 1)]

        client.get_address_transactions.side_effect = history

        deposits = await provider.get_received_reserves_transactions()

        assert {d.reserve_address for d in deposits} == {w.address for w in eth_wallets}


class TestPreparePayment:
    @pytest.mark.asyncio
    async def test_first_fit_scenario(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)

        result = await provider.prepare_payment(
            [payment("A", "4"), payment("B", "2"), payment("C", "3")]
        )

        assert [a.request.id for a in result.success_requests] == ["A", "B"]
        assert [a.wallet for a in result.success_requests] == eth_wallets
        assert [f.request.id for f in result.failed_requests] == ["C"]
        assert result.fee == Decimal("0.00042")
        assert result.success_requests[0].net_amount == Decimal("3.99958")
        assert result.gas_price == 20 * GWEI
        assert result.sequencing_state.nonce_for(eth_wallets[0].address) == 7

    @pytest.mark.asyncio
    async def test_invalid_destination(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)

        result = await provider.prepare_payment(
            [PaymentRequest("bad", "not-an-address", Decimal(1))]
        )

        assert result.failed_requests[0].reason is FailureReason.INVALID_ADDRESS

    @pytest.mark.asyncio
    async def test_bad_checksum_destination_is_not_paid(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)
        mistyped = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD"

        result = await provider.prepare_payment([PaymentRequest("A", mistyped, Decimal(1))])

        assert result.success_requests == []
        assert [f.request.id for f in result.failed_requests] == ["A"]
        assert result.failed_requests[0].reason is FailureReason.INVALID_ADDRESS
        assert provider.sign_payments(result) == []

    @pytest.mark.asyncio
    async def test_nonces_fetched_once(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)

        await provider.prepare_payment([payment("A", "1")])

        client.get_transaction_counts.assert_awaited_once_with([w.address for w in eth_wallets])


class TestSigning:
    @pytest.mark.asyncio
    async def test_sign_payments_threads_nonces(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)
        result = await provider.prepare_payment(
            [payment("A", "1"), payment("B", "1"), payment("C", "1")]
        )

        signed = provider.sign_payments(result)

        assert [tx.request_ids for tx in signed] == [("A",), ("B",), ("C",)]
        assert signed[-1].sequencing_state.nonce_for(eth_wallets[0].address) == 10
        assert signed[-1].sequencing_state.nonce_for(eth_wallets[1].address) == 2

    @pytest.mark.asyncio
    async def test_signed_transaction_is_valid(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)
        result = await provider.prepare_payment([payment("A", "1")])

        (tx,) = provider.sign_payments(result)

        assert tx.raw.startswith("0x")
        assert tx.hash == "0x" + keccak(hexstr=tx.raw).hex()
        sender = Account.recover_transaction(tx.raw)
        assert sender.lower() == eth_wallets[0].address
        assert tx.fee == Decimal("0.00042")

    @pytest.mark.asyncio
    async def test_signing_twice_is_rejected(self, provider, client, eth_wallets):
        funded_client(client, eth_wallets)
        result = await provider.prepare_payment([payment("A", "1")])

        provider.sign_payments(result)

        with pytest.raises(StaleSequencingError):
            provider.sign_payments(result)

    def test_sign_transaction_returns_successor(self, provider, eth_wallets):
        ledger = NonceLedger({eth_wallets[0].address: 7})
        allocation = Allocation(payment("A", "1"), Decimal("0.99"), eth_wallets[0])

        tx = provider.sign_transaction(allocation, ledger, 20 * GWEI)

        assert tx.sequencing_state.nonce_for(eth_wallets[0].address) == 8
        assert ledger.consumed

    def test_allocation_without_wallet(self, provider):
        allocation = Allocation(payment("A", "1"), Decimal("0.99"))

        with pytest.raises(TransactionSigningError):
            provider.sign_transaction(allocation, NonceLedger({}), 20 * GWEI)

    @pytest.mark.asyncio
    async def test_send_signed_transaction(self, provider, client):
        client.broadcast_transaction.return_value = "0xabc"

        assert await provider.send_signed_transaction("0x01") == "0xabc"
        client.broadcast_transaction.assert_awaited_once_with("0x01")
