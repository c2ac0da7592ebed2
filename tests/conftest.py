"""
Shared fixtures for reservepay tests.
"""

from __future__ import annotations

import pytest

from reservepay.constants import BITCOIN_HD_PATH, ETHEREUM_HD_PATH
from reservepay.models import ReserveWallet
from reservepay.wallet.keys import BitcoinKeyDerivation, EthereumKeyDerivation, mnemonic_to_seed

SAMPLE_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)

# Well-known addresses for SAMPLE_MNEMONIC
SAMPLE_BITCOIN_ADDRESS = "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
SAMPLE_ETHEREUM_ADDRESS = "0x9858effd232b4033e47d90003d41ec34ecaeda94"

# Valid mainnet recipients
BTC_RECIPIENT_SEGWIT = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
BTC_RECIPIENT_LEGACY = "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"
ETH_RECIPIENT = "0x52908400098527886e0f7030069857d2e4169ee7"


@pytest.fixture
def sample_mnemonic() -> str:
    return SAMPLE_MNEMONIC


@pytest.fixture
def sample_seed() -> bytes:
    return mnemonic_to_seed(SAMPLE_MNEMONIC)


@pytest.fixture
def btc_wallet(sample_seed: bytes) -> ReserveWallet:
    return BitcoinKeyDerivation("mainnet").derive(sample_seed, BITCOIN_HD_PATH)


@pytest.fixture
def eth_wallets(sample_seed: bytes) -> list[ReserveWallet]:
    """Two reserve wallets at consecutive account-model indexes."""
    derivation = EthereumKeyDerivation()
    return [
        derivation.derive(sample_seed, ETHEREUM_HD_PATH),
        derivation.derive(sample_seed, "m/44'/60'/0'/0/1"),
    ]
