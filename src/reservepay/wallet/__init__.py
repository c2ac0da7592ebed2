"""
Reserve wallet keys, addresses and transaction signing.
"""

from reservepay.wallet.keys import (
    BitcoinKeyDerivation,
    EthereumKeyDerivation,
    KeyDerivation,
    generate_mnemonic,
    mnemonic_to_seed,
)

__all__ = [
    "BitcoinKeyDerivation",
    "EthereumKeyDerivation",
    "KeyDerivation",
    "generate_mnemonic",
    "mnemonic_to_seed",
]
