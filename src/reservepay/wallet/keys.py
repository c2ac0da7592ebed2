"""
Reserve wallet key derivation.

Derivation is deterministic: the same seed and path always produce the
same address/key pair.
"""

from __future__ import annotations

from typing import Protocol

from eth_account import Account
from mnemonic import Mnemonic

from reservepay.models import ReserveWallet
from reservepay.wallet.address import private_key_to_wif, pubkey_to_p2wpkh_address
from reservepay.wallet.bip32 import derive_path

_WORDLIST = Mnemonic("english")


def generate_mnemonic(strength: int = 128) -> str:
    """Fresh BIP39 mnemonic; 128 bits of entropy gives 12 words."""
    return _WORDLIST.generate(strength=strength)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    if not _WORDLIST.check(mnemonic):
        raise ValueError("Invalid BIP39 mnemonic")
    return Mnemonic.to_seed(mnemonic, passphrase)


class KeyDerivation(Protocol):
    def derive(self, seed: bytes, path: str) -> ReserveWallet: ...


class BitcoinKeyDerivation:
    """P2WPKH address with a WIF-encoded key."""

    def __init__(self, network: str = "mainnet"):
        self.network = network

    def derive(self, seed: bytes, path: str) -> ReserveWallet:
        key = derive_path(seed, path)
        return ReserveWallet(
            address=pubkey_to_p2wpkh_address(key.public_key_bytes, self.network),
            private_key=private_key_to_wif(key.private_key.secret, self.network),
        )


class EthereumKeyDerivation:
    """Lower-case hex address with a 0x-prefixed hex key."""

    def derive(self, seed: bytes, path: str) -> ReserveWallet:
        secret = derive_path(seed, path).private_key.secret
        account = Account.from_key(secret)
        return ReserveWallet(
            address=account.address.lower(),
            private_key="0x" + secret.hex(),
        )
