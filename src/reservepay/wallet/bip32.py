"""
BIP32 private key derivation over secp256k1.

Only private (xprv-side) derivation is needed: reserve keys are always
derived from a seed the service holds.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

from coincurve import PrivateKey

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000


@dataclass(frozen=True)
class ExtendedKey:
    private_key: PrivateKey
    chain_code: bytes
    depth: int = 0

    @property
    def public_key_bytes(self) -> bytes:
        return self.private_key.public_key.format(compressed=True)


def parse_path(path: str) -> list[int]:
    """
    Parse "m/84'/0'/0'/0/0" into child indexes.
    ' or h marks hardened derivation.
    """
    if not path.startswith("m"):
        raise ValueError("Path must start with 'm'")

    indexes = []
    for part in path.split("/")[1:]:
        if not part:
            continue
        hardened = part.endswith(("'", "h"))
        index = int(part.rstrip("'h"))
        if index < 0 or index >= HARDENED_OFFSET:
            raise ValueError(f"Path index out of range: {part}")
        indexes.append(index + HARDENED_OFFSET if hardened else index)
    return indexes


def master_key(seed: bytes) -> ExtendedKey:
    digest = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    return ExtendedKey(PrivateKey(digest[:32]), digest[32:])


def derive_child(parent: ExtendedKey, index: int) -> ExtendedKey:
    if index >= HARDENED_OFFSET:
        data = b"\x00" + parent.private_key.secret + index.to_bytes(4, "big")
    else:
        data = parent.public_key_bytes + index.to_bytes(4, "big")

    digest = hmac.new(parent.chain_code, data, hashlib.sha512).digest()
    offset = int.from_bytes(digest[:32], "big")
    if offset >= SECP256K1_N:
        raise ValueError("Invalid child key")

    child = (int.from_bytes(parent.private_key.secret, "big") + offset) % SECP256K1_N
    if child == 0:
        raise ValueError("Invalid child key")

    return ExtendedKey(PrivateKey(child.to_bytes(32, "big")), digest[32:], parent.depth + 1)


def derive_path(seed: bytes, path: str) -> ExtendedKey:
    key = master_key(seed)
    for index in parse_path(path):
        key = derive_child(key, index)
    return key
