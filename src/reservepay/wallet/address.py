"""
Address encoding and validation for reserve currencies.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

import base58
import bech32
from bip_utils import Bech32ChecksumError, SegwitBech32Decoder
from eth_utils import add_0x_prefix, is_checksum_address, is_hex_address, remove_0x_prefix


@dataclass(frozen=True)
class BitcoinNetwork:
    name: str
    hrp: str
    p2pkh_version: int
    p2sh_version: int
    wif_version: int


NETWORKS = {
    "mainnet": BitcoinNetwork("mainnet", "bc", 0x00, 0x05, 0x80),
    "testnet": BitcoinNetwork("testnet", "tb", 0x6F, 0xC4, 0xEF),
    "signet": BitcoinNetwork("signet", "tb", 0x6F, 0xC4, 0xEF),
    "regtest": BitcoinNetwork("regtest", "bcrt", 0x6F, 0xC4, 0xEF),
}


def get_network(name: str) -> BitcoinNetwork:
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(f"Unknown bitcoin network: {name}") from None


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def pubkey_to_p2wpkh_address(pubkey: bytes, network: str = "mainnet") -> str:
    """Compressed public key to P2WPKH (native segwit, BIP173) address."""
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")

    address = bech32.encode(get_network(network).hrp, 0, hash160(pubkey))
    if address is None:
        raise ValueError("Failed to encode P2WPKH address")
    return address


def decode_segwit_address(hrp: str, address: str) -> tuple[int, bytes]:
    """
    Decode a native segwit address to (witness version, program).

    Witness v0 must carry a bech32 checksum (BIP173), v1 and later a
    bech32m checksum (BIP350).

    Raises:
        ValueError: For a bad checksum, a checksum of the wrong kind or a
            malformed witness program
    """
    witver, witprog = bech32.decode(hrp, address)
    if witver == 0:
        return 0, bytes(witprog)

    try:
        witver, program = SegwitBech32Decoder.Decode(hrp, address)
    except (Bech32ChecksumError, ValueError) as e:
        raise ValueError(f"Invalid bech32 address: {address}") from e
    if witver == 0:
        raise ValueError(f"Witness v0 address with a bech32m checksum: {address}")
    return witver, bytes(program)


def address_to_scriptpubkey(address: str, network: str = "mainnet") -> bytes:
    """
    Convert a Bitcoin address on ``network`` to its scriptPubKey.

    Supports P2WPKH, P2WSH, P2TR, P2PKH and P2SH.

    Raises:
        ValueError: For malformed addresses or addresses of another network
    """
    params = get_network(network)

    if address.lower().startswith(params.hrp + "1"):
        witver, program = decode_segwit_address(params.hrp, address)

        if witver == 0 and len(program) == 20:
            return bytes([0x00, 0x14]) + program
        if witver == 0 and len(program) == 32:
            return bytes([0x00, 0x20]) + program
        if witver == 1 and len(program) == 32:
            return bytes([0x51, 0x20]) + program
        raise ValueError(f"Unsupported witness program: v{witver}, {len(program)} bytes")

    decoded = base58.b58decode_check(address)
    if len(decoded) != 21:
        raise ValueError(f"Invalid base58 payload length: {len(decoded)}")
    version, payload = decoded[0], decoded[1:]

    if version == params.p2pkh_version:
        # OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return bytes([0x76, 0xA9, 0x14]) + payload + bytes([0x88, 0xAC])
    if version == params.p2sh_version:
        # OP_HASH160 <20-byte-scripthash> OP_EQUAL
        return bytes([0xA9, 0x14]) + payload + bytes([0x87])

    raise ValueError(f"Address version {version} does not belong to {network}")


def is_valid_bitcoin_address(address: object, network: str = "mainnet") -> bool:
    if not isinstance(address, str) or not address:
        return False
    try:
        address_to_scriptpubkey(address, network)
    except ValueError:
        return False
    return True


def normalize_bitcoin_address(address: str) -> str:
    """Bech32 addresses are case-insensitive; base58 ones are not."""
    lowered = address.lower()
    if lowered.startswith(("bc1", "tb1", "bcrt1")):
        return lowered
    return address


def is_valid_ethereum_address(address: object) -> bool:
    """
    Hex address check; mixed-case addresses must also carry a valid
    EIP-55 checksum. All-lower and all-upper hex carry no checksum.
    """
    if not isinstance(address, str) or not is_hex_address(address):
        return False
    body = remove_0x_prefix(address)
    if body.islower() or body.isupper():
        return True
    return is_checksum_address(add_0x_prefix(body))


def private_key_to_wif(secret: bytes, network: str = "mainnet") -> str:
    """Encode a 32-byte secret as WIF for a compressed public key."""
    payload = bytes([get_network(network).wif_version]) + secret + b"\x01"
    return base58.b58encode_check(payload).decode("ascii")


def wif_to_private_key(wif: str, network: str = "mainnet") -> bytes:
    decoded = base58.b58decode_check(wif)
    if decoded[0] != get_network(network).wif_version:
        raise ValueError("WIF key belongs to a different network")
    if len(decoded) == 34 and decoded[-1] == 0x01:
        return decoded[1:33]
    if len(decoded) == 33:
        return decoded[1:]
    raise ValueError("Malformed WIF key")
