"""
Batch transaction construction and P2WPKH signing (BIP143).

One transaction spends the selected reserve outputs and pays every
satisfied request plus an optional change output.
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from coincurve import PrivateKey

from reservepay.errors import TransactionSigningError
from reservepay.models import PaymentOutput, UnspentOutput
from reservepay.wallet.address import (
    address_to_scriptpubkey,
    hash160,
    pubkey_to_p2wpkh_address,
)

TX_VERSION = 2
SEQUENCE_FINAL = 0xFFFFFFFF
SIGHASH_ALL = 1


@dataclass(frozen=True)
class BuiltTransaction:
    txid: str
    hex: str
    vsize: int


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def varint(n: int) -> bytes:
    """Encode integer as Bitcoin varint."""
    if n < 0xFD:
        return bytes([n])
    elif n <= 0xFFFF:
        return bytes([0xFD]) + struct.pack("<H", n)
    elif n <= 0xFFFFFFFF:
        return bytes([0xFE]) + struct.pack("<I", n)
    else:
        return bytes([0xFF]) + struct.pack("<Q", n)


def serialize_outpoint(txid: str, vout: int) -> bytes:
    # txid is displayed big-endian, serialized little-endian
    return bytes.fromhex(txid)[::-1] + struct.pack("<I", vout)


def serialize_output(value: int, scriptpubkey: bytes) -> bytes:
    return struct.pack("<Q", value) + varint(len(scriptpubkey)) + scriptpubkey


def p2wpkh_script_code(pubkey: bytes) -> bytes:
    """BIP143 scriptCode for P2WPKH: OP_DUP OP_HASH160 <pkh> OP_EQUALVERIFY OP_CHECKSIG."""
    return b"\x76\xa9\x14" + hash160(pubkey) + b"\x88\xac"


def segwit_sighash(
    inputs: Sequence[UnspentOutput],
    serialized_outputs: bytes,
    input_index: int,
    script_code: bytes,
    locktime: int = 0,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    hash_prevouts = hash256(b"".join(serialize_outpoint(i.txid, i.vout) for i in inputs))
    hash_sequence = hash256(struct.pack("<I", SEQUENCE_FINAL) * len(inputs))
    hash_outputs = hash256(serialized_outputs)

    target = inputs[input_index]
    preimage = (
        struct.pack("<I", TX_VERSION)
        + hash_prevouts
        + hash_sequence
        + serialize_outpoint(target.txid, target.vout)
        + varint(len(script_code))
        + script_code
        + struct.pack("<Q", target.value)
        + struct.pack("<I", SEQUENCE_FINAL)
        + hash_outputs
        + struct.pack("<I", locktime)
        + struct.pack("<I", sighash_type)
    )
    return hash256(preimage)


def build_signed_transaction(
    inputs: Sequence[UnspentOutput],
    outputs: Sequence[PaymentOutput],
    keys: Mapping[str, PrivateKey],
    network: str = "mainnet",
) -> BuiltTransaction:
    """
    Build and sign a P2WPKH-spending transaction.

    Each input is signed in input order with the key owning its address.

    Raises:
        TransactionSigningError: If an input has no key, the key does not
            own the input, or an output address cannot be encoded
    """
    if not inputs or not outputs:
        raise TransactionSigningError("Transaction needs at least one input and one output")

    try:
        serialized_outputs = b"".join(
            serialize_output(out.value, address_to_scriptpubkey(out.address, network))
            for out in outputs
        )
    except ValueError as e:
        raise TransactionSigningError(f"Cannot encode output: {e}") from e

    witnesses = []
    for index, utxo in enumerate(inputs):
        key = keys.get(utxo.address)
        if key is None:
            raise TransactionSigningError(f"No reserve key for input {utxo.txid}:{utxo.vout}")

        pubkey = key.public_key.format(compressed=True)
        if pubkey_to_p2wpkh_address(pubkey, network) != utxo.address:
            raise TransactionSigningError(
                f"Input {utxo.txid}:{utxo.vout} is not a P2WPKH output of its reserve key"
            )

        sighash = segwit_sighash(inputs, serialized_outputs, index, p2wpkh_script_code(pubkey))
        # sighash is already SHA256d, so skip coincurve's hashing
        signature = key.sign(sighash, hasher=None) + bytes([SIGHASH_ALL])
        witnesses.append([signature, pubkey])

    serialized_inputs = b"".join(
        serialize_outpoint(i.txid, i.vout) + b"\x00" + struct.pack("<I", SEQUENCE_FINAL)
        for i in inputs
    )
    body = (
        varint(len(inputs)) + serialized_inputs + varint(len(outputs)) + serialized_outputs
    )
    version = struct.pack("<I", TX_VERSION)
    locktime = struct.pack("<I", 0)

    witness_data = b"".join(
        varint(len(stack)) + b"".join(varint(len(item)) + item for item in stack)
        for stack in witnesses
    )

    stripped = version + body + locktime
    full = version + b"\x00\x01" + body + witness_data + locktime

    # BIP141 weight: base size x 3 + total size
    weight = len(stripped) * 3 + len(full)
    return BuiltTransaction(
        txid=hash256(stripped)[::-1].hex(),
        hex=full.hex(),
        vsize=(weight + 3) // 4,
    )
