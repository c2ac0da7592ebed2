"""
Tests for batch transaction construction and P2WPKH signing.
"""

import pytest
from coincurve import PrivateKey
from conftest import BTC_RECIPIENT_LEGACY, BTC_RECIPIENT_SEGWIT

from reservepay.errors import TransactionSigningError
from reservepay.models import PaymentOutput, UnspentOutput
from reservepay.wallet.address import address_to_scriptpubkey, wif_to_private_key
from reservepay.wallet.transaction import (
    build_signed_transaction,
    hash256,
    p2wpkh_script_code,
    segwit_sighash,
    serialize_output,
    varint,
)

TXID = "f4184fc596403b9d638783cf57adfe4c75c605f6356fbc91338530e9831e9e16"


@pytest.fixture
def reserve_key(btc_wallet):
    return PrivateKey(wif_to_private_key(btc_wallet.private_key))


@pytest.fixture
def funding(btc_wallet):
    return UnspentOutput(TXID, 1, 1_000_000, btc_wallet.address, confirmations=6)


@pytest.fixture
def outputs(btc_wallet):
    return [
        PaymentOutput(BTC_RECIPIENT_SEGWIT, 600_000, "r1"),
        PaymentOutput(btc_wallet.address, 399_718),
    ]


class TestPrimitives:
    def test_hash256_empty(self):
        assert hash256(b"").hex() == (
            "5df6e0e2761359d30a8275058e299fcc0381534545f55cf43e41983f5d4c9456"
        )

    def test_varint(self):
        assert varint(5) == b"\x05"
        assert varint(0xFD) == b"\xfd\xfd\x00"
        assert varint(0x10000) == b"\xfe\x00\x00\x01\x00"

    def test_script_code(self, reserve_key):
        pubkey = reserve_key.public_key.format(compressed=True)
        code = p2wpkh_script_code(pubkey)
        assert code[:3] == b"\x76\xa9\x14"
        assert code[-2:] == b"\x88\xac"


class TestBuildSignedTransaction:
    def test_structure(self, funding, outputs, reserve_key, btc_wallet):
        built = build_signed_transaction(
            [funding], outputs, {btc_wallet.address: reserve_key}
        )

        raw = bytes.fromhex(built.hex)
        # version 2, segwit marker and flag, one input
        assert raw[:4] == b"\x02\x00\x00\x00"
        assert raw[4:6] == b"\x00\x01"
        assert raw[6] == 1
        assert raw[7:39] == bytes.fromhex(TXID)[::-1]
        assert raw[-4:] == b"\x00\x00\x00\x00"
        assert len(built.txid) == 64
        # 1 P2WPKH input, 2 outputs; DER signatures vary by one byte
        assert 140 <= built.vsize <= 141

    def test_signature_commits_to_bip143_sighash(self, funding, outputs, reserve_key, btc_wallet):
        built = build_signed_transaction(
            [funding], outputs, {btc_wallet.address: reserve_key}
        )

        pubkey = reserve_key.public_key.format(compressed=True)
        serialized_outputs = b"".join(
            serialize_output(o.value, address_to_scriptpubkey(o.address)) for o in outputs
        )
        sighash = segwit_sighash([funding], serialized_outputs, 0, p2wpkh_script_code(pubkey))
        # RFC6979 signing is deterministic
        signature = reserve_key.sign(sighash, hasher=None) + b"\x01"

        assert (signature.hex() + "21" + pubkey.hex()) in built.hex
        assert reserve_key.public_key.verify(signature[:-1], sighash, hasher=None)

    def test_outputs_serialized_in_order(self, funding, outputs, reserve_key, btc_wallet):
        built = build_signed_transaction(
            [funding], outputs, {btc_wallet.address: reserve_key}
        )
        first = serialize_output(600_000, address_to_scriptpubkey(BTC_RECIPIENT_SEGWIT)).hex()
        second = serialize_output(399_718, address_to_scriptpubkey(btc_wallet.address)).hex()
        assert built.hex.index(first) < built.hex.index(second)

    def test_legacy_recipient(self, funding, reserve_key, btc_wallet):
        built = build_signed_transaction(
            [funding],
            [PaymentOutput(BTC_RECIPIENT_LEGACY, 999_000, "r1")],
            {btc_wallet.address: reserve_key},
        )
        assert address_to_scriptpubkey(BTC_RECIPIENT_LEGACY).hex() in built.hex

    def test_missing_key(self, funding, outputs):
        with pytest.raises(TransactionSigningError, match="No reserve key"):
            build_signed_transaction([funding], outputs, {})

    def test_key_must_own_input(self, funding, outputs, btc_wallet):
        other = PrivateKey(bytes(range(1, 33)))
        with pytest.raises(TransactionSigningError, match="not a P2WPKH output"):
            build_signed_transaction([funding], outputs, {btc_wallet.address: other})

    def test_invalid_output_address(self, funding, reserve_key, btc_wallet):
        with pytest.raises(TransactionSigningError, match="Cannot encode output"):
            build_signed_transaction(
                [funding],
                [PaymentOutput("tb1qnotmainnet", 1000, "r1")],
                {btc_wallet.address: reserve_key},
            )

    def test_empty_transaction(self, reserve_key, btc_wallet):
        with pytest.raises(TransactionSigningError):
            build_signed_transaction([], [], {btc_wallet.address: reserve_key})
