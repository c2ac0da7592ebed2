"""
Tests for the prepare/sign/broadcast driver.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from reservepay.errors import ChainIOError
from reservepay.models import (
    AllocationResult,
    FailedRequest,
    FailureReason,
    PaymentRequest,
    SignedTransaction,
)
from reservepay.payments.pipeline import process_payments
from reservepay.payments.sequencing import NonceLedger

REQUEST = PaymentRequest("A", "0xdest", Decimal(1))


def fake_provider(signed, broadcast):
    provider = MagicMock()
    provider.currency = "ethereum"
    provider.prepare_payment = AsyncMock(
        return_value=AllocationResult(
            success_requests=[],
            failed_requests=[FailedRequest(REQUEST, Decimal(1), FailureReason.INSUFFICIENT_FUNDS)],
            fee=Decimal("0.00042"),
            sequencing_state=NonceLedger({"0xa": 7}),
        )
    )
    provider.sign_payments = MagicMock(return_value=signed)
    provider.send_signed_transaction = AsyncMock(side_effect=broadcast)
    return provider


def signed_tx(nonce: int, request_id: str) -> SignedTransaction:
    return SignedTransaction(
        hash=f"0x{nonce:064x}",
        raw=f"0xraw{nonce}",
        sequencing_state=NonceLedger({"0xa": nonce + 1}),
        request_ids=(request_id,),
    )


class TestProcessPayments:
    @pytest.mark.asyncio
    async def test_broadcasts_each_signed_transaction(self):
        signed = [signed_tx(7, "B"), signed_tx(8, "C")]
        provider = fake_provider(signed, [tx.hash for tx in signed])

        report = await process_payments(provider, [REQUEST], {"0xa": Decimal(0)})

        provider.prepare_payment.assert_awaited_once_with([REQUEST], {"0xa": Decimal(0)})
        assert [c.args[0] for c in provider.send_signed_transaction.await_args_list] == [
            "0xraw7",
            "0xraw8",
        ]
        assert report.sent_request_ids == ["B", "C"]
        assert report.unsent == []
        assert report.error is None
        assert report.sequencing_state.nonce_for("0xa") == 9
        assert [f.request.id for f in report.failed_requests] == ["A"]

    @pytest.mark.asyncio
    async def test_stops_at_first_broadcast_failure(self):
        signed = [signed_tx(7, "B"), signed_tx(8, "C"), signed_tx(9, "D")]
        error = ChainIOError("node down")
        provider = fake_provider(signed, [signed[0].hash, error])

        report = await process_payments(provider, [REQUEST])

        assert report.sent_request_ids == ["B"]
        assert [tx.request_ids for tx in report.unsent] == [("C",), ("D",)]
        assert report.error is error
        assert provider.send_signed_transaction.await_count == 2
        # nonce 8 was signed but never broadcast
        assert report.sequencing_state.nonce_for("0xa") == 8

    @pytest.mark.asyncio
    async def test_failed_first_broadcast_keeps_allocation_state(self):
        signed = [signed_tx(7, "B"), signed_tx(8, "C")]
        provider = fake_provider(signed, [ChainIOError("node down")])

        report = await process_payments(provider, [REQUEST])

        assert report.sent == []
        assert len(report.unsent) == 2
        assert report.sequencing_state.nonce_for("0xa") == 7

    @pytest.mark.asyncio
    async def test_node_reported_hash_wins(self):
        provider = fake_provider([signed_tx(7, "B")], ["0xnodehash"])

        report = await process_payments(provider, [REQUEST])

        assert report.sent[0].hash == "0xnodehash"

    @pytest.mark.asyncio
    async def test_nothing_signed(self):
        provider = fake_provider([], [])

        report = await process_payments(provider, [REQUEST])

        assert report.sent == []
        assert report.sequencing_state.nonce_for("0xa") == 7
        provider.send_signed_transaction.assert_not_awaited()
