"""
Prepare, sign and broadcast one batch of payments through a provider.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from reservepay.errors import ChainIOError
from reservepay.models import AllocationResult, FailedRequest, PaymentRequest, SignedTransaction
from reservepay.payments.provider import PaymentProvider


@dataclass
class PaymentBatchReport:
    """
    Outcome of one batch.

    ``unsent`` holds signed transactions left unbroadcast after a
    broadcast failure. Later nonces cannot confirm before earlier ones,
    so broadcasting stops at the first failure.
    """

    allocation: AllocationResult
    sent: list[SignedTransaction] = field(default_factory=list)
    unsent: list[SignedTransaction] = field(default_factory=list)
    error: ChainIOError | None = None

    @property
    def failed_requests(self) -> list[FailedRequest]:
        return self.allocation.failed_requests

    @property
    def sent_request_ids(self) -> list[str]:
        return [request_id for tx in self.sent for request_id in tx.request_ids]

    @property
    def sequencing_state(self) -> Any:
        """
        State after the last broadcast transaction, for the caller's next
        batch. Unsent transactions never reached the chain, so their nonces
        are not reserved.
        """
        if self.sent:
            return self.sent[-1].sequencing_state
        return self.allocation.sequencing_state


async def process_payments(
    provider: PaymentProvider,
    requests: Sequence[PaymentRequest],
    pending_spend: Any = None,
) -> PaymentBatchReport:
    """
    Run one batch end to end.

    Signing is strictly sequential, each call consuming the state
    returned by the previous one. Each signed transaction is broadcast
    individually; confirmation is left to
    ``is_confirmed_transaction_by_hash``.
    """
    allocation = await provider.prepare_payment(requests, pending_spend)
    signed = provider.sign_payments(allocation)
    report = PaymentBatchReport(allocation=allocation)

    for index, tx in enumerate(signed):
        try:
            tx_hash = await provider.send_signed_transaction(tx.raw)
        except ChainIOError as e:
            logger.error(f"Broadcast of {tx.hash} failed: {e}")
            report.error = e
            report.unsent = list(signed[index:])
            break

        if tx_hash and tx_hash.lower() != tx.hash.lower():
            logger.warning(f"Node reported hash {tx_hash} for signed transaction {tx.hash}")
            tx = dataclasses.replace(tx, hash=tx_hash)
        report.sent.append(tx)

    logger.info(
        f"{provider.currency}: {len(report.sent)} transactions broadcast, "
        f"{len(report.unsent)} unsent, {len(report.failed_requests)} requests failed"
    )
    return report
