"""
Payment allocation for both ledger models.

Account model: first-fit, one wallet funds one payment, requests in
caller order. Output model: all requests are paid by one transaction
drawing on outputs pooled across every reserve wallet, smallest request
first, all-or-nothing.

Both are deliberate deterministic heuristics, not optimal selection.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from decimal import Decimal

from loguru import logger

from reservepay.amounts import to_major_units, to_minor_units
from reservepay.constants import (
    BITCOIN_DECIMALS,
    P2WPKH_INPUT_VSIZE,
    P2WPKH_OUTPUT_VSIZE,
    STANDARD_DUST_LIMIT,
    TX_OVERHEAD_VSIZE,
)
from reservepay.models import (
    Allocation,
    AllocationResult,
    FailedRequest,
    FailureReason,
    FundedWallet,
    PaymentOutput,
    PaymentRequest,
    UnspentOutput,
)
from reservepay.payments.sequencing import NonceLedger, SpentOutputs

AddressValidator = Callable[[str], bool]


def _accept_any(address: str) -> bool:
    return True


def request_rejection(
    request: PaymentRequest, is_valid_address: AddressValidator
) -> FailureReason | None:
    """Why a request can never be funded, regardless of balances."""
    if request.amount <= 0:
        return FailureReason.INVALID_AMOUNT
    if not is_valid_address(request.address):
        return FailureReason.INVALID_ADDRESS
    return None


def first_fit(
    wallets: Sequence[FundedWallet], remaining: Sequence[Decimal], amount: Decimal
) -> int:
    """Index of the first wallet whose remaining capacity covers ``amount``, or -1."""
    for index in range(len(wallets)):
        if remaining[index] >= amount:
            return index
    return -1


def allocate_first_fit(
    wallets: Sequence[FundedWallet],
    requests: Sequence[PaymentRequest],
    fee: Decimal,
    ledger: NonceLedger,
    is_valid_address: AddressValidator = _accept_any,
) -> AllocationResult:
    """
    Assign each request to the first wallet, in caller order, that can
    still cover the full requested amount.

    The recipient receives ``amount - fee``; the wallet is debited
    ``amount``. A request is never split across wallets.
    """
    remaining = [w.spendable for w in wallets]
    success: list[Allocation] = []
    failed: list[FailedRequest] = []

    for request in requests:
        reason = request_rejection(request, is_valid_address)
        if reason is None and request.amount <= fee:
            reason = FailureReason.AMOUNT_BELOW_FEE
        if reason is not None:
            failed.append(FailedRequest(request, request.amount, reason))
            continue

        index = first_fit(wallets, remaining, request.amount)
        if index < 0:
            failed.append(
                FailedRequest(request, request.amount, FailureReason.INSUFFICIENT_FUNDS)
            )
            continue

        remaining[index] -= request.amount
        success.append(
            Allocation(
                request=request,
                net_amount=request.amount - fee,
                wallet=wallets[index].wallet,
            )
        )

    return AllocationResult(
        success_requests=success,
        failed_requests=failed,
        fee=fee,
        sequencing_state=ledger,
    )


def estimate_vsize(num_inputs: int, num_outputs: int) -> int:
    return TX_OVERHEAD_VSIZE + num_inputs * P2WPKH_INPUT_VSIZE + num_outputs * P2WPKH_OUTPUT_VSIZE


def is_spendable(utxo: UnspentOutput, spent: SpentOutputs) -> bool:
    """Confirmed and not claimed by a prepared-but-unbroadcast batch."""
    return utxo.confirmations > 0 and utxo.outpoint not in spent


def allocate_batch(
    utxos: Sequence[UnspentOutput],
    requests: Sequence[PaymentRequest],
    fee_rate: int,
    change_address: str,
    spent: SpentOutputs,
    is_valid_address: AddressValidator = _accept_any,
    dust_limit: int = STANDARD_DUST_LIMIT,
) -> AllocationResult:
    """
    Fund every acceptable request from one transaction.

    Inputs are accumulated in pool order until they cover the requested
    total plus the fee (``fee_rate`` sat/vbyte over the P2WPKH size
    model). Change above ``dust_limit`` returns to ``change_address``;
    smaller change is left to the miner. If the pool falls short, every
    request fails together.
    """
    failed: list[FailedRequest] = []
    targets: list[tuple[PaymentRequest, int]] = []

    for request in sorted(requests, key=lambda r: r.amount):
        reason = request_rejection(request, is_valid_address)
        value = to_minor_units(request.amount, BITCOIN_DECIMALS) if reason is None else 0
        if reason is None and value <= dust_limit:
            reason = FailureReason.INVALID_AMOUNT
        if reason is not None:
            failed.append(FailedRequest(request, request.amount, reason))
        else:
            targets.append((request, value))

    empty = AllocationResult(
        success_requests=[],
        failed_requests=failed,
        fee=Decimal(0),
        sequencing_state=spent,
    )
    if not targets:
        return empty

    target_total = sum(value for _, value in targets)
    candidates = [u for u in utxos if is_spendable(u, spent)]

    selected: list[UnspentOutput] = []
    accumulated = 0
    for utxo in candidates:
        selected.append(utxo)
        accumulated += utxo.value
        if accumulated >= target_total + fee_rate * estimate_vsize(len(selected), len(targets)):
            break
    else:
        logger.warning(
            f"Pooled outputs ({accumulated} sats in {len(candidates)} UTXOs) cannot cover "
            f"{target_total} sats for {len(targets)} payments; failing the batch"
        )
        empty.failed_requests.extend(
            FailedRequest(request, request.amount, FailureReason.INSUFFICIENT_FUNDS)
            for request, _ in targets
        )
        return empty

    outputs = [PaymentOutput(request.address, value, request.id) for request, value in targets]

    fee_with_change = fee_rate * estimate_vsize(len(selected), len(targets) + 1)
    change = accumulated - target_total - fee_with_change
    if change > dust_limit:
        outputs.append(PaymentOutput(change_address, change))
        fee = fee_with_change
    else:
        fee = accumulated - target_total

    inputs = tuple(selected)
    return AllocationResult(
        success_requests=[
            Allocation(request=request, net_amount=request.amount, inputs=inputs)
            for request, _ in targets
        ],
        failed_requests=failed,
        fee=to_major_units(fee, BITCOIN_DECIMALS),
        sequencing_state=spent,
        inputs=list(inputs),
        outputs=outputs,
    )
