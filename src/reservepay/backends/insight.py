"""
Insight REST chain client for unspent-output chains (Bitcoin and forks).

Insight reports most values in coins; they are converted to satoshis here
so everything above this layer works in integers or Decimals.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx
from loguru import logger

from reservepay.amounts import to_minor_units
from reservepay.backends.base import OutputChainClient
from reservepay.constants import BITCOIN_DECIMALS, MIN_FEE_RATE
from reservepay.errors import ChainIOError
from reservepay.models import ChainTransaction, TxIn, TxOut, UnspentOutput

DEFAULT_API_TIMEOUT = 30.0

# Insight quotes fee estimates per kilobyte of 1024 bytes
_BYTES_PER_KB = 1024


def _to_sats(value: Any) -> int:
    return to_minor_units(Decimal(str(value)), BITCOIN_DECIMALS)


def parse_transaction(data: dict[str, Any]) -> ChainTransaction:
    """Convert an Insight transaction document to a ChainTransaction."""
    try:
        inputs = tuple(
            TxIn(
                address=vin.get("addr"),
                value=int(vin["valueSat"]) if "valueSat" in vin else _to_sats(vin.get("value", 0)),
            )
            for vin in data.get("vin", [])
        )
        outputs = tuple(
            TxOut(
                addresses=tuple((vout.get("scriptPubKey") or {}).get("addresses") or ()),
                value=_to_sats(vout.get("value", 0)),
            )
            for vout in data.get("vout", [])
        )
        return ChainTransaction(
            txid=data["txid"],
            inputs=inputs,
            outputs=outputs,
            confirmations=int(data.get("confirmations", 0)),
            block_height=data.get("blockheight"),
        )
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise ChainIOError(f"Malformed transaction document: {e}") from e


class InsightBackend(OutputChainClient):
    """
    Output-model chain client over the Insight REST API.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:3001/insight-api/",
        timeout: float = DEFAULT_API_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _api_call(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an API call to the Insight server."""
        if method not in ("GET", "POST"):
            raise ValueError(f"Unsupported HTTP method: {method}")
        url = f"{self.api_url}/{endpoint}"

        try:
            if method == "GET":
                response = await self.client.get(url, params=params)
            else:
                response = await self.client.post(url, json=data)

            response.raise_for_status()
            result = response.json()

        except httpx.HTTPError as e:
            logger.error(f"Insight API call failed: {endpoint} - {e}")
            raise ChainIOError(f"Insight API call failed: {endpoint}: {e}") from e
        except ValueError as e:
            raise ChainIOError(f"Insight returned invalid JSON: {endpoint}") from e

        if result is None:
            raise ChainIOError(f"Insight returned an empty result: {endpoint}")
        return result

    async def get_utxos(self, address: str) -> list[UnspentOutput]:
        data = await self._api_call("GET", f"addr/{address}/utxo")
        if not isinstance(data, list):
            raise ChainIOError(f"Unexpected UTXO response for {address}")

        utxos = []
        for item in data:
            try:
                value = int(item["satoshis"]) if "satoshis" in item else _to_sats(item["amount"])
                utxos.append(
                    UnspentOutput(
                        txid=item["txid"],
                        vout=int(item["vout"]),
                        value=value,
                        address=item.get("address", address),
                        confirmations=int(item.get("confirmations", 0)),
                        scriptpubkey=item.get("scriptPubKey", ""),
                        height=item.get("height"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ChainIOError(f"Malformed UTXO entry: {item!r}") from e

        logger.debug(f"Found {len(utxos)} UTXOs for {address}")
        return utxos

    async def get_address_balance(self, address: str) -> tuple[int, int]:
        data = await self._api_call("GET", f"addr/{address}", params={"noTxList": 1})
        try:
            if "balanceSat" in data:
                confirmed = int(data["balanceSat"])
                unconfirmed = int(data.get("unconfirmedBalanceSat", 0))
            else:
                confirmed = _to_sats(data["balance"])
                unconfirmed = _to_sats(data.get("unconfirmedBalance", 0))
        except (KeyError, TypeError, ValueError) as e:
            raise ChainIOError(f"Malformed balance response for {address}") from e

        logger.debug(f"Balance for {address}: {confirmed} sats ({unconfirmed} unconfirmed)")
        return confirmed, unconfirmed

    async def estimate_fee(self, target_blocks: int) -> int:
        """
        Fee rate in sat/byte, floored at MIN_FEE_RATE.

        Insight answers in coins per kilobyte; a negative answer means the
        node has no estimate and the floor applies.
        """
        data = await self._api_call(
            "GET", "utils/estimatefee", params={"nbBlocks": target_blocks}
        )
        raw = data.get(str(target_blocks)) if isinstance(data, dict) else None
        if raw is None:
            raise ChainIOError(f"No fee estimate for {target_blocks} blocks")

        per_byte = to_minor_units(
            Decimal(str(raw)) * 10**BITCOIN_DECIMALS / _BYTES_PER_KB, 0
        )
        fee_rate = per_byte if per_byte > MIN_FEE_RATE else MIN_FEE_RATE
        logger.debug(f"Estimated fee for {target_blocks} blocks: {fee_rate} sat/B")
        return fee_rate

    async def get_address_transactions(self, address: str, page: int = 0) -> list[ChainTransaction]:
        data = await self._api_call("GET", "txs/", params={"address": address, "pageNum": page})
        txs = data.get("txs") if isinstance(data, dict) else None
        if not isinstance(txs, list):
            raise ChainIOError(f"Insight history returned no result set for {address}")
        return [parse_transaction(tx) for tx in txs]

    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        try:
            data = await self._api_call("GET", f"tx/{txid}")
        except ChainIOError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                logger.debug(f"Transaction {txid} not found")
                return None
            raise
        return parse_transaction(data)

    async def broadcast_transaction(self, tx_hex: str) -> str:
        data = await self._api_call("POST", "tx/send", data={"rawtx": tx_hex})
        txid = data.get("txid") if isinstance(data, dict) else None
        if not txid:
            raise ChainIOError(f"Broadcast returned no txid: {data!r}")
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def close(self) -> None:
        await self.client.aclose()
