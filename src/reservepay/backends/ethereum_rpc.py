"""
Ethereum JSON-RPC chain client.
Node calls go over JSON-RPC (batched where several values are needed at once);
address history comes from an Etherscan-compatible explorer API.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from reservepay.backends.base import AccountChainClient
from reservepay.constants import ACCOUNT_HISTORY_PAGE_SIZE
from reservepay.errors import ChainIOError
from reservepay.models import AccountTransfer, TransactionReceipt

# Timeout for RPC and explorer calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0


def _hex_to_int(value: Any) -> int:
    if not isinstance(value, str):
        raise ChainIOError(f"Expected hex quantity, got {value!r}")
    try:
        return int(value, 16)
    except ValueError as e:
        raise ChainIOError(f"Malformed hex quantity: {value!r}") from e


class EthereumRPCBackend(AccountChainClient):
    """
    Account-model chain client.

    Every call either returns a usable result or raises ChainIOError;
    nothing is retried here.
    """

    def __init__(
        self,
        rpc_url: str = "http://127.0.0.1:8545",
        explorer_url: str = "https://api.etherscan.io/api",
        explorer_api_key: str = "",
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url
        self.explorer_url = explorer_url
        self.explorer_api_key = explorer_api_key
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    def _payload(self, method: str, params: list | None) -> dict[str, Any]:
        self._request_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

    async def _post(self, body: Any, label: str) -> Any:
        try:
            response = await self.client.post(self.rpc_url, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {label} - {e}")
            raise ChainIOError(f"RPC call timed out: {label}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC call failed: {label} - {e}")
            raise ChainIOError(f"RPC call failed: {label}: {e}") from e
        except ValueError as e:
            raise ChainIOError(f"RPC returned invalid JSON: {label}") from e

    @staticmethod
    def _unwrap(data: Any, method: str) -> Any:
        if not isinstance(data, dict):
            raise ChainIOError(f"Malformed RPC response for {method}: {data!r}")
        if data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                error_code = error_info.get("code", "unknown")
                error_msg = error_info.get("message", str(error_info))
            else:
                error_code, error_msg = "unknown", str(error_info)
            raise ChainIOError(f"RPC error {error_code}: {error_msg}")
        return data.get("result")

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make a single JSON-RPC call.

        Returns:
            RPC result (may be None, e.g. for unknown receipts)

        Raises:
            ChainIOError: On RPC errors and connection/timeout errors
        """
        data = await self._post(self._payload(method, params), method)
        return self._unwrap(data, method)

    async def _rpc_batch(self, calls: list[tuple[str, list]]) -> list[Any]:
        """
        Send several JSON-RPC calls in one round trip.

        Results are returned in the order of ``calls`` regardless of the
        order the node answers in.
        """
        if not calls:
            return []
        payloads = [self._payload(method, params) for method, params in calls]
        label = f"batch[{', '.join(sorted({m for m, _ in calls}))}]"
        data = await self._post(payloads, label)
        if not isinstance(data, list):
            raise ChainIOError(f"Expected batch response list, got {type(data).__name__}")

        by_id = {item.get("id"): item for item in data if isinstance(item, dict)}
        results = []
        for payload in payloads:
            item = by_id.get(payload["id"])
            if item is None:
                raise ChainIOError(f"Missing batch response for {payload['method']}")
            results.append(self._unwrap(item, payload["method"]))
        return results

    async def get_balance(self, address: str) -> tuple[int, int]:
        confirmed, pending = await self._rpc_batch(
            [
                ("eth_getBalance", [address, "latest"]),
                ("eth_getBalance", [address, "pending"]),
            ]
        )
        if confirmed is None or pending is None:
            raise ChainIOError(f"Empty balance result for {address}")
        balances = (_hex_to_int(confirmed), _hex_to_int(pending))
        logger.debug(f"Balance for {address}: confirmed={balances[0]} pending={balances[1]} wei")
        return balances

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
        if receipt is None:
            return None

        block_number = receipt.get("blockNumber")
        status = receipt.get("status")
        return TransactionReceipt(
            hash=receipt.get("transactionHash", tx_hash).lower(),
            block_number=_hex_to_int(block_number) if block_number else None,
            status=status is not None and _hex_to_int(status) == 1,
        )

    async def get_block_height(self) -> int:
        result = await self._rpc_call("eth_blockNumber")
        if result is None:
            raise ChainIOError("Empty eth_blockNumber result")
        height = _hex_to_int(result)
        logger.debug(f"Current block height: {height}")
        return height

    async def get_gas_price(self) -> int:
        result = await self._rpc_call("eth_gasPrice")
        if result is None:
            raise ChainIOError("Empty eth_gasPrice result")
        return _hex_to_int(result)

    async def get_transaction_counts(self, addresses: list[str]) -> dict[str, int]:
        results = await self._rpc_batch(
            [("eth_getTransactionCount", [address, "pending"]) for address in addresses]
        )
        counts: dict[str, int] = {}
        for address, result in zip(addresses, results):
            if result is None:
                raise ChainIOError(f"Empty transaction count for {address}")
            counts[address] = _hex_to_int(result)
        return counts

    async def get_address_transactions(self, address: str, page: int = 1) -> list[AccountTransfer]:
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "sort": "desc",
            "page": page,
            "offset": ACCOUNT_HISTORY_PAGE_SIZE,
        }
        if self.explorer_api_key:
            params["apikey"] = self.explorer_api_key

        try:
            response = await self.client.get(self.explorer_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Explorer txlist failed for {address}: {e}")
            raise ChainIOError(f"Explorer txlist failed: {e}") from e
        except ValueError as e:
            raise ChainIOError("Explorer returned invalid JSON") from e

        rows = data.get("result") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise ChainIOError(f"Explorer txlist returned no result set for {address}: {rows!r}")

        transfers = []
        for row in rows:
            try:
                transfers.append(
                    AccountTransfer(
                        hash=row["hash"].lower(),
                        from_address=(row.get("from") or "").lower(),
                        to_address=(row.get("to") or "").lower(),
                        value=int(row["value"]),
                        gas_price=int(row["gasPrice"]),
                        input=row.get("input", ""),
                        confirmations=int(row.get("confirmations", 0)),
                        is_error=str(row.get("isError", "0")) == "1",
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ChainIOError(f"Malformed explorer row: {row!r}") from e

        logger.debug(f"Fetched {len(transfers)} transfers for {address} (page {page})")
        return transfers

    async def broadcast_transaction(self, raw_tx: str) -> str:
        tx_hash = await self._rpc_call("eth_sendRawTransaction", [raw_tx])
        if not tx_hash:
            raise ChainIOError("eth_sendRawTransaction returned no hash")
        logger.info(f"Broadcast transaction: {tx_hash}")
        return tx_hash.lower()

    async def close(self) -> None:
        await self.client.aclose()
