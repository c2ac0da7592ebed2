"""
Chain client implementations.

Available clients:
- EthereumRPCBackend: Ethereum JSON-RPC node plus Etherscan-compatible explorer
- InsightBackend: Insight REST API for Bitcoin-style unspent-output chains
"""

from reservepay.backends.base import AccountChainClient, OutputChainClient
from reservepay.backends.ethereum_rpc import EthereumRPCBackend
from reservepay.backends.insight import InsightBackend

__all__ = [
    "AccountChainClient",
    "EthereumRPCBackend",
    "InsightBackend",
    "OutputChainClient",
]
