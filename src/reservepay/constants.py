"""
Chain constants shared by the allocators and adapters.

Sizes follow the P2WPKH virtual-size model used for fee estimation:
- P2WPKH inputs: ~68 vbytes each
- P2WPKH outputs: 31 vbytes each
- Overhead: ~11 vbytes
"""

from __future__ import annotations

# Ethereum
ETHER_DECIMALS = 18
# Gas used by a plain value transfer with no call data
SIMPLE_TRANSFER_GAS = 21_000

# Bitcoin
BITCOIN_DECIMALS = 8
STANDARD_DUST_LIMIT = 546  # satoshis

TX_OVERHEAD_VSIZE = 11
P2WPKH_INPUT_VSIZE = 68
P2WPKH_OUTPUT_VSIZE = 31

# Floor for estimated fee rates (sat/vbyte)
MIN_FEE_RATE = 2
DEFAULT_FEE_TARGET_BLOCKS = 2

# Explorer history paging
ACCOUNT_HISTORY_PAGE_SIZE = 50
OUTPUT_HISTORY_PAGES = 3

# Default derivation paths (BIP44 / BIP84)
ETHEREUM_HD_PATH = "m/44'/60'/0'/0/0"
BITCOIN_HD_PATH = "m/84'/0'/0'/0/0"
BITCOIN_TESTNET_HD_PATH = "m/84'/1'/0'/0/0"
