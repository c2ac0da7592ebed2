"""
Configuration management for the payment core.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reservepay.backends import EthereumRPCBackend, InsightBackend
from reservepay.constants import (
    BITCOIN_HD_PATH,
    BITCOIN_TESTNET_HD_PATH,
    DEFAULT_FEE_TARGET_BLOCKS,
    ETHEREUM_HD_PATH,
    OUTPUT_HISTORY_PAGES,
)
from reservepay.models import ReserveWallet
from reservepay.payments.bitcoin import BitcoinProvider
from reservepay.payments.ethereum import EthereumProvider

Currency = Literal["ethereum", "bitcoin"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RESERVEPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    ethereum_rpc_url: str = "http://127.0.0.1:8545"
    ethereum_explorer_url: str = "https://api.etherscan.io/api"
    ethereum_explorer_api_key: str = ""
    # None signs unprotected legacy transactions
    ethereum_chain_id: int | None = None
    ethereum_hd_path: str = ETHEREUM_HD_PATH
    ethereum_confirmations: int = Field(default=12, ge=0)
    ethereum_history_pages: int = Field(default=1, ge=1)

    bitcoin_insight_url: str = "http://127.0.0.1:3001/insight-api/"
    bitcoin_network: Literal["mainnet", "testnet", "signet", "regtest"] = "mainnet"
    bitcoin_hd_path: str | None = None
    bitcoin_confirmations: int = Field(default=3, ge=0)
    bitcoin_fee_target_blocks: int = Field(default=DEFAULT_FEE_TARGET_BLOCKS, ge=1)
    bitcoin_history_pages: int = Field(default=OUTPUT_HISTORY_PAGES, ge=1)

    request_timeout: float = 30.0

    log_level: str = "INFO"

    def get_bitcoin_hd_path(self) -> str:
        if self.bitcoin_hd_path:
            return self.bitcoin_hd_path
        return BITCOIN_HD_PATH if self.bitcoin_network == "mainnet" else BITCOIN_TESTNET_HD_PATH


def get_settings() -> Settings:
    return Settings()


def create_provider(
    currency: Currency,
    settings: Settings | None = None,
    reserve_wallets: Sequence[ReserveWallet] = (),
) -> EthereumProvider | BitcoinProvider:
    """Build the provider for ``currency`` with its chain client."""
    settings = settings or get_settings()

    if currency == "ethereum":
        return EthereumProvider(
            EthereumRPCBackend(
                rpc_url=settings.ethereum_rpc_url,
                explorer_url=settings.ethereum_explorer_url,
                explorer_api_key=settings.ethereum_explorer_api_key,
                timeout=settings.request_timeout,
            ),
            reserve_wallets,
            confirmations=settings.ethereum_confirmations,
            hd_path=settings.ethereum_hd_path,
            chain_id=settings.ethereum_chain_id,
            history_pages=settings.ethereum_history_pages,
        )
    if currency == "bitcoin":
        return BitcoinProvider(
            InsightBackend(
                api_url=settings.bitcoin_insight_url,
                timeout=settings.request_timeout,
            ),
            reserve_wallets,
            confirmations=settings.bitcoin_confirmations,
            network=settings.bitcoin_network,
            hd_path=settings.get_bitcoin_hd_path(),
            fee_target_blocks=settings.bitcoin_fee_target_blocks,
            history_pages=settings.bitcoin_history_pages,
        )
    raise ValueError(f"Unsupported currency: {currency}")
