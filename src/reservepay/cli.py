"""
reservepay CLI - derive reserve wallets and inspect balances, deposits and payments.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import typer
from loguru import logger

from reservepay.amounts import format_amount
from reservepay.config import create_provider, get_settings
from reservepay.errors import ReservePayError
from reservepay.payments.bitcoin import BitcoinProvider
from reservepay.payments.deposits import total_amount
from reservepay.payments.ethereum import EthereumProvider
from reservepay.wallet.keys import (
    BitcoinKeyDerivation,
    EthereumKeyDerivation,
    KeyDerivation,
    generate_mnemonic,
    mnemonic_to_seed,
)

T = TypeVar("T")

app = typer.Typer(
    name="reservepay",
    help="Custodial reserve wallet payment core",
    add_completion=False,
)

UNITS = {"ethereum": "ETH", "bitcoin": "BTC"}


class Currency(str, Enum):
    ethereum = "ethereum"
    bitcoin = "bitcoin"


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _run(
    currency: Currency,
    action: Callable[[EthereumProvider | BitcoinProvider], Awaitable[T]],
) -> T:
    """Run ``action`` against a fresh provider, closing its client afterwards."""

    async def runner() -> T:
        provider = create_provider(currency.value, get_settings())
        try:
            return await action(provider)
        finally:
            await provider.close()

    try:
        return asyncio.run(runner())
    except ReservePayError as e:
        logger.error(f"{currency.value}: {e}")
        raise typer.Exit(1)


@app.command("new-wallet")
def new_wallet(
    currency: Currency = typer.Argument(..., help="Currency of the reserve wallet"),
    mnemonic: str | None = typer.Option(
        None, "--mnemonic", "-m", envvar="RESERVEPAY_MNEMONIC", help="Existing BIP39 mnemonic"
    ),
    show_private_key: bool = typer.Option(False, "--show-private-key", help="Print the key"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Derive a reserve wallet, generating a new 12-word mnemonic if none is given."""
    setup_logging(log_level)

    generated = mnemonic is None
    phrase = mnemonic or generate_mnemonic()

    settings = get_settings()
    derivation: KeyDerivation
    if currency is Currency.ethereum:
        derivation, path = EthereumKeyDerivation(), settings.ethereum_hd_path
    else:
        derivation = BitcoinKeyDerivation(settings.bitcoin_network)
        path = settings.get_bitcoin_hd_path()

    try:
        wallet = derivation.derive(mnemonic_to_seed(phrase), path)
    except ValueError as e:
        logger.error(f"Cannot derive wallet: {e}")
        raise typer.Exit(1)

    typer.echo(f"Address:     {wallet.address}")
    typer.echo(f"Path:        {path}")
    if show_private_key:
        typer.echo(f"Private key: {wallet.private_key}")
    if generated:
        typer.echo("\n" + "=" * 80)
        typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
        typer.echo("=" * 80)
        typer.echo(f"\n{phrase}\n")
        typer.echo("=" * 80 + "\n")


@app.command()
def balance(
    currency: Currency = typer.Argument(...),
    address: str = typer.Argument(...),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Show confirmed and unconfirmed balance of an address."""
    setup_logging(log_level)

    result = _run(currency, lambda provider: provider.get_balance(address))
    unit = UNITS[currency.value]
    typer.echo(f"Confirmed:   {format_amount(result.confirmed)} {unit}")
    typer.echo(f"Unconfirmed: {format_amount(result.unconfirmed)} {unit}")
    typer.echo(f"Total:       {format_amount(result.total)} {unit}")


@app.command()
def deposits(
    currency: Currency = typer.Argument(...),
    address: str = typer.Argument(..., help="Reserve address"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """List inbound deposits to a reserve address."""
    setup_logging(log_level)

    found = _run(currency, lambda provider: provider.get_received_transactions(address))
    unit = UNITS[currency.value]

    if not found:
        typer.echo("No deposits found.")
        return

    for tx in found:
        typer.echo(
            f"{tx.hash}  {format_amount(tx.amount):>22} {unit}  from {tx.from_address}  "
            f"({tx.confirmations} conf, fee {format_amount(tx.fee)})"
        )
    typer.echo(f"\n{len(found)} deposits, {format_amount(total_amount(found))} {unit} total")


@app.command("tx-status")
def tx_status(
    currency: Currency = typer.Argument(...),
    tx_hash: str = typer.Argument(..., help="Transaction hash"),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Report whether a payment reached the configured confirmation threshold."""
    setup_logging(log_level)

    confirmed = _run(
        currency, lambda provider: provider.is_confirmed_transaction_by_hash(tx_hash)
    )
    typer.echo("confirmed" if confirmed else "pending")
    if not confirmed:
        raise typer.Exit(2)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
