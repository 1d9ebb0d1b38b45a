#!/usr/bin/env python3
"""
Coin Pool PnL CLI

Reconstruct what each wallet in a group really invested in a token, work
out its profit or loss from entry/exit market caps, and redistribute group
profit to the losing wallets.

Policies:
- equal: pool split evenly among losers
- proportional: pool split by size of loss
- custom: pool split by --custom WALLET_ID=PERCENT
- clawback: winners return all profit above principal
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from coinpool.config import get_config
from coinpool.csv_io import pnl_card, read_wallet_csv, write_results_csv
from coinpool.errors import CsvFormatError, NoBuyActivity, PolicyInputInconsistent, TransferHistoryError
from coinpool.models import PolicyKind, WalletRecord
from coinpool.oracle import PriceOracleClient
from coinpool.pnl import compute_batch
from coinpool.reconstructor import PositionReconstructor, reconstruct_group
from coinpool.redistribution import RedistributionEngine, build_policy, validate_custom_percentages

console = Console()

POLICY_CHOICES = [k.value for k in PolicyKind]


def _parse_custom(values: tuple[str, ...]) -> dict[str, Decimal]:
    """Parse WALLET_ID=PERCENT pairs."""
    percentages = {}
    for value in values:
        wallet_id, sep, pct = value.partition("=")
        if not sep:
            raise click.BadParameter(f"Expected WALLET_ID=PERCENT, got {value}", param_hint="--custom")
        try:
            percentages[wallet_id.strip()] = Decimal(pct.strip())
        except InvalidOperation:
            raise click.BadParameter(f"Not a number: {pct}", param_hint="--custom") from None
    return percentages


def _prepare_engine(
    records: list[WalletRecord],
    policy_name: str,
    custom: tuple[str, ...],
) -> tuple[Optional[RedistributionEngine], dict[str, str]]:
    """Compute PnL for a group, report exclusions and build the engine."""
    results, failures = compute_batch(records)
    for wallet_id, error in failures.items():
        console.print(f"[red]Excluded {wallet_id}: {error}[/red]")

    if not results:
        console.print("[yellow]No wallets with valid data to calculate.[/yellow]")
        return None, failures

    policy = build_policy(policy_name, _parse_custom(custom))
    engine = RedistributionEngine(results, policy)

    # Percentages only matter when something is redistributed
    if policy.kind == PolicyKind.CUSTOM_PERCENTAGE and engine.pool > 0:
        try:
            validate_custom_percentages(engine.losers, policy.percentages, get_config().redistribution.percentage_tolerance)
        except PolicyInputInconsistent as e:
            console.print(f"[yellow]Warning: {e}. Results will not balance.[/yellow]")

    return engine, failures


def _run_redistribution(
    records: list[WalletRecord],
    policy_name: str,
    custom: tuple[str, ...],
    output: Optional[str],
) -> Optional[list]:
    """Compute PnL and redistribution for a group and print the report."""
    engine, _ = _prepare_engine(records, policy_name, custom)
    if engine is None:
        return None

    calculated = engine.redistribute()
    engine.print_results(calculated)

    if output:
        path = write_results_csv(calculated, output)
        console.print(f"[green]Exported to {path}[/green]")

    return calculated


@click.group()
@click.version_option(version="0.1.0")
def cli():
    """Coin Pool PnL - Reconstruct wallet positions and redistribute group P&L."""
    pass


@cli.command()
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--policy", type=click.Choice(POLICY_CHOICES), default=None, help="Redistribution policy")
@click.option("--custom", multiple=True, help="Custom percentage as WALLET_ID=PERCENT (repeatable)")
@click.option("--output", "-o", help="Write results to this CSV file")
def calculate(csv_file: str, policy: Optional[str], custom: tuple[str, ...], output: Optional[str]):
    """
    Calculate P&L and redistribution for wallets in a CSV file.

    CSV_FILE needs the columns walletAddress, tokenName, investedAmount,
    entryMarketCap and exitMarketCap.
    """
    try:
        records = read_wallet_csv(csv_file)
    except CsvFormatError as e:
        raise click.ClickException(str(e)) from e

    console.print(Panel(
        f"[bold cyan]{len(records)} wallets loaded from {csv_file}[/bold cyan]",
        title="P&L Redistribution"
    ))
    _run_redistribution(records, policy or get_config().redistribution.default_policy, custom, output)


@cli.command()
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--policy", type=click.Choice(POLICY_CHOICES), default=None, help="Redistribution policy")
@click.option("--custom", multiple=True, help="Custom percentage as WALLET_ID=PERCENT (repeatable)")
@click.option("--output", "-o", help="Write the card to this text file")
def card(csv_file: str, policy: Optional[str], custom: tuple[str, ...], output: Optional[str]):
    """Print the PnL card (wallet, invested, redistribution) for a CSV file."""
    try:
        records = read_wallet_csv(csv_file)
    except CsvFormatError as e:
        raise click.ClickException(str(e)) from e

    engine, excluded = _prepare_engine(records, policy or get_config().redistribution.default_policy, custom)
    calculated = engine.redistribute() if engine is not None else []
    content = pnl_card(records, calculated, excluded)

    if output:
        with open(output, "w") as f:
            f.write(content)
        console.print(f"[green]PnL card written to {output}[/green]")
    else:
        console.print(content, markup=False)


@cli.command()
@click.argument("address")
def token(address: str):
    """Show the current name, price and market cap of a token."""
    asyncio.run(_show_token(address))


async def _show_token(address: str):
    async with PriceOracleClient(get_config().oracle) as oracle:
        info = await oracle.get_token_info(address)

    if info is None:
        console.print("[red]Failed to load token data.[/red]")
        return

    table = Table(title=f"{info.name} ({info.symbol})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Address", info.address)
    table.add_row("Price", f"${info.price:,.8f}")
    table.add_row("Market Cap", f"${info.market_cap:,.0f}")
    console.print(table)


@cli.command()
@click.argument("wallet")
@click.argument("token_address")
@click.option("--fallback-mcap", type=float, default=None, help="Market cap used when a lookup misses")
@click.option("--verbose", "-v", is_flag=True, help="Show per-lot details")
def reconstruct(wallet: str, token_address: str, fallback_mcap: Optional[float], verbose: bool):
    """Reconstruct the net invested amount of WALLET in TOKEN_ADDRESS."""
    asyncio.run(_reconstruct_wallet(wallet, token_address, fallback_mcap, verbose))


async def _reconstruct_wallet(wallet: str, token_address: str, fallback_mcap: Optional[float], verbose: bool):
    console.print(Panel(
        f"[bold cyan]Reconstructing {wallet}[/bold cyan]",
        title="Position Reconstruction"
    ))

    async with PriceOracleClient(get_config().oracle) as oracle:
        fallback = await _fallback_market_cap(oracle, token_address, fallback_mcap)
        try:
            events = await oracle.get_transfer_history(wallet, token_address)
            reconstructor = PositionReconstructor(oracle.price_at(token_address), fallback, verbose=verbose)
            position = await reconstructor.reconstruct(events, wallet_address=wallet)
        except (NoBuyActivity, TransferHistoryError) as e:
            console.print(f"[red]{e}[/red]")
            return

    table = Table(title="Wallet Position")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Net Invested", f"${position.net_invested_usd:,.2f}")
    table.add_row("Net Tokens Held", f"{position.net_tokens:,.4f}")
    table.add_row("Entry Market Cap", f"${position.entry_market_cap:,.0f}")
    table.add_row("Exit Market Cap", f"${position.exit_market_cap:,.0f}")
    table.add_row("Oracle Misses", str(position.oracle_misses))
    if position.unmatched_sell_tokens > 0:
        table.add_row("Unmatched Sells", f"{position.unmatched_sell_tokens:,.4f}")
    console.print(table)

    if position.fully_exited:
        console.print("[yellow]Wallet fully exited; no cost basis remains.[/yellow]")


async def _fallback_market_cap(oracle: PriceOracleClient, token_address: str, override: Optional[float]) -> Decimal:
    """Use the override if given, else the token's current market cap."""
    if override is not None:
        return Decimal(str(override))
    info = await oracle.get_token_info(token_address)
    return info.market_cap if info else Decimal("0")


@cli.command()
@click.argument("token_address")
@click.argument("wallets", nargs=-1)
@click.option("--policy", type=click.Choice(POLICY_CHOICES), default=None, help="Redistribution policy")
@click.option("--custom", multiple=True, help="Custom percentage as WALLET_ID=PERCENT (repeatable)")
@click.option("--fallback-mcap", type=float, default=None, help="Market cap used when a lookup misses")
@click.option("--output", "-o", help="Write results to this CSV file")
def group(
    token_address: str,
    wallets: tuple[str, ...],
    policy: Optional[str],
    custom: tuple[str, ...],
    fallback_mcap: Optional[float],
    output: Optional[str],
):
    """Reconstruct every wallet in a group and redistribute its P&L."""
    if not wallets:
        console.print("[red]Please provide at least 1 wallet address.[/red]")
        return

    asyncio.run(_group(token_address, list(wallets), policy, custom, fallback_mcap, output))


async def _group(
    token_address: str,
    wallets: list[str],
    policy: Optional[str],
    custom: tuple[str, ...],
    fallback_mcap: Optional[float],
    output: Optional[str],
):
    console.print(Panel(
        f"[bold cyan]Reconstructing {len(wallets)} wallets[/bold cyan]",
        title="Group Redistribution"
    ))

    async with PriceOracleClient(get_config().oracle) as oracle:
        info = await oracle.get_token_info(token_address)
        if fallback_mcap is not None:
            fallback = Decimal(str(fallback_mcap))
        else:
            fallback = info.market_cap if info else Decimal("0")

        group_result = await reconstruct_group(
            oracle,
            token_address,
            wallets,
            fallback,
            token_name=info.name if info else token_address,
        )

    for address, error in group_result.failures.items():
        console.print(f"[red]Excluded {address}: {error}[/red]")

    if not group_result.records:
        console.print("[yellow]No wallets could be reconstructed.[/yellow]")
        return

    _run_redistribution(
        group_result.records,
        policy or get_config().redistribution.default_policy,
        custom,
        output,
    )


if __name__ == "__main__":
    cli()
