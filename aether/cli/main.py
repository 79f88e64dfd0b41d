#!/usr/bin/env python3
"""
AetherDEX CLI

Command-line tools for quoting swaps, checking fee values and inspecting
the resolved engine configuration.

Usage:
    aether quote --reserve-in R --reserve-out R --amount-in A [--fee F] [--slippage-bps S]
    aether validate-fee <fee>
    aether fee-tiers
    aether config [--path FILE] [--json]
"""

import json
from typing import Optional

import click

from aether import __version__
from aether.constants import DEFAULT_SLIPPAGE_BPS, FEE_DENOMINATOR
from aether.config import load_config
from aether.exceptions import AetherError
from aether.exchange.pool import get_amount_out
from aether.exchange.router import DEFAULT_POOL_FEE, apply_slippage, price_impact
from aether.governance.fees import FeeTierCatalog, snap_fee, validate_fee


def format_fee(fee: int) -> str:
    """Render a ppm fee as a percentage."""
    return f"{fee * 100 / FEE_DENOMINATOR:.4f}%"


def header(title: str) -> None:
    click.echo()
    click.echo(click.style(f"═══ {title} ═══", fg="cyan", bold=True))
    click.echo()


@click.group()
@click.version_option(version=__version__, prog_name="aether")
def cli():
    """AetherDEX Command Line Interface

    Offline tools for the AetherDEX exchange core.
    """
    pass


@cli.command("quote")
@click.option("--reserve-in", type=int, required=True, help="Reserve of the input token")
@click.option("--reserve-out", type=int, required=True, help="Reserve of the output token")
@click.option("--amount-in", type=int, required=True, help="Exact input amount")
@click.option("--fee", type=int, default=DEFAULT_POOL_FEE, show_default=True, help="Pool fee in ppm")
@click.option(
    "--slippage-bps",
    type=int,
    default=DEFAULT_SLIPPAGE_BPS,
    show_default=True,
    help="Slippage tolerance in basis points",
)
def quote_cmd(reserve_in: int, reserve_out: int, amount_in: int, fee: int, slippage_bps: int):
    """Quote an exact-in swap against a constant-product pool.

    Examples:

        aether quote --reserve-in 1000000 --reserve-out 1000000 --amount-in 1000

        aether quote --reserve-in 5000 --reserve-out 9000 --amount-in 100 --fee 500
    """
    if not validate_fee(fee):
        raise click.ClickException(f"Invalid fee {fee} (nearest valid: {snap_fee(fee)})")
    if amount_in <= 0:
        raise click.ClickException("amount-in must be positive")
    if reserve_in <= 0 or reserve_out <= 0:
        raise click.ClickException("Reserves must be positive")

    try:
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out, fee)
        min_out = apply_slippage(amount_out, slippage_bps)
    except AetherError as e:
        raise click.ClickException(str(e))
    impact = price_impact(amount_in, amount_out, reserve_in, reserve_out)

    header("Swap Quote")
    click.echo(f"Amount in:       {amount_in}")
    click.echo(click.style(f"Amount out:      {amount_out}", fg="green", bold=True))
    click.echo(f"Minimum out:     {min_out}  ({slippage_bps} bps slippage)")
    click.echo(f"Fee:             {fee} ppm ({format_fee(fee)})")
    click.echo(f"Fee paid:        {amount_in * fee // FEE_DENOMINATOR}")
    click.echo(f"Price impact:    {impact}%")
    if impact >= 5:
        click.echo()
        click.echo(click.style("WARNING: price impact above 5%", fg="yellow"))


@cli.command("validate-fee")
@click.argument("fee", type=int)
def validate_fee_cmd(fee: int):
    """Check whether a ppm fee is a legal fee value.

    Exits with status 1 when the fee is not valid.

    Examples:

        aether validate-fee 3000

        aether validate-fee 125
    """
    if validate_fee(fee):
        click.echo(click.style(f"✓ {fee} ppm is a valid fee ({format_fee(fee)})", fg="green"))
        return

    click.echo(click.style(f"✗ {fee} ppm is not a valid fee", fg="red"))
    click.echo(f"Nearest valid fee: {snap_fee(fee)} ppm")
    raise SystemExit(1)


@cli.command("fee-tiers")
def fee_tiers_cmd():
    """List the fee tiers a fresh engine starts with."""
    header("Default Fee Tiers")
    for tier in FeeTierCatalog().list_fee_tiers():
        click.echo(f"  {tier.fee:>6} ppm  {format_fee(tier.fee):>8}  spacing={tier.tick_spacing:<4} {tier.description}")
    click.echo()


@cli.command("config")
@click.option("--path", "-p", "path", type=click.Path(), help="Config file (default: $AETHER_CONFIG or ./aether.toml)")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def config_cmd(path: Optional[str], as_json: bool):
    """Show the resolved engine configuration.

    Examples:

        aether config

        aether config --path aether.example.toml --json
    """
    try:
        cfg = load_config(path)
        cfg.validate()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    data = cfg.to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    header("AetherDEX Configuration")
    for section, values in data.items():
        click.echo(click.style(f"[{section}]", fg="magenta", bold=True))
        for key, value in values.items():
            if key == "relays":
                for relay in value:
                    click.echo(f"  relay {relay['name']}: kind={relay['kind']} "
                               f"base_fee={relay['base_fee']} per_byte_fee={relay['per_byte_fee']} "
                               f"chains={relay['chains']}")
            else:
                click.echo(f"  {key} = {value}")
        click.echo()


if __name__ == "__main__":
    cli()
