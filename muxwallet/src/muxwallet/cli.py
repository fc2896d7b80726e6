"""
coinmux participant CLI: inspect unspent outputs, check keys, relay transactions.
"""

from __future__ import annotations

from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from loguru import logger
from muxcore.bitcoin import format_amount
from muxcore.cli_common import setup_cli, setup_logging
from muxcore.errors import CoinmuxError, ConfigError
from muxcore.settings import ensure_config_file, generate_config_template
from muxcore.tasks import run_blocking

from muxwallet.network import BitcoinNetwork

T = TypeVar("T")

app = typer.Typer(
    name="mux-wallet",
    help="coinmux participant wallet tools",
    add_completion=False,
)

NetworkOption = Annotated[
    str | None,
    typer.Option("--network", "-n", help="Bitcoin network: mainnet, testnet, signet, regtest"),
]
ProviderUrlOption = Annotated[
    str | None,
    typer.Option("--provider-url", help="Chain data provider URL"),
]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", "-l", help="Log level")]


def _network(
    network: str | None, provider_url: str | None, log_level: str | None
) -> BitcoinNetwork:
    try:
        settings = setup_cli(log_level, network=network, provider_url=provider_url)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"Invalid option: {e}", err=True)
        raise typer.Exit(2)
    return BitcoinNetwork.from_settings(settings)


async def _with_network(service: BitcoinNetwork, coro: Coroutine[Any, Any, T]) -> T:
    try:
        return await coro
    finally:
        await service.close()


@app.command()
def unspent(
    address: Annotated[str, typer.Argument(help="Address to list unspent outputs for")],
    network: NetworkOption = None,
    provider_url: ProviderUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """List the unspent outputs of an address and their total."""
    service = _network(network, provider_url, log_level)
    try:
        outputs = run_blocking(
            _with_network(service, service.unspent_inputs_for_address(address))
        )
    except CoinmuxError as e:
        logger.error(f"Unable to list unspent outputs: {e}")
        raise typer.Exit(1)

    for output in outputs:
        typer.echo(f"{output}  {format_amount(output.amount)}")
    total = sum(output.amount for output in outputs)
    typer.echo(f"Total: {format_amount(total)} in {len(outputs)} output(s)")


@app.command("check-key")
def check_key(
    private_key: Annotated[
        str,
        typer.Option(
            "--private-key",
            "-k",
            prompt="Private key",
            hide_input=True,
            help="Private key as hex or WIF",
        ),
    ],
    network: NetworkOption = None,
    provider_url: ProviderUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Derive the participant input owned by a private key.

    The key is never echoed; only the derived address, public key and its
    unspent outputs are printed.
    """
    service = _network(network, provider_url, log_level)
    try:
        participant = run_blocking(_with_network(service, service.build_input(private_key)))
    except CoinmuxError as e:
        logger.error(f"Unable to derive participant input: {e}")
        raise typer.Exit(1)

    typer.echo(f"Address:    {participant.address}")
    typer.echo(f"Public key: {participant.public_key}")
    typer.echo(f"Amount:     {format_amount(participant.amount)}")
    for output in participant.unspent:
        typer.echo(f"  {output}  {format_amount(output.amount)}")


@app.command()
def broadcast(
    tx_hex: Annotated[str, typer.Argument(help="Signed raw transaction as hex")],
    network: NetworkOption = None,
    provider_url: ProviderUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Relay a signed raw transaction through the chain data provider."""
    try:
        raw = bytes.fromhex(tx_hex.strip())
    except ValueError:
        typer.echo("Transaction must be hex encoded", err=True)
        raise typer.Exit(2)

    service = _network(network, provider_url, log_level)
    try:
        tx_hash = run_blocking(_with_network(service, service.post_transaction(raw)))
    except CoinmuxError as e:
        logger.error(f"Broadcast failed: {e}")
        raise typer.Exit(1)
    typer.echo(tx_hash)


@app.command("config-init")
def config_init(
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            help="Data directory (default: ~/.coinmux-ng or $COINMUX_DATA_DIR)",
        ),
    ] = None,
    show: Annotated[
        bool, typer.Option("--show", help="Print the template instead of writing it")
    ] = False,
) -> None:
    """Write the commented configuration template."""
    if show:
        typer.echo(generate_config_template())
        return

    setup_logging()
    config_path = ensure_config_file(data_dir)
    typer.echo(f"Config file: {config_path}")


def main() -> None:
    """Entry point for the ``mux-wallet`` console script."""
    app()


if __name__ == "__main__":
    main()
