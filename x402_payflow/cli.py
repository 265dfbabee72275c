"""Command line entry point: run the paid service or call one."""

import asyncio
import json
import logging
import os

import click
import httpx
import uvicorn
from dotenv import load_dotenv
from eth_account import Account

from .core.chain import EvmChainGateway
from .core.wallet import DirectTransferPayer, SignedAuthorizationPayer
from .executors.server import X402ServerExecutor
from .service import EchoService
from .types import ConfigError, PayerMode, X402ClientConfig, X402ServerConfig
from .web.app import create_app
from .web.client import PaidServiceClient


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """x402 pay-per-call service and client."""
    load_dotenv()
    _configure_logging(verbose)


@main.command()
@click.option("--port", default=lambda: int(os.getenv("PORT", "3000")), help="Port to run the server on")
@click.option("--host", default="0.0.0.0", help="Host to bind the server to")
def serve(port: int, host: str):
    """Start the paid service."""
    try:
        config = X402ServerConfig.from_env(port=port)
    except ConfigError as e:
        raise click.ClickException(str(e))

    executor = X402ServerExecutor(EchoService(), config)

    click.echo(f"🚀 x402 payment API listening on {host}:{port}")
    click.echo(f"💰 Payment address: {config.pay_to_address}")
    click.echo(f"🌐 Network: {config.network}")
    click.echo(f"💵 Price per request: {executor.health()['payment']['price']}")
    click.echo(f"🧾 Settlement mode: {config.settlement_mode.value}")

    uvicorn.run(create_app(executor), host=host, port=port)


def _build_payer(config: X402ClientConfig, network: str):
    if not config.private_key:
        raise click.ClickException("CLIENT_PRIVATE_KEY is required to pay")
    if config.payer_mode is PayerMode.DIRECT_TRANSFER:
        gateway = EvmChainGateway(network, config.rpc_url, config.private_key)
        return DirectTransferPayer(gateway, max_value=config.max_value)
    return SignedAuthorizationPayer(
        Account.from_key(config.private_key), max_value=config.max_value
    )


@main.command()
@click.argument("text", default="What is 2+2?")
@click.option("--url", default=None, help="Service base URL (defaults to AGENT_URL)")
@click.option("--network", default=lambda: os.getenv("NETWORK", "base-sepolia"),
              help="Network used for direct transfers")
def call(text: str, url: str, network: str):
    """Make one paid request against a running service."""
    try:
        config = X402ClientConfig.from_env()
    except ConfigError as e:
        raise click.ClickException(str(e))

    client = PaidServiceClient(url or config.agent_url, _build_payer(config, network))

    async def run():
        health = await client.check_health()
        click.echo(f"✅ Service healthy: {json.dumps(health)}")
        return await client.call_paid_api(text)

    try:
        result = asyncio.run(run())
    except httpx.HTTPError as e:
        raise click.ClickException(f"Service unreachable: {e}")
    if not result.success:
        raise click.ClickException(result.error or "Paid call failed")
    click.echo(json.dumps(result.data, indent=2))


if __name__ == "__main__":
    main()
