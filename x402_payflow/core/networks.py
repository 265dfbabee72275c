"""Network metadata: chain ids, default RPC endpoints and USDC token domains.

Base networks come from the ``x402`` package's chain table. Polygon is not
in that table, so its USDC entries live here.
"""

from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Optional, Union

from x402 import chains
from x402.common import process_price_to_atomic_amount as x402_process_price


class KnownToken(NamedTuple):
    address: str
    name: str  # must match name() on the contract for EIP-712
    version: str
    decimals: int


class LocalNetwork(NamedTuple):
    chain_id: int
    usdc: KnownToken


LOCAL_NETWORKS: dict[str, LocalNetwork] = {
    "polygon": LocalNetwork(
        137,
        KnownToken("0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "USD Coin", "2", 6),
    ),
    "polygon-amoy": LocalNetwork(
        80002,
        KnownToken("0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582", "USDC", "2", 6),
    ),
}

DEFAULT_RPC_URLS = {
    "base": "https://mainnet.base.org",
    "base-sepolia": "https://sepolia.base.org",
    "polygon": "https://polygon-rpc.com",
    "polygon-amoy": "https://rpc-amoy.polygon.technology",
}

DEFAULT_TOKEN_NAME = "USDC"
DEFAULT_TOKEN_VERSION = "2"


def get_chain_id(network: str) -> int:
    """Get the chain ID for a network name or a numeric chain id string."""
    if network in LOCAL_NETWORKS:
        return LOCAL_NETWORKS[network].chain_id
    return int(chains.get_chain_id(network))


def get_default_rpc_url(network: str) -> str:
    try:
        return DEFAULT_RPC_URLS[network]
    except KeyError:
        raise ValueError(f"No default RPC endpoint for network {network!r}")


def find_token_domain(network: str, asset: str) -> Optional[tuple[str, str]]:
    """EIP-712 ``(name, version)`` of a known token, or None."""
    local = LOCAL_NETWORKS.get(network)
    if local:
        if local.usdc.address.lower() == asset.lower():
            return local.usdc.name, local.usdc.version
        return None
    try:
        chain_id = chains.get_chain_id(network)
        return chains.get_token_name(chain_id, asset), chains.get_token_version(chain_id, asset)
    except (KeyError, ValueError):
        return None


def _local_atomic_amount(price: str, token: KnownToken) -> str:
    try:
        amount = Decimal(price.lstrip("$"))
    except InvalidOperation:
        raise ValueError(f"Invalid price: {price!r}")
    return str(int(amount.scaleb(token.decimals).to_integral_value()))


def process_price_to_atomic_amount(
    price: Union[str, int, float], network: str
) -> tuple[str, str, dict[str, str]]:
    """Convert a USD price into USDC atomic units for ``network``.

    Accepts ``"$0.10"``, ``"0.10"``, ``0.1``, ``1`` or ``"$1,000"``.

    Returns:
        (atomic amount, asset address, EIP-712 domain ``{name, version}``)

    Raises:
        ValueError: the price cannot be parsed or the network is unknown.
    """
    money = str(price).strip().replace(",", "")
    if money.lstrip("$").startswith("-"):
        raise ValueError(f"Price must not be negative: {price!r}")

    local = LOCAL_NETWORKS.get(network)
    if local:
        token = local.usdc
        amount = _local_atomic_amount(money, token)
        return amount, token.address, {"name": token.name, "version": token.version}

    try:
        amount, asset, domain = x402_process_price(money, network)
    except (ArithmeticError, KeyError) as e:
        raise ValueError(f"Invalid price {price!r} for {network}: {e}") from e
    return str(amount), asset, dict(domain)
