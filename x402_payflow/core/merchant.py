"""Payment requirements creation functions."""

from typing import Any, Optional, Union

from ..types import (
    PaymentRequired,
    PaymentRequirements,
    PaymentScheme,
    X402ServerConfig,
    X402_VERSION,
)
from .networks import process_price_to_atomic_amount


def create_payment_requirements(
    price: Union[str, int, float],
    pay_to_address: str,
    resource: str,
    network: str = "base",
    description: str = "",
    mime_type: str = "application/json",
    scheme: str = PaymentScheme.EXACT.value,
    max_timeout_seconds: int = 600,
    asset_address: Optional[str] = None,
    output_schema: Optional[Any] = None,
) -> PaymentRequirements:
    """Creates PaymentRequirements for a priced resource.

    Args:
        price: USD amount (e.g., "$0.10", 0.10), paid in the network's USDC
        pay_to_address: Address that receives the payment
        resource: Resource identifier (e.g., "http://localhost:3000/process")
        network: Blockchain network (default: "base")
        description: Human-readable description
        mime_type: Expected response content type
        scheme: Payment scheme (default: "exact")
        max_timeout_seconds: Payment validity window
        asset_address: Token contract override; defaults to the network's USDC
        output_schema: Response schema

    Returns:
        PaymentRequirements ready for a PaymentRequired envelope
    """
    max_amount_required, usdc_address, eip712_domain = process_price_to_atomic_amount(
        price, network
    )

    return PaymentRequirements(
        scheme=scheme,
        network=network,
        asset=asset_address or usdc_address,
        pay_to=pay_to_address,
        max_amount_required=max_amount_required,
        resource=resource,
        description=description,
        mime_type=mime_type,
        max_timeout_seconds=max_timeout_seconds,
        output_schema=output_schema,
        extra=eip712_domain,
    )


def create_accepts_for_config(config: X402ServerConfig) -> list[PaymentRequirements]:
    """Every requirement the service advertises, in preference order."""
    schemes = [PaymentScheme.EXACT.value]
    if config.accept_direct_transfer:
        schemes.append(PaymentScheme.DIRECT_TRANSFER.value)

    return [
        create_payment_requirements(
            price=config.price,
            pay_to_address=config.pay_to_address,
            resource=config.resource or "/process",
            network=config.network,
            description=config.description,
            mime_type=config.mime_type,
            scheme=scheme,
            max_timeout_seconds=config.max_timeout_seconds,
            asset_address=config.asset_address,
        )
        for scheme in schemes
    ]


def create_payment_required_response(
    accepts: list[PaymentRequirements],
    error: str = "Payment required to access this resource",
) -> PaymentRequired:
    return PaymentRequired(x402_version=X402_VERSION, accepts=accepts, error=error)
