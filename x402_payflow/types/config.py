"""Configuration types for x402_payflow."""

import logging
import os
from enum import Enum
from typing import Mapping, Optional, Union

from pydantic import BaseModel, model_validator

from .errors import ConfigError


logger = logging.getLogger(__name__)


X402_EXTENSION_URI = "https://github.com/google-a2a/a2a-x402/v0.1"

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"
DEFAULT_NETWORK = "base-sepolia"
SUPPORTED_SERVICE_NETWORKS = ("base", "base-sepolia", "polygon", "polygon-amoy")


class SettlementMode(str, Enum):
    """How the service finalizes verified payments. Fixed at startup."""
    FACILITATOR = "facilitator"
    DIRECT = "direct"


class PayerMode(str, Enum):
    """Which proof the caller is able to build."""
    EIP3009 = "eip3009"
    DIRECT_TRANSFER = "direct-transfer"


class X402ServerConfig(BaseModel):
    """Configuration for how a server expects to be paid"""
    price: Union[str, int, float] = "$0.10"
    pay_to_address: str
    network: str = DEFAULT_NETWORK
    description: str = "Payment required for this service"
    mime_type: str = "application/json"
    max_timeout_seconds: int = 600
    resource: Optional[str] = None
    asset_address: Optional[str] = None
    settlement_mode: SettlementMode = SettlementMode.FACILITATOR
    facilitator_url: Optional[str] = None
    facilitator_api_key: Optional[str] = None
    private_key: Optional[str] = None
    rpc_url: Optional[str] = None
    accept_direct_transfer: bool = False
    min_confirmations: int = 1
    service_name: str = "x402-payment-api"
    service_version: str = "1.0.0"

    @model_validator(mode="after")
    def _check_settlement_credentials(self) -> "X402ServerConfig":
        if self.settlement_mode is SettlementMode.DIRECT and not self.private_key:
            raise ConfigError(
                "Direct settlement requires a private key (PRIVATE_KEY)"
            )
        return self

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, port: int = 3000
    ) -> "X402ServerConfig":
        """Build the server configuration from environment variables.

        ``SETTLEMENT_MODE`` accepts ``facilitator``, ``direct`` or ``local``.
        When unset, a configured ``FACILITATOR_URL`` wins, then a
        ``PRIVATE_KEY`` selects direct settlement.
        """
        env = os.environ if environ is None else environ

        pay_to_address = env.get("PAY_TO_ADDRESS")
        if not pay_to_address:
            raise ConfigError("PAY_TO_ADDRESS is required")

        requested_network = env.get("NETWORK", DEFAULT_NETWORK)
        network = requested_network
        if network not in SUPPORTED_SERVICE_NETWORKS:
            logger.warning(
                f"Network {requested_network!r} is not explicitly supported. "
                f"Falling back to {DEFAULT_NETWORK!r}."
            )
            network = DEFAULT_NETWORK

        facilitator_url = env.get("FACILITATOR_URL") or None
        private_key = env.get("PRIVATE_KEY") or None
        mode_env = (env.get("SETTLEMENT_MODE") or "").lower()
        if mode_env in ("local", "direct"):
            settlement_mode = SettlementMode.DIRECT
        elif mode_env == "facilitator":
            settlement_mode = SettlementMode.FACILITATOR
        elif mode_env:
            raise ConfigError(f"Unknown SETTLEMENT_MODE: {mode_env!r}")
        elif facilitator_url:
            settlement_mode = SettlementMode.FACILITATOR
        elif private_key:
            settlement_mode = SettlementMode.DIRECT
        else:
            settlement_mode = SettlementMode.FACILITATOR

        return cls(
            pay_to_address=pay_to_address,
            network=network,
            price=env.get("PRICE", "$0.10"),
            resource=env.get("SERVICE_URL") or f"http://localhost:{port}/process",
            settlement_mode=settlement_mode,
            facilitator_url=facilitator_url,
            facilitator_api_key=env.get("FACILITATOR_API_KEY") or None,
            private_key=private_key,
            rpc_url=env.get("RPC_URL") or None,
            accept_direct_transfer=_env_flag(env.get("ACCEPT_DIRECT_TRANSFER")),
            min_confirmations=int(env.get("MIN_CONFIRMATIONS", "1")),
        )


class X402ClientConfig(BaseModel):
    """Configuration for a paying caller"""
    agent_url: str = "http://localhost:3000"
    payer_mode: PayerMode = PayerMode.EIP3009
    private_key: Optional[str] = None
    rpc_url: Optional[str] = None
    max_value: Optional[int] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "X402ClientConfig":
        env = os.environ if environ is None else environ
        mode = (env.get("PAYER_MODE") or PayerMode.EIP3009.value).lower()
        try:
            payer_mode = PayerMode(mode)
        except ValueError:
            raise ConfigError(f"Unknown payer mode: {mode}")
        max_value = env.get("MAX_PAYMENT_VALUE")
        return cls(
            agent_url=env.get("AGENT_URL", "http://localhost:3000"),
            payer_mode=payer_mode,
            private_key=env.get("CLIENT_PRIVATE_KEY") or None,
            rpc_url=env.get("RPC_URL") or None,
            max_value=int(max_value) if max_value else None,
        )


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")
