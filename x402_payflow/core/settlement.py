# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Settlement strategies for signed 'exact' authorizations.

Exactly one strategy is built at startup from :class:`X402ServerConfig`;
requests never choose their own.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from x402.facilitator import FacilitatorClient

from ..types import (
    ExactPaymentPayload,
    PaymentRequirements,
    SettleResponse,
    SettlementMode,
    UpstreamError,
    VerifyResponse,
    X402ServerConfig,
)
from .chain import EvmChainGateway
from .facilitator import create_facilitator_client


logger = logging.getLogger(__name__)


class SettlementStrategy(ABC):
    """Second-opinion verification and final settlement of an authorization."""

    mode: SettlementMode

    @abstractmethod
    async def verify(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        """Checks beyond the offline signature check. Must not write state."""

    @abstractmethod
    async def settle(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        """Moves the funds. Failures come back as ``success=False``."""


class FacilitatorSettlement(SettlementStrategy):
    """Delegates verify and settle to a remote facilitator and trusts its verdict.

    Transport failures and unreadable answers raise :class:`UpstreamError`
    from ``verify``; a facilitator saying "invalid" is a normal response.
    """

    mode = SettlementMode.FACILITATOR

    def __init__(self, facilitator_client: Optional[FacilitatorClient] = None):
        self.facilitator_client = facilitator_client or create_facilitator_client()

    async def verify(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        logger.info("Calling facilitator verify")
        try:
            response = await self.facilitator_client.verify(payload, requirements)
            return VerifyResponse.model_validate(response.model_dump(by_alias=True))
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Facilitator verify failed: {e}") from e

    async def settle(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        logger.info("Calling facilitator settle")
        try:
            raw = await self.facilitator_client.settle(payload, requirements)
            response = SettleResponse.model_validate(raw.model_dump(by_alias=True))
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Facilitator settlement failed: {e}")
            return SettleResponse(
                success=False,
                network=requirements.network,
                payer=payload.payer,
                error_reason=str(e),
            )
        return SettleResponse(
            success=response.success,
            transaction=response.transaction,
            network=response.network or requirements.network,
            payer=response.payer or payload.payer,
            error_reason=response.error_reason,
        )


class DirectSettlement(SettlementStrategy):
    """Settles with the service's own chain credentials (transferWithAuthorization)."""

    mode = SettlementMode.DIRECT

    def __init__(self, gateway: EvmChainGateway):
        self.gateway = gateway

    async def verify(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> VerifyResponse:
        authorization = payload.payload.authorization
        used = await asyncio.to_thread(
            self.gateway.authorization_used,
            requirements.asset,
            authorization.from_,
            authorization.nonce,
        )
        if used:
            return VerifyResponse.invalid("authorization_nonce_already_used")
        return VerifyResponse.valid(payer=authorization.from_)

    async def settle(
        self, payload: ExactPaymentPayload, requirements: PaymentRequirements
    ) -> SettleResponse:
        try:
            tx_hash = await asyncio.to_thread(
                self.gateway.transfer_with_authorization,
                requirements.asset,
                payload.payload.authorization,
                payload.payload.signature,
            )
        except Exception as e:
            logger.error(f"Direct settlement failed: {e}", exc_info=True)
            return SettleResponse(
                success=False,
                network=requirements.network,
                payer=payload.payer,
                error_reason=str(e),
            )
        logger.info(f"✅ transferWithAuthorization settled: {tx_hash}")
        return SettleResponse(
            success=True,
            transaction=tx_hash,
            network=requirements.network,
            payer=payload.payer,
        )


def create_settlement_strategy(
    config: X402ServerConfig,
    facilitator_client: Optional[FacilitatorClient] = None,
    gateway: Optional[EvmChainGateway] = None,
) -> SettlementStrategy:
    """Build the configured strategy once, at startup."""
    if config.settlement_mode is SettlementMode.DIRECT:
        return DirectSettlement(
            gateway
            or EvmChainGateway(config.network, config.rpc_url, config.private_key)
        )
    return FacilitatorSettlement(
        facilitator_client
        or create_facilitator_client(config.facilitator_url, config.facilitator_api_key)
    )
