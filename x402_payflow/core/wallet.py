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
"""Payment proof construction: signed authorizations and direct transfers."""

import asyncio
import logging
import time
from typing import Optional, Protocol, Union

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from x402.exact import create_nonce as x402_create_nonce

from ..types import (
    DirectTransferPaymentPayload,
    DirectTransferSchemePayload,
    EIP3009Authorization,
    ExactPaymentPayload,
    ExactSchemePayload,
    PaymentError,
    PaymentRequired,
    PaymentRequirements,
    PaymentScheme,
    X402_VERSION,
)
from .selector import PayerCapability, select_payment_requirement
from .typed_data import encode_authorization


logger = logging.getLogger(__name__)


def create_nonce() -> str:
    """Random 32-byte hex nonce for an authorization; never reuse one."""
    return "0x" + HexBytes(x402_create_nonce()).hex().removeprefix("0x")


def _check_max_value(requirements: PaymentRequirements, max_value: Optional[int]) -> None:
    if max_value is None:
        return
    required_amount = int(requirements.max_amount_required)
    if required_amount > max_value:
        raise PaymentError(
            f"Payment amount {required_amount} exceeds maximum willing to pay {max_value}"
        )


def _check_scheme(requirements: PaymentRequirements, scheme: PaymentScheme) -> None:
    if requirements.scheme != scheme.value:
        raise PaymentError(
            f"Unsupported payment scheme: {requirements.scheme}. "
            f"This payer only builds {scheme.value!r} proofs."
        )


def sign_exact_payment(
    requirements: PaymentRequirements,
    account: LocalAccount,
    x402_version: int = X402_VERSION,
    max_value: Optional[int] = None,
    now: Optional[int] = None,
) -> ExactPaymentPayload:
    """Sign an EIP-3009 TransferWithAuthorization for ``requirements``.

    Args:
        requirements: The selected 'exact' requirement
        account: Local key that signs and pays
        x402_version: Version echoed from the PaymentRequired envelope
        max_value: Maximum payment value willing to pay
        now: Unix time override, mostly for tests

    Returns:
        ExactPaymentPayload carrying only the signature and the authorization
    """
    _check_scheme(requirements, PaymentScheme.EXACT)
    _check_max_value(requirements, max_value)

    issued_at = int(time.time()) if now is None else now
    authorization = EIP3009Authorization(
        from_=account.address,
        to=requirements.pay_to,
        value=requirements.max_amount_required,
        valid_after="0",
        valid_before=str(issued_at + requirements.max_timeout_seconds),
        nonce=create_nonce(),
    )

    signable = encode_authorization(
        authorization, requirements.network, requirements.asset, requirements.extra
    )
    signed = account.sign_message(signable)
    signature = "0x" + signed.signature.hex().removeprefix("0x")

    return ExactPaymentPayload(
        x402_version=x402_version,
        network=requirements.network,
        payload=ExactSchemePayload(signature=signature, authorization=authorization),
    )


class TransferSubmitter(Protocol):
    """A wallet that can push an ERC-20 transfer on chain.

    Custodial smart wallets and local keys both fit; the call blocks until a
    transaction hash is known.
    """

    @property
    def address(self) -> str: ...

    def send_token_transfer(self, asset: str, pay_to: str, amount: str) -> str: ...


def create_direct_transfer_payment(
    requirements: PaymentRequirements,
    submitter: TransferSubmitter,
    x402_version: int = X402_VERSION,
    max_value: Optional[int] = None,
) -> DirectTransferPaymentPayload:
    """Move the required amount on chain and wrap the transaction as a proof."""
    _check_scheme(requirements, PaymentScheme.DIRECT_TRANSFER)
    _check_max_value(requirements, max_value)

    asset = requirements.asset.strip()
    pay_to = requirements.pay_to.strip()
    amount = requirements.max_amount_required

    logger.info(
        f"Executing direct transfer of {amount} (atomic units) of {asset} "
        f"from {submitter.address} to {pay_to} on {requirements.network}"
    )
    tx_hash = submitter.send_token_transfer(asset, pay_to, amount)
    if not tx_hash:
        raise PaymentError("No transaction hash returned from wallet")
    logger.info(f"✅ Transaction submitted: {tx_hash}")

    return DirectTransferPaymentPayload(
        x402_version=x402_version,
        network=requirements.network,
        payload=DirectTransferSchemePayload(
            transaction=tx_hash,
            payer=submitter.address,
            asset=asset,
            pay_to=pay_to,
            value=amount,
        ),
    )


AnyPaymentPayload = Union[ExactPaymentPayload, DirectTransferPaymentPayload]


class SignedAuthorizationPayer:
    """Pays by signing off-chain EIP-3009 authorizations with a local key."""

    capability = PayerCapability.SIGNED_AUTHORIZATION

    def __init__(self, account: LocalAccount, max_value: Optional[int] = None):
        self.account = account
        self.max_value = max_value

    @property
    def address(self) -> str:
        return self.account.address

    async def create_payment_payload(
        self, payment_required: PaymentRequired
    ) -> AnyPaymentPayload:
        requirement = select_payment_requirement(payment_required.accepts, self.capability)
        return sign_exact_payment(
            requirement,
            self.account,
            x402_version=payment_required.x402_version,
            max_value=self.max_value,
        )


class DirectTransferPayer:
    """Pays by submitting a token transfer and handing over its hash."""

    capability = PayerCapability.DIRECT_TRANSFER

    def __init__(self, submitter: TransferSubmitter, max_value: Optional[int] = None):
        self.submitter = submitter
        self.max_value = max_value

    @property
    def address(self) -> str:
        return self.submitter.address

    async def create_payment_payload(
        self, payment_required: PaymentRequired
    ) -> AnyPaymentPayload:
        requirement = select_payment_requirement(payment_required.accepts, self.capability)
        return await asyncio.to_thread(
            create_direct_transfer_payment,
            requirement,
            self.submitter,
            payment_required.x402_version,
            self.max_value,
        )


Payer = Union[SignedAuthorizationPayer, DirectTransferPayer]


async def process_payment_required(
    payment_required: PaymentRequired, payer: Payer
) -> AnyPaymentPayload:
    """Select a requirement from ``payment_required`` and build the proof."""
    return await payer.create_payment_payload(payment_required)
