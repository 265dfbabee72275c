"""Read-only payment verification against an advertised requirement.

Nothing here writes state, so verifying the same payload twice gives the
same answer as long as the chain has not moved.
"""

import logging
import time
from typing import Callable, Optional, Sequence, Union

from x402.common import find_matching_payment_requirements

from ..types import (
    DirectTransferPaymentPayload,
    ExactPaymentPayload,
    PaymentRequirements,
    VerifyResponse,
)
from .chain import EvmChainGateway
from .typed_data import recover_authorization_signer


logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def unix_now() -> int:
    return int(time.time())


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def find_matching_requirement(
    accepts: Sequence[PaymentRequirements],
    payment_payload: Union[ExactPaymentPayload, DirectTransferPaymentPayload],
) -> Optional[PaymentRequirements]:
    """The advertised requirement with the payload's scheme and network."""
    return find_matching_payment_requirements(list(accepts), payment_payload)


def verify_exact_payment(
    payment_payload: ExactPaymentPayload,
    requirements: PaymentRequirements,
    now: Optional[int] = None,
) -> VerifyResponse:
    """Check an EIP-3009 authorization offline.

    Order: signer, recipient, amount, time window.
    """
    authorization = payment_payload.payload.authorization
    try:
        signer = recover_authorization_signer(
            authorization,
            payment_payload.payload.signature,
            requirements.network,
            requirements.asset,
            requirements.extra,
        )
    except Exception as e:
        logger.warning(f"Could not recover authorization signer: {e}")
        return VerifyResponse.invalid("invalid_exact_evm_payload_signature")

    if not _same_address(signer, authorization.from_):
        logger.warning(f"Signature recovered to {signer}, claimed {authorization.from_}")
        return VerifyResponse.invalid("invalid_exact_evm_payload_signature")

    if not _same_address(authorization.to, requirements.pay_to):
        return VerifyResponse.invalid("invalid_exact_evm_payload_recipient_mismatch")

    if int(authorization.value) != int(requirements.max_amount_required):
        return VerifyResponse.invalid("invalid_exact_evm_payload_authorization_value")

    current = unix_now() if now is None else now
    if current < int(authorization.valid_after):
        return VerifyResponse.invalid("invalid_exact_evm_payload_authorization_valid_after")
    if current > int(authorization.valid_before):
        return VerifyResponse.invalid("invalid_exact_evm_payload_authorization_valid_before")

    return VerifyResponse.valid(payer=authorization.from_)


def verify_direct_transfer_payment(
    payment_payload: DirectTransferPaymentPayload,
    requirements: PaymentRequirements,
    gateway: EvmChainGateway,
    min_confirmations: int = 1,
) -> VerifyResponse:
    """Check that the referenced transaction paid the requirement.

    Raises:
        UpstreamError: the chain could not be queried.
    """
    body = payment_payload.payload
    if not _same_address(body.asset, requirements.asset):
        return VerifyResponse.invalid("direct_transfer_asset_mismatch")
    if not _same_address(body.pay_to, requirements.pay_to):
        return VerifyResponse.invalid("direct_transfer_recipient_mismatch")
    required = int(requirements.max_amount_required)
    if int(body.value) < required:
        return VerifyResponse.invalid("direct_transfer_insufficient_value")

    status = gateway.get_transaction_status(body.transaction)
    if status is None:
        return VerifyResponse.invalid("direct_transfer_transaction_not_found")
    if not status.succeeded:
        return VerifyResponse.invalid("direct_transfer_transaction_reverted")
    if status.confirmations < min_confirmations:
        return VerifyResponse.invalid("direct_transfer_transaction_unconfirmed")

    paid = sum(
        transfer.value
        for transfer in status.transfers
        if _same_address(transfer.asset, requirements.asset)
        and _same_address(transfer.sender, body.payer)
        and _same_address(transfer.recipient, requirements.pay_to)
    )
    if paid < required:
        logger.warning(
            f"Transaction {body.transaction} moved {paid} to {requirements.pay_to}, "
            f"{required} required"
        )
        return VerifyResponse.invalid("direct_transfer_amount_mismatch")

    return VerifyResponse.valid(payer=body.payer)
