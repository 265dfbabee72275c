"""Caller-side selection of one payment requirement from a service's offer."""

import logging
from enum import Enum
from typing import Sequence

from ..types import (
    CapabilityMismatchError,
    PaymentRequired,
    PaymentRequirements,
    PaymentScheme,
)


logger = logging.getLogger(__name__)

_KNOWN_SCHEMES = {s.value for s in PaymentScheme}


class PayerCapability(str, Enum):
    """The single kind of proof a caller can construct."""
    SIGNED_AUTHORIZATION = PaymentScheme.EXACT.value
    DIRECT_TRANSFER = PaymentScheme.DIRECT_TRANSFER.value


def select_payment_requirement(
    accepts: Sequence[PaymentRequirements],
    capability: PayerCapability,
) -> PaymentRequirements:
    """Pick the requirement this caller will pay.

    Order in ``accepts`` is only a preference hint; the scheme decides.

    Raises:
        CapabilityMismatchError: no offered scheme can be paid with ``capability``.
    """
    offered = [req.scheme for req in accepts]
    if not accepts:
        raise CapabilityMismatchError("No payment requirements provided by the service")

    if capability is PayerCapability.DIRECT_TRANSFER:
        for requirement in accepts:
            if requirement.scheme == PaymentScheme.DIRECT_TRANSFER.value:
                return requirement

        if any(scheme not in _KNOWN_SCHEMES for scheme in offered):
            logger.warning(
                f"No direct-transfer option among {offered}, "
                f"using first available option ({accepts[0].scheme!r})"
            )
            return accepts[0]

        # Only 'exact' is left. Smart-wallet signatures cannot satisfy
        # transferWithAuthorization, so the schemes do not bridge.
        raise CapabilityMismatchError(
            "Service only accepts the 'exact' scheme; "
            "a direct-transfer payer cannot produce that proof",
            offered_schemes=offered,
        )

    for requirement in accepts:
        if requirement.scheme == PaymentScheme.EXACT.value:
            return requirement

    raise CapabilityMismatchError(
        "Service does not accept signed 'exact' authorizations",
        offered_schemes=offered,
    )


def is_direct_transfer_compatible(payment_required: PaymentRequired) -> bool:
    """Whether a direct-transfer payer can settle this envelope."""
    return any(
        req.scheme == PaymentScheme.DIRECT_TRANSFER.value
        for req in payment_required.accepts
    )
