"""Payment state definitions, metadata keys, and allowed status transitions."""

from enum import Enum
from typing import Dict, FrozenSet, Optional


class PaymentStatus(str, Enum):
    """Protocol-defined payment states for the two-phase call"""
    PAYMENT_REQUIRED = "payment-required"    # Payment requested
    PAYMENT_SUBMITTED = "payment-submitted"  # Proof attached by the caller
    PAYMENT_VERIFIED = "payment-verified"    # Proof accepted, work may run
    PAYMENT_REJECTED = "payment-rejected"    # Proof failed verification
    PAYMENT_COMPLETED = "payment-completed"  # Payment settled successfully
    PAYMENT_FAILED = "payment-failed"        # Settlement or processing failed


class X402Metadata:
    """Metadata key constants shared by caller and service"""
    STATUS_KEY = "x402.payment.status"
    REQUIRED_KEY = "x402.payment.required"      # Contains PaymentRequired
    PAYLOAD_KEY = "x402.payment.payload"        # Contains PaymentPayload
    RECEIPTS_KEY = "x402.payment.receipts"      # Contains array of SettleResponse objects
    ERROR_KEY = "x402.payment.error"            # Error reason (when failed)
    ERROR_CODE_KEY = "x402.payment.error_code"  # X402ErrorCode (when failed)
    PAYER_KEY = "x402.payment.payer"            # Verified payer address
    VERIFIED_KEY = "x402_payment_verified"      # Flag read by work handlers


# None is the status of a task the service has not touched yet.
ALLOWED_TRANSITIONS: Dict[Optional[PaymentStatus], FrozenSet[PaymentStatus]] = {
    None: frozenset({
        PaymentStatus.PAYMENT_REQUIRED,
        PaymentStatus.PAYMENT_SUBMITTED,
    }),
    PaymentStatus.PAYMENT_REQUIRED: frozenset({
        PaymentStatus.PAYMENT_SUBMITTED,
    }),
    PaymentStatus.PAYMENT_SUBMITTED: frozenset({
        PaymentStatus.PAYMENT_VERIFIED,
        PaymentStatus.PAYMENT_REJECTED,
        PaymentStatus.PAYMENT_FAILED,
    }),
    PaymentStatus.PAYMENT_VERIFIED: frozenset({
        PaymentStatus.PAYMENT_COMPLETED,
        PaymentStatus.PAYMENT_FAILED,
    }),
    PaymentStatus.PAYMENT_REJECTED: frozenset(),
    PaymentStatus.PAYMENT_COMPLETED: frozenset(),
    PaymentStatus.PAYMENT_FAILED: frozenset(),
}


def can_transition(
    current: Optional[PaymentStatus], new: PaymentStatus
) -> bool:
    """Whether a task may move from ``current`` to ``new``."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())
