"""Core package exports for x402_payflow."""

from .merchant import (
    create_payment_requirements,
    create_accepts_for_config,
    create_payment_required_response
)
from .networks import get_chain_id, process_price_to_atomic_amount
from .selector import (
    PayerCapability,
    select_payment_requirement,
    is_direct_transfer_compatible
)
from .wallet import (
    create_nonce,
    sign_exact_payment,
    create_direct_transfer_payment,
    process_payment_required,
    SignedAuthorizationPayer,
    DirectTransferPayer,
    TransferSubmitter
)
from .verification import (
    find_matching_requirement,
    verify_exact_payment,
    verify_direct_transfer_payment
)
from .facilitator import create_facilitator_client
from .chain import EvmChainGateway
from .settlement import (
    SettlementStrategy,
    FacilitatorSettlement,
    DirectSettlement,
    create_settlement_strategy
)
from .utils import (
    X402Utils,
    PaymentTaskFlow,
    create_payment_submission_message,
    parse_incoming_message
)

__all__ = [
    # Merchant side
    "create_payment_requirements",
    "create_accepts_for_config",
    "create_payment_required_response",
    "get_chain_id",
    "process_price_to_atomic_amount",

    # Caller side
    "PayerCapability",
    "select_payment_requirement",
    "is_direct_transfer_compatible",
    "create_nonce",
    "sign_exact_payment",
    "create_direct_transfer_payment",
    "process_payment_required",
    "SignedAuthorizationPayer",
    "DirectTransferPayer",
    "TransferSubmitter",

    # Verification and settlement
    "find_matching_requirement",
    "verify_exact_payment",
    "verify_direct_transfer_payment",
    "create_facilitator_client",
    "EvmChainGateway",
    "SettlementStrategy",
    "FacilitatorSettlement",
    "DirectSettlement",
    "create_settlement_strategy",

    # Utilities
    "X402Utils",
    "PaymentTaskFlow",
    "create_payment_submission_message",
    "parse_incoming_message"
]
