"""x402_payflow - pay-per-call x402 payments over A2A tasks."""

__version__ = "1.0.0"

from .types import (
    X402_EXTENSION_URI,
    PaymentStatus,
    X402Metadata,
    PaymentRequirements,
    PaymentRequired,
    ExactPaymentPayload,
    DirectTransferPaymentPayload,
    VerifyResponse,
    SettleResponse,
    X402ServerConfig,
    X402ClientConfig,
    X402Error,
    MessageError,
    PaymentError,
    StateError,
    ConfigError,
    CapabilityMismatchError,
    UpstreamError,
    X402ErrorCode
)
from .core import (
    PayerCapability,
    select_payment_requirement,
    process_payment_required,
    SignedAuthorizationPayer,
    DirectTransferPayer,
    create_settlement_strategy
)
from .executors import X402ServerExecutor
from .extension import add_extension_activation_header

__all__ = [
    "__version__",
    "X402_EXTENSION_URI",
    "PaymentStatus",
    "X402Metadata",
    "PaymentRequirements",
    "PaymentRequired",
    "ExactPaymentPayload",
    "DirectTransferPaymentPayload",
    "VerifyResponse",
    "SettleResponse",
    "X402ServerConfig",
    "X402ClientConfig",
    "X402Error",
    "MessageError",
    "PaymentError",
    "StateError",
    "ConfigError",
    "CapabilityMismatchError",
    "UpstreamError",
    "X402ErrorCode",
    "PayerCapability",
    "select_payment_requirement",
    "process_payment_required",
    "SignedAuthorizationPayer",
    "DirectTransferPayer",
    "create_settlement_strategy",
    "X402ServerExecutor",
    "add_extension_activation_header",
]
