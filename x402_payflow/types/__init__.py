"""Types package for x402_payflow - re-exports A2A SDK types, adds x402 wire models."""


from a2a.types import (
    Task,
    Message,
    Part,
    Role,
    TextPart,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    TaskArtifactUpdateEvent
)

from .payments import (
    X402_VERSION,
    PaymentScheme,
    PaymentRequirements,
    PaymentRequired,
    PaymentPayload,
    ExactPaymentPayload,
    DirectTransferPaymentPayload,
    ExactSchemePayload,
    DirectTransferSchemePayload,
    EIP3009Authorization,
    VerifyResponse,
    SettleResponse,
    parse_payment_payload,
    dump_payment_payload
)

from .state import (
    PaymentStatus,
    X402Metadata,
    can_transition
)

from .errors import (
    X402Error,
    MessageError,
    PaymentError,
    StateError,
    ConfigError,
    CapabilityMismatchError,
    UpstreamError,
    X402ErrorCode,
    map_error_to_code,
    map_invalid_reason_to_code
)

from .config import (
    X402_EXTENSION_URI,
    DEFAULT_FACILITATOR_URL,
    SettlementMode,
    PayerMode,
    X402ServerConfig,
    X402ClientConfig
)

__all__ = [

    "Task",
    "Message",
    "Part",
    "Role",
    "TextPart",
    "TaskState",
    "TaskStatus",
    "TaskStatusUpdateEvent",
    "TaskArtifactUpdateEvent",

    "X402_VERSION",
    "PaymentScheme",
    "PaymentRequirements",
    "PaymentRequired",
    "PaymentPayload",
    "ExactPaymentPayload",
    "DirectTransferPaymentPayload",
    "ExactSchemePayload",
    "DirectTransferSchemePayload",
    "EIP3009Authorization",
    "VerifyResponse",
    "SettleResponse",
    "parse_payment_payload",
    "dump_payment_payload",

    "PaymentStatus",
    "X402Metadata",
    "can_transition",

    "X402Error",
    "MessageError",
    "PaymentError",
    "StateError",
    "ConfigError",
    "CapabilityMismatchError",
    "UpstreamError",
    "X402ErrorCode",
    "map_error_to_code",
    "map_invalid_reason_to_code",

    "X402_EXTENSION_URI",
    "DEFAULT_FACILITATOR_URL",
    "SettlementMode",
    "PayerMode",
    "X402ServerConfig",
    "X402ClientConfig",
]
