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
"""Protocol error types and error code mapping."""

from typing import Optional


class X402Error(Exception):
    """Base error for x402 protocol."""
    pass


class MessageError(X402Error):
    """Malformed request or payload shape (client error)."""
    pass


class PaymentError(X402Error):
    """Payment processing errors."""
    pass


class StateError(X402Error):
    """State transition errors."""
    pass


class ConfigError(X402Error):
    """Invalid or incomplete configuration."""
    pass


class CapabilityMismatchError(X402Error):
    """Caller and service share no payment scheme.

    Not retryable without a different caller capability.
    """

    def __init__(self, message: str, offered_schemes: Optional[list[str]] = None):
        super().__init__(message)
        self.offered_schemes = offered_schemes or []


class UpstreamError(X402Error):
    """A facilitator or chain RPC could not be reached or answered badly.

    Means "validity could not be determined", which is never the same as valid.
    """

    def __init__(self, message: str, source: str = "facilitator"):
        super().__init__(message)
        self.source = source


class X402ErrorCode:
    """Standard error codes carried in ``x402.payment.error``."""
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    EXPIRED_PAYMENT = "EXPIRED_PAYMENT"
    DUPLICATE_NONCE = "DUPLICATE_NONCE"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    SCHEME_MISMATCH = "SCHEME_MISMATCH"
    CAPABILITY_MISMATCH = "CAPABILITY_MISMATCH"
    VERIFICATION_UNAVAILABLE = "VERIFICATION_UNAVAILABLE"
    SERVICE_FAILED = "SERVICE_FAILED"

    @classmethod
    def get_all_codes(cls) -> list[str]:
        """Returns all defined error codes."""
        return [
            cls.INSUFFICIENT_FUNDS,
            cls.INVALID_SIGNATURE,
            cls.EXPIRED_PAYMENT,
            cls.DUPLICATE_NONCE,
            cls.NETWORK_MISMATCH,
            cls.INVALID_AMOUNT,
            cls.SETTLEMENT_FAILED,
            cls.INVALID_PAYLOAD,
            cls.SCHEME_MISMATCH,
            cls.CAPABILITY_MISMATCH,
            cls.VERIFICATION_UNAVAILABLE,
            cls.SERVICE_FAILED,
        ]


def map_error_to_code(error: Exception) -> str:
    """Maps implementation errors to protocol error codes."""
    error_mapping = {
        MessageError: X402ErrorCode.INVALID_PAYLOAD,
        PaymentError: X402ErrorCode.SETTLEMENT_FAILED,
        CapabilityMismatchError: X402ErrorCode.CAPABILITY_MISMATCH,
        UpstreamError: X402ErrorCode.VERIFICATION_UNAVAILABLE,
    }
    return error_mapping.get(type(error), "UNKNOWN_ERROR")


_REASON_CODES = (
    ("signature", X402ErrorCode.INVALID_SIGNATURE),
    ("valid_after", X402ErrorCode.EXPIRED_PAYMENT),
    ("valid_before", X402ErrorCode.EXPIRED_PAYMENT),
    ("insufficient_funds", X402ErrorCode.INSUFFICIENT_FUNDS),
    ("nonce", X402ErrorCode.DUPLICATE_NONCE),
    ("value", X402ErrorCode.INVALID_AMOUNT),
    ("amount", X402ErrorCode.INVALID_AMOUNT),
    ("unadvertised_network", X402ErrorCode.NETWORK_MISMATCH),
    ("unadvertised_scheme", X402ErrorCode.SCHEME_MISMATCH),
)


def map_invalid_reason_to_code(reason: str) -> str:
    """Maps a verifier's ``invalidReason`` to a protocol error code.

    Reasons come from local checks and from facilitators, so matching is
    by keyword; anything unrecognised is an invalid payload.
    """
    for keyword, code in _REASON_CODES:
        if keyword in reason:
            return code
    return X402ErrorCode.INVALID_PAYLOAD
