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
"""x402 wire models: requirements, payloads, verify and settle responses.

Payment payloads form a tagged union over the known schemes. Anything else
is rejected at the trust boundary by :func:`parse_payment_payload`.
"""

import re
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from x402.common import x402_VERSION as X402_VERSION

from .errors import MessageError


TRANSACTION_HASH_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")


class PaymentScheme(str, Enum):
    """Payment schemes this package can build and verify."""
    EXACT = "exact"
    DIRECT_TRANSFER = "direct-transfer"


def _validate_atomic_amount(value: str, field_name: str) -> str:
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be an integer encoded as a string")
    if amount < 0:
        raise ValueError(f"{field_name} must not be negative")
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaymentRequirements(_WireModel):
    """One accepted way to pay, produced fresh by the service per request."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )

    scheme: str
    network: str
    asset: str
    pay_to: str
    max_amount_required: str
    resource: str
    description: str = ""
    mime_type: str = "application/json"
    max_timeout_seconds: int = 600
    output_schema: Optional[Any] = None
    extra: Optional[dict[str, Any]] = None

    @field_validator("max_amount_required")
    def validate_max_amount_required(cls, v):
        return _validate_atomic_amount(v, "max_amount_required")


class PaymentRequired(_WireModel):
    """Envelope returned when payment is missing."""

    x402_version: int = X402_VERSION
    accepts: list[PaymentRequirements]
    error: str = ""

    @field_validator("accepts")
    def validate_accepts(cls, v):
        if not v:
            raise ValueError("accepts must contain at least one payment requirement")
        return v


class EIP3009Authorization(_WireModel):
    from_: str = Field(alias="from")
    to: str
    value: str
    valid_after: str
    valid_before: str
    nonce: str

    @field_validator("value")
    def validate_value(cls, v):
        return _validate_atomic_amount(v, "value")

    @field_validator("valid_after", "valid_before", mode="before")
    def validate_timestamps(cls, v):
        # Facilitators and wallets disagree on int vs str timestamps.
        if isinstance(v, int):
            v = str(v)
        return _validate_atomic_amount(v, "timestamp")


class ExactSchemePayload(_WireModel):
    signature: str
    authorization: EIP3009Authorization


class DirectTransferSchemePayload(_WireModel):
    transaction: str
    payer: str
    asset: str
    pay_to: str
    value: str

    @field_validator("transaction")
    def validate_transaction(cls, v):
        if not TRANSACTION_HASH_PATTERN.fullmatch(v):
            raise ValueError("transaction must be a 0x-prefixed 32-byte hash")
        return v

    @field_validator("value")
    def validate_value(cls, v):
        return _validate_atomic_amount(v, "value")


class ExactPaymentPayload(_WireModel):
    """Signed off-chain authorization proof."""

    x402_version: int = X402_VERSION
    scheme: Literal["exact"] = "exact"
    network: str
    payload: ExactSchemePayload

    @property
    def payer(self) -> str:
        return self.payload.authorization.from_


class DirectTransferPaymentPayload(_WireModel):
    """Proof that an on-chain transfer has already been submitted."""

    x402_version: int = X402_VERSION
    scheme: Literal["direct-transfer"] = "direct-transfer"
    network: str
    payload: DirectTransferSchemePayload

    @property
    def payer(self) -> str:
        return self.payload.payer


PaymentPayload = Annotated[
    Union[ExactPaymentPayload, DirectTransferPaymentPayload],
    Field(discriminator="scheme"),
]

_payment_payload_adapter: TypeAdapter = TypeAdapter(PaymentPayload)


def parse_payment_payload(data: Any) -> Union[ExactPaymentPayload, DirectTransferPaymentPayload]:
    """Validate untrusted payload data into one of the known scheme variants.

    Raises:
        MessageError: the scheme is unknown or the shape is malformed.
    """
    if isinstance(data, (ExactPaymentPayload, DirectTransferPaymentPayload)):
        return data
    if not isinstance(data, dict):
        raise MessageError("Payment payload must be an object")

    scheme = data.get("scheme")
    if scheme not in {s.value for s in PaymentScheme}:
        raise MessageError(f"Unsupported payment scheme: {scheme!r}")

    try:
        return _payment_payload_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise MessageError(f"Malformed {scheme} payment payload: {e}") from e


def dump_payment_payload(
    payment_payload: Union[ExactPaymentPayload, DirectTransferPaymentPayload],
) -> dict:
    """Serialise a payload for metadata or facilitator transport."""
    return payment_payload.model_dump(by_alias=True, exclude_none=True)


class VerifyResponse(_WireModel):
    is_valid: bool
    invalid_reason: Optional[str] = None
    payer: Optional[str] = None

    @classmethod
    def valid(cls, payer: str) -> "VerifyResponse":
        return cls(is_valid=True, payer=payer)

    @classmethod
    def invalid(cls, reason: str) -> "VerifyResponse":
        return cls(is_valid=False, invalid_reason=reason)


class SettleResponse(_WireModel):
    success: bool
    error_reason: Optional[str] = None
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None
