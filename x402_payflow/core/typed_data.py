"""EIP-712 TransferWithAuthorization (EIP-3009) message construction and recovery."""

from typing import Any, Optional

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import to_checksum_address

from ..types import EIP3009Authorization
from .networks import (
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_VERSION,
    find_token_domain,
    get_chain_id,
)


EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

TRANSFER_WITH_AUTHORIZATION_TYPE = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]


def resolve_token_domain(
    network: str, asset: str, extra: Optional[dict[str, Any]] = None
) -> tuple[str, str]:
    """Token ``(name, version)`` from ``extra``, else the known-token table."""
    extra = extra or {}
    known_name, known_version = find_token_domain(network, asset) or (
        DEFAULT_TOKEN_NAME,
        DEFAULT_TOKEN_VERSION,
    )
    name = extra.get("name") or known_name
    version = extra.get("version") or known_version
    return str(name), str(version)


def nonce_to_bytes(nonce: str) -> bytes:
    raw = bytes.fromhex(nonce.removeprefix("0x"))
    if len(raw) != 32:
        raise ValueError("nonce must be 32 bytes")
    return raw


def build_typed_data(
    authorization: EIP3009Authorization,
    network: str,
    asset: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Full EIP-712 message for ``authorization`` under the token's domain."""
    name, version = resolve_token_domain(network, asset, extra)
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE,
            "TransferWithAuthorization": TRANSFER_WITH_AUTHORIZATION_TYPE,
        },
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": name,
            "version": version,
            "chainId": get_chain_id(network),
            "verifyingContract": to_checksum_address(asset),
        },
        "message": {
            "from": to_checksum_address(authorization.from_),
            "to": to_checksum_address(authorization.to),
            "value": int(authorization.value),
            "validAfter": int(authorization.valid_after),
            "validBefore": int(authorization.valid_before),
            "nonce": nonce_to_bytes(authorization.nonce),
        },
    }


def encode_authorization(
    authorization: EIP3009Authorization,
    network: str,
    asset: str,
    extra: Optional[dict[str, Any]] = None,
) -> SignableMessage:
    return encode_typed_data(
        full_message=build_typed_data(authorization, network, asset, extra)
    )


def recover_authorization_signer(
    authorization: EIP3009Authorization,
    signature: str,
    network: str,
    asset: str,
    extra: Optional[dict[str, Any]] = None,
) -> str:
    """Address that produced ``signature`` over ``authorization``.

    Raises:
        ValueError: the signature or any field cannot be decoded.
    """
    signable = encode_authorization(authorization, network, asset, extra)
    return Account.recover_message(signable, signature=signature)
