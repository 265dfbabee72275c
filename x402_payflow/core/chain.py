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
"""EVM chain access for token transfers, receipts and EIP-3009 settlement."""

import json
import logging
from typing import NamedTuple, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound

from ..types import EIP3009Authorization, PaymentError, UpstreamError
from .networks import get_default_rpc_url
from .typed_data import nonce_to_bytes


logger = logging.getLogger(__name__)

USDC_ABI = json.loads(
    """
[
    {
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"}
        ],
        "name": "transferWithAuthorization",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "authorizer", "type": "address"},
            {"name": "nonce", "type": "bytes32"}
        ],
        "name": "authorizationState",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": false,
        "inputs": [
            {"indexed": true, "name": "from", "type": "address"},
            {"indexed": true, "name": "to", "type": "address"},
            {"indexed": false, "name": "value", "type": "uint256"}
        ],
        "name": "Transfer",
        "type": "event"
    }
]
"""
)

DEFAULT_GAS_LIMIT = 200000


class TokenTransfer(NamedTuple):
    asset: str
    sender: str
    recipient: str
    value: int


class TransactionStatus(NamedTuple):
    succeeded: bool
    confirmations: int
    transfers: list[TokenTransfer]


class EvmChainGateway:
    """Thin wrapper over a web3 connection for one network.

    Reads raise :class:`UpstreamError` when the RPC cannot answer; writes
    raise :class:`PaymentError` when a transaction is not mined successfully.
    """

    def __init__(
        self,
        network: str,
        rpc_url: Optional[str] = None,
        private_key: Optional[str] = None,
        w3: Optional[Web3] = None,
    ):
        self.network = network
        self.rpc_url = rpc_url or get_default_rpc_url(network)
        self.w3 = w3 or Web3(
            Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": 120})
        )
        self._account = (
            self.w3.eth.account.from_key(private_key) if private_key else None
        )

    @property
    def address(self) -> str:
        if self._account is None:
            raise PaymentError("No signing key configured for chain submissions")
        return self._account.address

    def _token(self, asset: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(asset), abi=USDC_ABI
        )

    def get_transaction_status(self, tx_hash: str) -> Optional[TransactionStatus]:
        """Receipt summary for ``tx_hash``, or None if it is not mined yet."""
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise UpstreamError(f"Could not fetch receipt for {tx_hash}: {e}", source="chain") from e

        try:
            latest_block = self.w3.eth.block_number
        except Exception as e:
            raise UpstreamError(f"Could not fetch latest block: {e}", source="chain") from e

        transfers = []
        for log in receipt["logs"]:
            try:
                event = self._token(log["address"]).events.Transfer().process_log(log)
            except Exception:
                # Not an ERC-20 Transfer log.
                continue
            transfers.append(
                TokenTransfer(
                    asset=log["address"],
                    sender=event["args"]["from"],
                    recipient=event["args"]["to"],
                    value=int(event["args"]["value"]),
                )
            )

        return TransactionStatus(
            succeeded=receipt["status"] == 1,
            confirmations=max(0, latest_block - receipt["blockNumber"] + 1),
            transfers=transfers,
        )

    def authorization_used(self, asset: str, authorizer: str, nonce: str) -> bool:
        try:
            return bool(
                self._token(asset)
                .functions.authorizationState(
                    Web3.to_checksum_address(authorizer), nonce_to_bytes(nonce)
                )
                .call()
            )
        except Exception as e:
            raise UpstreamError(f"Could not read authorization state: {e}", source="chain") from e

    def _send(self, function_call) -> str:
        sender = self.address
        try:
            tx_nonce = self.w3.eth.get_transaction_count(sender)
            latest_block = self.w3.eth.get_block("latest")
            max_priority_fee = self.w3.eth.max_priority_fee
            max_fee = max_priority_fee + 2 * latest_block["baseFeePerGas"]

            tx_unsigned = function_call.build_transaction(
                {
                    "from": sender,
                    "nonce": tx_nonce,
                    "maxFeePerGas": max_fee,
                    "maxPriorityFeePerGas": max_priority_fee,
                    "gas": DEFAULT_GAS_LIMIT,
                    "chainId": self.w3.eth.chain_id,
                }
            )
            signed_tx = self._account.sign_transaction(tx_unsigned)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise UpstreamError(f"Transaction submission failed: {e}", source="chain") from e

        tx_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            logger.error(f"Transaction {tx_hex} reverted. Receipt: {Web3.to_json(receipt)}")
            raise PaymentError(f"transaction_failed: {tx_hex}")
        return tx_hex

    def transfer_with_authorization(
        self, asset: str, authorization: EIP3009Authorization, signature: str
    ) -> str:
        """Execute a signed EIP-3009 authorization and wait for the receipt."""
        sig = bytes.fromhex(signature.removeprefix("0x"))
        if len(sig) != 65:
            raise PaymentError("signature must be 65 bytes")
        r, s, v = sig[:32], sig[32:64], sig[64]
        if v < 27:
            v += 27

        logger.info(
            f"Submitting transferWithAuthorization from {authorization.from_} "
            f"to {authorization.to} for {authorization.value}"
        )
        call = self._token(asset).functions.transferWithAuthorization(
            Web3.to_checksum_address(authorization.from_),
            Web3.to_checksum_address(authorization.to),
            int(authorization.value),
            int(authorization.valid_after),
            int(authorization.valid_before),
            nonce_to_bytes(authorization.nonce),
            v,
            r,
            s,
        )
        return self._send(call)

    def send_token_transfer(self, asset: str, pay_to: str, amount: str) -> str:
        """Plain ERC-20 ``transfer`` from the configured key."""
        logger.info(f"Sending {amount} of {asset} from {self.address} to {pay_to}")
        call = self._token(asset).functions.transfer(
            Web3.to_checksum_address(pay_to), int(amount)
        )
        return self._send(call)
