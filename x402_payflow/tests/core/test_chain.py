"""Unit tests for x402_payflow.core.chain module."""

import pytest
from unittest.mock import Mock, patch
from web3.exceptions import TimeExhausted, TransactionNotFound

from x402_payflow.core.chain import EvmChainGateway, TokenTransfer
from x402_payflow.core.wallet import sign_exact_payment
from x402_payflow.types import PaymentError, UpstreamError


ASSET = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
TX_HASH = "0x" + "e" * 64


@pytest.fixture
def w3():
    w3 = Mock()
    w3.eth.block_number = 12
    return w3


class TestEvmChainGateway:
    """Test receipt parsing and RPC error mapping."""

    def test_default_rpc_url(self, w3):
        gateway = EvmChainGateway("base-sepolia", w3=w3)
        assert gateway.rpc_url == "https://sepolia.base.org"

    def test_address_requires_key(self, w3):
        with pytest.raises(PaymentError):
            EvmChainGateway("base-sepolia", w3=w3).address

    def test_pending_transaction(self, w3):
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")
        assert EvmChainGateway("base-sepolia", w3=w3).get_transaction_status(TX_HASH) is None

    def test_rpc_failure(self, w3):
        w3.eth.get_transaction_receipt.side_effect = ConnectionError("rpc down")
        with pytest.raises(UpstreamError) as excinfo:
            EvmChainGateway("base-sepolia", w3=w3).get_transaction_status(TX_HASH)
        assert excinfo.value.source == "chain"

    def test_receipt_summary(self, w3):
        w3.eth.get_transaction_receipt.return_value = {
            "status": 1,
            "blockNumber": 10,
            "logs": [{"address": ASSET}, {"address": "0x" + "9" * 40}],
        }
        gateway = EvmChainGateway("base-sepolia", w3=w3)

        token = Mock()
        token.events.Transfer.return_value.process_log.side_effect = [
            {"args": {"from": "0xPayer", "to": "0xMerchant", "value": 100000}},
            ValueError("not a Transfer event"),
        ]
        with patch.object(gateway, "_token", return_value=token):
            status = gateway.get_transaction_status(TX_HASH)

        assert status.succeeded
        assert status.confirmations == 3
        assert status.transfers == [TokenTransfer(ASSET, "0xPayer", "0xMerchant", 100000)]

    def test_reverted_receipt(self, w3):
        w3.eth.get_transaction_receipt.return_value = {"status": 0, "blockNumber": 12, "logs": []}
        status = EvmChainGateway("base-sepolia", w3=w3).get_transaction_status(TX_HASH)
        assert not status.succeeded
        assert status.confirmations == 1

    def test_authorization_state_failure(self, w3):
        gateway = EvmChainGateway("base-sepolia", w3=w3)
        with patch.object(gateway, "_token", side_effect=ConnectionError("rpc down")):
            with pytest.raises(UpstreamError):
                gateway.authorization_used(ASSET, "0x" + "1" * 40, "0x" + "2" * 64)

    def test_rejects_short_signature(self, w3, exact_requirements, payer_account):
        payload = sign_exact_payment(exact_requirements, payer_account)
        gateway = EvmChainGateway("base-sepolia", w3=w3)
        with pytest.raises(PaymentError, match="65 bytes"):
            gateway.transfer_with_authorization(ASSET, payload.payload.authorization, "0x1234")

    @pytest.fixture
    def submitting_gateway(self, w3):
        w3.eth.max_priority_fee = 1
        w3.eth.get_block.return_value = {"baseFeePerGas": 1}
        w3.eth.send_raw_transaction.return_value = bytes.fromhex("e" * 64)
        gateway = EvmChainGateway("base-sepolia", private_key="0x" + "1" * 64, w3=w3)
        gateway._account = Mock(address="0x" + "5" * 40)
        gateway._account.sign_transaction.return_value = Mock(raw_transaction=b"\x02signed")
        return gateway

    def test_submission_timeout_raises_upstream(self, submitting_gateway, w3):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt after 120s")

        with patch.object(submitting_gateway, "_token", return_value=Mock()):
            with pytest.raises(UpstreamError, match="no receipt after 120s") as excinfo:
                submitting_gateway.send_token_transfer(ASSET, "0x" + "2" * 40, "100000")
        assert excinfo.value.source == "chain"

    def test_reverted_submission_is_payment_error(self, submitting_gateway, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 0}

        with patch.object(submitting_gateway, "_token", return_value=Mock()):
            with pytest.raises(PaymentError, match="transaction_failed: " + TX_HASH):
                submitting_gateway.send_token_transfer(ASSET, "0x" + "2" * 40, "100000")

    def test_confirmed_submission_returns_hash(self, submitting_gateway, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1}

        with patch.object(submitting_gateway, "_token", return_value=Mock()):
            assert submitting_gateway.send_token_transfer(ASSET, "0x" + "2" * 40, "100000") == TX_HASH
