"""Unit tests for x402_payflow.executors.server module."""

import pytest
from unittest.mock import AsyncMock, Mock

from x402_payflow.core.chain import TokenTransfer, TransactionStatus
from x402_payflow.core.merchant import create_payment_requirements
from x402_payflow.core.settlement import FacilitatorSettlement
from x402_payflow.core.utils import create_payment_submission_message, text_message
from x402_payflow.core.wallet import create_direct_transfer_payment, sign_exact_payment
from x402_payflow.executors.server import X402ServerExecutor
from x402_payflow.service import EchoService
from x402_payflow.types import (
    MessageError,
    SettleResponse,
    Task,
    TaskState,
    TaskStatus,
    UpstreamError,
    VerifyResponse,
    X402ErrorCode,
    X402Metadata,
    X402ServerConfig
)


STATUS = X402Metadata.STATUS_KEY


@pytest.fixture
def delegate():
    delegate = Mock()
    delegate.execute = AsyncMock()
    return delegate


@pytest.fixture
def executor(delegate, server_config, mock_settlement):
    return X402ServerExecutor(delegate, server_config, settlement=mock_settlement)


@pytest.fixture
def paid_message(exact_requirements, payer_account):
    payload = sign_exact_payment(exact_requirements, payer_account)
    return create_payment_submission_message(payload, "What is 2+2?")


class TestX402ServerExecutorSetup:
    """Test executor construction and service metadata."""

    def test_builds_configured_strategy(self, delegate, server_config):
        executor = X402ServerExecutor(delegate, server_config)
        assert isinstance(executor.settlement, FacilitatorSettlement)
        assert executor.gateway is None

    def test_health(self, executor, server_config):
        health = executor.health()
        assert health["status"] == "healthy"
        assert health["service"] == "x402-payment-api"
        assert health["payment"] == {
            "address": server_config.pay_to_address,
            "network": "base-sepolia",
            "price": "$0.10",
        }

    def test_numeric_price_is_displayed_in_dollars(self, delegate, merchant_account, mock_settlement):
        config = X402ServerConfig(pay_to_address=merchant_account.address, price=0.1)
        executor = X402ServerExecutor(delegate, config, settlement=mock_settlement)
        assert executor.health()["payment"]["price"] == "$0.10"

    def test_payment_required_response(self, executor):
        envelope = executor.create_payment_required_response()
        assert [req.scheme for req in envelope.accepts] == ["exact"]
        assert envelope.accepts[0].max_amount_required == "100000"


class TestProcessRequestPaymentRequired:
    """First exchange: no proof attached."""

    @pytest.mark.asyncio
    async def test_unpaid_request(self, executor, user_message, delegate):
        result = await executor.process_request(user_message, task_id="task-1", context_id="ctx-1")

        assert result.status_code == 200
        assert result.body["success"] is False
        assert result.body["error"] == "Payment Required"
        task = result.body["task"]
        assert task["id"] == "task-1"
        assert task["contextId"] == "ctx-1"
        assert task["status"]["state"] == "input-required"
        assert task["metadata"][STATUS] == "payment-required"
        required = task["status"]["message"]["metadata"][X402Metadata.REQUIRED_KEY]
        assert required["accepts"][0]["payTo"] == executor.server_config.pay_to_address
        assert len(result.body["events"]) == 1
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_submitted_status_without_payload(self, executor, user_message):
        user_message.metadata = {STATUS: "payment-submitted"}
        result = await executor.process_request(user_message)
        assert result.body["error"] == "Payment Required"

    @pytest.mark.asyncio
    async def test_payload_without_submitted_status(self, executor, paid_message, delegate):
        paid_message.metadata[STATUS] = "payment-required"
        result = await executor.process_request(paid_message)
        assert result.body["error"] == "Payment Required"
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_payload(self, executor, user_message):
        user_message.metadata = {
            STATUS: "payment-submitted",
            X402Metadata.PAYLOAD_KEY: {"scheme": "exact", "network": "base-sepolia"},
        }
        with pytest.raises(MessageError):
            await executor.process_request(user_message)


class TestProcessRequestPaid:
    """Second exchange: verify, execute, settle."""

    @pytest.mark.asyncio
    async def test_success(self, executor, paid_message, delegate, mock_settlement, payer_account):
        result = await executor.process_request(paid_message, task_id="task-1", context_id="ctx-1")

        assert result.status_code == 200
        assert result.body["success"] is True
        task = result.body["task"]
        assert task["id"] == "task-1"
        assert task["status"]["state"] == "completed"
        assert task["metadata"][STATUS] == "payment-completed"
        assert task["metadata"][X402Metadata.PAYER_KEY] == payer_account.address
        assert task["metadata"][X402Metadata.RECEIPTS_KEY][0]["success"] is True
        assert result.body["settlement"]["transaction"] == "0x" + "ab" * 32

        mock_settlement.verify.assert_awaited_once()
        mock_settlement.settle.assert_awaited_once()
        delegate.execute.assert_awaited_once()
        context = delegate.execute.call_args.args[0]
        assert context.task_id == "task-1"
        assert context.current_task.metadata[X402Metadata.VERIFIED_KEY] is True

    @pytest.mark.asyncio
    async def test_handler_emitted_task_is_returned(self, executor, paid_message, delegate):
        async def execute(context, event_queue):
            await event_queue.enqueue_event(Task(
                id=context.task_id,
                contextId=context.context_id,
                status=TaskStatus(state=TaskState.completed, message=text_message("4")),
            ))

        delegate.execute = AsyncMock(side_effect=execute)

        result = await executor.process_request(paid_message)

        task = result.body["task"]
        assert task["status"]["message"]["parts"][0]["text"] == "4"
        assert task["metadata"][STATUS] == "payment-completed"
        assert task["metadata"][X402Metadata.VERIFIED_KEY] is True
        assert len(result.body["events"]) == 1

    @pytest.mark.asyncio
    async def test_status_updates_are_applied(self, server_config, mock_settlement, paid_message):
        executor = X402ServerExecutor(EchoService(), server_config, settlement=mock_settlement)

        result = await executor.process_request(paid_message, task_id="task-1", context_id="ctx-1")

        assert result.status_code == 200
        events = result.body["events"]
        assert [event["kind"] for event in events] == ["status-update", "task"]
        assert events[0]["final"] is True
        task = result.body["task"]
        assert task["status"]["state"] == "completed"
        assert task["status"]["message"]["parts"][0]["text"] == "Echo: What is 2+2?"
        assert task["metadata"][STATUS] == "payment-completed"

    @pytest.mark.asyncio
    async def test_handler_events_before_failure_are_returned(self, executor, paid_message, delegate):
        async def execute(context, event_queue):
            await event_queue.enqueue_event(text_message("working"))
            raise RuntimeError("model offline")

        delegate.execute = AsyncMock(side_effect=execute)

        result = await executor.process_request(paid_message)

        assert result.status_code == 500
        assert [event["kind"] for event in result.body["events"]] == ["message", "task"]

    @pytest.mark.asyncio
    async def test_invalid_signature(self, executor, paid_message, delegate, mock_settlement):
        paid_message.metadata[X402Metadata.PAYLOAD_KEY]["payload"]["signature"] = "0x" + "a" * 130

        result = await executor.process_request(paid_message)

        assert result.status_code == 402
        assert result.body["reason"] == "invalid_exact_evm_payload_signature"
        task = result.body["task"]
        assert task["status"]["state"] == "failed"
        assert task["metadata"][STATUS] == "payment-rejected"
        assert task["metadata"][X402Metadata.ERROR_KEY] == "invalid_exact_evm_payload_signature"
        assert task["metadata"][X402Metadata.ERROR_CODE_KEY] == X402ErrorCode.INVALID_SIGNATURE
        mock_settlement.verify.assert_not_called()
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_authorization(self, delegate, server_config, mock_settlement, paid_message):
        executor = X402ServerExecutor(
            delegate, server_config, settlement=mock_settlement, clock=lambda: 4_000_000_000
        )
        result = await executor.process_request(paid_message)
        assert result.status_code == 402
        assert result.body["reason"] == "invalid_exact_evm_payload_authorization_valid_before"
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unadvertised_network(self, executor, payer_account, merchant_account, delegate):
        mainnet = create_payment_requirements(
            price="$0.10",
            pay_to_address=merchant_account.address,
            resource="http://localhost:3000/process",
            network="base",
        )
        message = create_payment_submission_message(
            sign_exact_payment(mainnet, payer_account), "What is 2+2?"
        )

        result = await executor.process_request(message)

        assert result.status_code == 402
        assert result.body["reason"].startswith("unadvertised_network")
        metadata = result.body["task"]["metadata"]
        assert metadata[STATUS] == "payment-rejected"
        assert metadata[X402Metadata.ERROR_CODE_KEY] == X402ErrorCode.NETWORK_MISMATCH
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_remote_verifier_rejects(self, executor, paid_message, mock_settlement, delegate):
        mock_settlement.verify.return_value = VerifyResponse.invalid("insufficient_funds")

        result = await executor.process_request(paid_message)

        assert result.status_code == 402
        assert result.body["reason"] == "insufficient_funds"
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_verifier_unavailable(self, executor, paid_message, mock_settlement, delegate):
        mock_settlement.verify.side_effect = UpstreamError("facilitator timeout")

        result = await executor.process_request(paid_message)

        assert result.status_code == 502
        task = result.body["task"]
        assert task["status"]["state"] == "failed"
        assert task["metadata"][STATUS] == "payment-failed"
        assert task["metadata"][X402Metadata.ERROR_CODE_KEY] == X402ErrorCode.VERIFICATION_UNAVAILABLE
        delegate.execute.assert_not_called()
        mock_settlement.settle.assert_not_called()

    @pytest.mark.asyncio
    async def test_handler_failure_skips_settlement(self, executor, paid_message, delegate, mock_settlement):
        delegate.execute.side_effect = RuntimeError("model offline")

        result = await executor.process_request(paid_message)

        assert result.status_code == 500
        assert result.body["reason"] == "model offline"
        task = result.body["task"]
        assert task["metadata"][STATUS] == "payment-failed"
        assert task["metadata"][X402Metadata.ERROR_CODE_KEY] == X402ErrorCode.SERVICE_FAILED
        mock_settlement.settle.assert_not_called()

    @pytest.mark.asyncio
    async def test_settlement_failure_after_work(self, executor, paid_message, delegate, mock_settlement):
        mock_settlement.settle.return_value = SettleResponse(
            success=False, error_reason="facilitator down", network="base-sepolia"
        )

        result = await executor.process_request(paid_message)

        assert result.status_code == 200
        assert result.body["success"] is False
        task = result.body["task"]
        assert task["status"]["state"] == "completed"
        assert task["metadata"][STATUS] == "payment-failed"
        assert task["metadata"][X402Metadata.ERROR_KEY] == "facilitator down"
        delegate.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_verify_is_idempotent(self, executor, exact_requirements, payer_account):
        payload = sign_exact_payment(exact_requirements, payer_account)
        first = await executor.verify_payment(payload)
        second = await executor.verify_payment(payload)
        assert first == second
        assert first.is_valid


class TestDirectTransferPayments:
    """Direct-transfer proofs are verified on chain and already settled."""

    @pytest.fixture
    def submitter(self):
        submitter = Mock()
        submitter.address = "0x" + "5" * 40
        submitter.send_token_transfer = Mock(return_value="0x" + "e" * 64)
        return submitter

    @pytest.fixture
    def gateway(self, direct_requirements):
        gateway = Mock()
        gateway.get_transaction_status = Mock(return_value=TransactionStatus(
            succeeded=True,
            confirmations=2,
            transfers=[TokenTransfer(
                asset=direct_requirements.asset,
                sender="0x" + "5" * 40,
                recipient=direct_requirements.pay_to,
                value=int(direct_requirements.max_amount_required),
            )],
        ))
        return gateway

    @pytest.mark.asyncio
    async def test_direct_transfer_success(
        self, delegate, direct_transfer_config, mock_settlement, gateway, direct_requirements, submitter
    ):
        executor = X402ServerExecutor(
            delegate, direct_transfer_config, settlement=mock_settlement, gateway=gateway
        )
        payload = create_direct_transfer_payment(direct_requirements, submitter)
        message = create_payment_submission_message(payload, "What is 2+2?")

        result = await executor.process_request(message)

        assert result.status_code == 200
        assert result.body["success"] is True
        assert result.body["settlement"]["transaction"] == "0x" + "e" * 64
        assert result.body["settlement"]["payer"] == submitter.address
        mock_settlement.verify.assert_not_called()
        mock_settlement.settle.assert_not_called()
        delegate.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_direct_transfer_not_advertised(
        self, executor, direct_requirements, submitter, delegate
    ):
        payload = create_direct_transfer_payment(direct_requirements, submitter)
        message = create_payment_submission_message(payload, "What is 2+2?")

        result = await executor.process_request(message)

        assert result.status_code == 402
        assert result.body["reason"].startswith("unadvertised_scheme")
        delegate.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_chain_unavailable(
        self, delegate, direct_transfer_config, mock_settlement, gateway, direct_requirements, submitter
    ):
        gateway.get_transaction_status.side_effect = UpstreamError("rpc down", source="chain")
        executor = X402ServerExecutor(
            delegate, direct_transfer_config, settlement=mock_settlement, gateway=gateway
        )
        payload = create_direct_transfer_payment(direct_requirements, submitter)

        result = await executor.process_request(
            create_payment_submission_message(payload, "What is 2+2?")
        )

        assert result.status_code == 502
        delegate.execute.assert_not_called()
