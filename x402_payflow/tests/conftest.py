"""Shared pytest fixtures for x402_payflow tests."""

import pytest
from unittest.mock import AsyncMock, Mock
from eth_account import Account

from x402_payflow.core.merchant import create_accepts_for_config
from x402_payflow.core.settlement import SettlementStrategy
from x402_payflow.types import (
    Message,
    Part,
    Role,
    SettleResponse,
    SettlementMode,
    Task,
    TaskState,
    TaskStatus,
    TextPart,
    VerifyResponse,
    X402ServerConfig,
)


@pytest.fixture
def payer_account():
    """Deterministic caller key for consistent signatures."""
    return Account.from_key("0x" + "1" * 64)


@pytest.fixture
def merchant_account():
    return Account.from_key("0x" + "2" * 64)


@pytest.fixture
def server_config(merchant_account):
    return X402ServerConfig(
        pay_to_address=merchant_account.address,
        network="base-sepolia",
        price="$0.10",
        resource="http://localhost:3000/process",
    )


@pytest.fixture
def direct_transfer_config(merchant_account):
    return X402ServerConfig(
        pay_to_address=merchant_account.address,
        network="base-sepolia",
        resource="http://localhost:3000/process",
        accept_direct_transfer=True,
    )


@pytest.fixture
def exact_requirements(server_config):
    """The single 'exact' requirement the default service advertises."""
    return create_accepts_for_config(server_config)[0]


@pytest.fixture
def direct_requirements(direct_transfer_config):
    return create_accepts_for_config(direct_transfer_config)[1]


@pytest.fixture
def user_message():
    return Message(
        messageId="msg-1",
        role=Role.user,
        parts=[Part(root=TextPart(text="What is 2+2?"))],
    )


@pytest.fixture
def sample_task(user_message):
    return Task(
        id="task-123",
        contextId="context-456",
        status=TaskStatus(state=TaskState.input_required, message=user_message),
        metadata={},
    )


@pytest.fixture
def mock_settlement(payer_account):
    """Settlement strategy that accepts and settles everything."""
    settlement = Mock(spec=SettlementStrategy)
    settlement.mode = SettlementMode.FACILITATOR
    settlement.verify = AsyncMock(return_value=VerifyResponse.valid(payer=payer_account.address))
    settlement.settle = AsyncMock(
        return_value=SettleResponse(
            success=True,
            transaction="0x" + "ab" * 32,
            network="base-sepolia",
            payer=payer_account.address,
        )
    )
    return settlement
