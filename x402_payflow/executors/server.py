"""Server-side executor for merchant implementations."""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, NamedTuple, Optional, Union

from a2a.types import MessageSendParams

from .base import (
    AgentExecutor,
    Event,
    EventQueue,
    RequestContext,
    X402BaseExecutor,
    drain_events,
)
from ..core.chain import EvmChainGateway
from ..core.merchant import create_accepts_for_config, create_payment_required_response
from ..core.settlement import SettlementStrategy, create_settlement_strategy
from ..core.utils import PaymentTaskFlow
from ..core.verification import (
    find_matching_requirement,
    unix_now,
    verify_direct_transfer_payment,
    verify_exact_payment,
)
from ..types import (
    DirectTransferPaymentPayload,
    ExactPaymentPayload,
    Message,
    PaymentRequired,
    PaymentRequirements,
    PaymentStatus,
    SettleResponse,
    UpstreamError,
    VerifyResponse,
    X402ErrorCode,
    X402ServerConfig,
    map_error_to_code,
)


logger = logging.getLogger(__name__)

AnyPaymentPayload = Union[ExactPaymentPayload, DirectTransferPaymentPayload]


class ProcessResult(NamedTuple):
    """HTTP status and JSON body for one /process exchange."""
    status_code: int
    body: dict[str, Any]


def _dump(event: Event) -> dict:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def _display_price(price: Union[str, int, float]) -> str:
    text = str(price).strip()
    if text.startswith("$"):
        return text
    try:
        return f"${Decimal(text):.2f}"
    except InvalidOperation:
        return text


class X402ServerExecutor(X402BaseExecutor):
    """Payment middleware for a merchant: require → verify → execute → settle.

    Stateless between exchanges. The requirements are rebuilt from the
    server configuration on every request, so a resubmitted payload is
    matched against exactly what this service advertises.

    Example:
        executor = X402ServerExecutor(my_handler, X402ServerConfig(
            pay_to_address="0x123...",
            network="base-sepolia",
        ))
        result = await executor.process_request(message)
    """

    def __init__(
        self,
        delegate: AgentExecutor,
        server_config: X402ServerConfig,
        settlement: Optional[SettlementStrategy] = None,
        gateway: Optional[EvmChainGateway] = None,
        clock: Callable[[], int] = unix_now,
    ):
        """Initialize server executor.

        Args:
            delegate: Underlying work handler, run only for verified payments
            server_config: How this service expects to be paid
            settlement: Settlement strategy; built from server_config if omitted
            gateway: Chain access for direct-transfer verification
            clock: Unix time source used for authorization windows
        """
        super().__init__(delegate)
        self.server_config = server_config
        self.settlement = settlement or create_settlement_strategy(server_config)
        if gateway is None and server_config.accept_direct_transfer:
            gateway = EvmChainGateway(server_config.network, server_config.rpc_url)
        self.gateway = gateway
        self._clock = clock

    def payment_requirements(self) -> list[PaymentRequirements]:
        return create_accepts_for_config(self.server_config)

    def create_payment_required_response(self) -> PaymentRequired:
        return create_payment_required_response(
            self.payment_requirements(), error=self.server_config.description
        )

    def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": self.server_config.service_name,
            "version": self.server_config.service_version,
            "payment": {
                "address": self.server_config.pay_to_address,
                "network": self.server_config.network,
                "price": _display_price(self.server_config.price),
            },
        }

    async def verify_payment(self, payload: AnyPaymentPayload) -> VerifyResponse:
        """Check a proof against what this service advertised.

        Read-only; repeated calls with the same payload agree.

        Raises:
            UpstreamError: validity could not be determined.
        """
        accepts = self.payment_requirements()
        requirements = find_matching_requirement(accepts, payload)
        if requirements is None:
            logger.warning(
                f"No advertised requirement for scheme={payload.scheme!r}, "
                f"network={payload.network!r}"
            )
            mismatch = (
                "network"
                if any(req.scheme == payload.scheme for req in accepts)
                else "scheme"
            )
            return VerifyResponse.invalid(
                f"unadvertised_{mismatch}: {payload.scheme} on {payload.network}"
            )

        if isinstance(payload, DirectTransferPaymentPayload):
            if self.gateway is None:
                return VerifyResponse.invalid("direct_transfer_not_supported")
            return await asyncio.to_thread(
                verify_direct_transfer_payment,
                payload,
                requirements,
                self.gateway,
                self.server_config.min_confirmations,
            )

        local = verify_exact_payment(payload, requirements, now=self._clock())
        if not local.is_valid:
            return local

        remote = await self.settlement.verify(payload, requirements)
        if not remote.is_valid:
            return remote
        return VerifyResponse.valid(payer=remote.payer or local.payer)

    async def settle_payment(self, payload: AnyPaymentPayload) -> SettleResponse:
        """Finalize a verified payment. Never raises for settlement failures."""
        requirements = find_matching_requirement(self.payment_requirements(), payload)
        if requirements is None:
            return SettleResponse(
                success=False,
                network=payload.network,
                error_reason="unadvertised_payment_option",
            )

        if isinstance(payload, DirectTransferPaymentPayload):
            # Funds moved when the caller built the proof.
            return SettleResponse(
                success=True,
                transaction=payload.payload.transaction,
                network=payload.network,
                payer=payload.payer,
            )

        return await self.settlement.settle(payload, requirements)

    async def process_request(
        self,
        message: Message,
        task_id: Optional[str] = None,
        context_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ProcessResult:
        """Run one exchange of the two-phase call.

        Raises:
            MessageError: the attached payment payload or the identifiers
                are malformed.
        """
        payment_payload = None
        if self.utils.get_payment_status_from_message(message) == PaymentStatus.PAYMENT_SUBMITTED:
            payment_payload = self.utils.get_payment_payload_from_message(message)

        flow = PaymentTaskFlow.start(message, task_id, context_id, metadata)

        if payment_payload is None:
            flow.require_payment(self.create_payment_required_response())
            logger.info(f"💰 Payment required for task {flow.task.id}")
            return ProcessResult(200, {
                "success": False,
                "error": "Payment Required",
                "task": _dump(flow.task),
                "events": [_dump(flow.task)],
            })

        return await self._process_paid_request(flow, message, payment_payload)

    def _failure(self, status_code: int, error: str, reason: str, flow: PaymentTaskFlow, events: list) -> ProcessResult:
        return ProcessResult(status_code, {
            "error": error,
            "reason": reason,
            "task": _dump(flow.task),
            "events": [_dump(event) for event in events] + [_dump(flow.task)],
        })

    async def _process_paid_request(
        self,
        flow: PaymentTaskFlow,
        message: Message,
        payment_payload: AnyPaymentPayload,
    ) -> ProcessResult:
        """Process paid request: verify → execute → settle."""
        task = flow.submit(payment_payload)
        logger.info(f"✅ Received payment payload. Beginning verification for task: {task.id}")

        try:
            verify_response = await self.verify_payment(payment_payload)
        except UpstreamError as e:
            logger.error(f"Could not verify payment for task {task.id}: {e}")
            flow.fail(f"Verification unavailable: {e}", map_error_to_code(e))
            return self._failure(502, "Payment verification unavailable", str(e), flow, [])

        if not verify_response.is_valid:
            reason = verify_response.invalid_reason or "Invalid payment"
            logger.warning(f"Payment verification failed: {reason}")
            flow.reject(reason)
            return self._failure(402, "Payment verification failed", reason, flow, [])

        logger.info(f"Payment verified for task {task.id} (payer {verify_response.payer})")
        task = flow.verify(verify_response)
        context = RequestContext(
            request=MessageSendParams(message=message.model_copy(deep=True)),
            task_id=task.id,
            context_id=task.context_id,
            task=task,
        )
        event_queue = EventQueue()

        try:
            await self._delegate.execute(context, event_queue)
        except Exception as e:
            logger.error(f"Exception during delegate execution: {e}", exc_info=True)
            events = await drain_events(event_queue)
            flow.fail(f"Service failed: {e}", X402ErrorCode.SERVICE_FAILED)
            return self._failure(500, "Service execution failed", str(e), flow, events)

        events = await drain_events(event_queue)
        for event in events:
            flow.apply_event(event)

        # The work has run; settlement can no longer undo it.
        settle_response = await self.settle_payment(payment_payload)
        if settle_response.success:
            logger.info(f"Settlement successful: {settle_response.transaction}")
        else:
            logger.error(
                f"Settlement failed for task {task.id} after work completed: "
                f"{settle_response.error_reason}. Reconcile out of band."
            )
        flow.settle(settle_response)

        if not any(event is flow.task for event in events):
            events.append(flow.task)

        logger.info("📤 Sending response")
        return ProcessResult(200, {
            "success": settle_response.success,
            "task": _dump(flow.task),
            "events": [_dump(event) for event in events],
            "settlement": settle_response.model_dump(by_alias=True, exclude_none=True),
        })
