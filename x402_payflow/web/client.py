"""Caller side of the two-phase exchange over HTTP."""

import logging
from typing import Any, NamedTuple, Optional, Union

import httpx

from ..core.selector import select_payment_requirement
from ..core.utils import (
    X402Utils,
    create_payment_submission_message,
    new_message_id,
    text_message,
)
from ..core.wallet import DirectTransferPayer, SignedAuthorizationPayer
from ..types import (
    DirectTransferPaymentPayload,
    ExactPaymentPayload,
    PaymentRequired,
    PaymentStatus,
    Role,
    Task,
    X402Error,
    X402Metadata,
    map_error_to_code,
)


logger = logging.getLogger(__name__)

Payer = Union[SignedAuthorizationPayer, DirectTransferPayer]


class ServiceResponse(NamedTuple):
    status_code: int
    data: dict[str, Any]
    task: Optional[Task] = None
    payment_required: Optional[PaymentRequired] = None


class CallResult(NamedTuple):
    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


class PaidServiceClient:
    """Talks to an x402-protected service: ask, pay, resubmit.

    The task and context ids from the payment-required response are echoed
    on resubmission so both exchanges belong to one logical call.
    """

    def __init__(
        self,
        base_url: str,
        payer: Optional[Payer] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.payer = payer
        self._timeout = timeout
        self._transport = transport
        self.utils = X402Utils()

    def _client(self, base_url: Optional[str] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=(base_url or self.base_url).rstrip("/"),
            timeout=self._timeout,
            transport=self._transport,
        )

    def _parse_response(self, response: httpx.Response) -> ServiceResponse:
        data = response.json()
        task = Task.model_validate(data["task"]) if data.get("task") else None
        payment_required = None
        if task is not None and not data.get("success"):
            payment_required = self.utils.get_payment_required_from_task(task)
        return ServiceResponse(response.status_code, data, task, payment_required)

    async def check_health(self, base_url: Optional[str] = None) -> dict[str, Any]:
        async with self._client(base_url) as client:
            response = await client.get("/health")
            response.raise_for_status()
            return response.json()

    async def send_request(
        self,
        text: str,
        base_url: Optional[str] = None,
        task_id: Optional[str] = None,
        context_id: Optional[str] = None,
    ) -> ServiceResponse:
        """First exchange: the request without any payment attached."""
        message = text_message(text, role=Role.user)
        body: dict[str, Any] = {
            "message": message.model_dump(mode="json", by_alias=True, exclude_none=True)
        }
        if task_id:
            body["taskId"] = task_id
        if context_id:
            body["contextId"] = context_id

        logger.info(f"📤 Sending request: {text!r}")
        async with self._client(base_url) as client:
            response = await client.post("/process", json=body)
        result = self._parse_response(response)
        if result.payment_required is not None:
            logger.info("💳 Payment required")
        return result

    async def send_paid_request(
        self,
        text: str,
        payment_payload: Union[ExactPaymentPayload, DirectTransferPaymentPayload],
        task: Optional[Task] = None,
        base_url: Optional[str] = None,
    ) -> ServiceResponse:
        """Second exchange: the same request carrying the proof."""
        message = create_payment_submission_message(
            payment_payload,
            text,
            task_id=task.id if task else None,
            message_id=new_message_id(),
        )
        body: dict[str, Any] = {
            "message": message.model_dump(mode="json", by_alias=True, exclude_none=True)
        }
        if task is not None:
            body["taskId"] = task.id
            body["contextId"] = task.context_id

        logger.info("📤 Resubmitting request with payment")
        async with self._client(base_url) as client:
            response = await client.post("/process", json=body)
        return self._parse_response(response)

    async def call_paid_api(self, text: str, base_url: Optional[str] = None) -> CallResult:
        """Run the whole two-phase call against ``base_url``.

        Failures are reported in the result rather than raised, so a caller
        acting as an intermediary can relay them.
        """
        if self.payer is None:
            return CallResult(False, error="No payer configured")

        logger.info(f"🔗 Calling x402 service: {base_url or self.base_url}")
        try:
            initial = await self.send_request(text, base_url)
            if initial.payment_required is None:
                if initial.status_code >= 400:
                    return CallResult(False, initial.data, initial.data.get("error"))
                logger.info("Request processed without payment")
                return CallResult(True, initial.data)

            # Refuse before any funds move when no offered scheme fits.
            select_payment_requirement(
                initial.payment_required.accepts, self.payer.capability
            )
            payment_payload = await self.payer.create_payment_payload(
                initial.payment_required
            )
            logger.info("✅ Payment prepared, resubmitting request")
            paid = await self.send_paid_request(
                text, payment_payload, task=initial.task, base_url=base_url
            )
        except (X402Error, httpx.HTTPError, ValueError) as e:
            logger.error(f"❌ Paid call failed: {e}")
            return CallResult(False, error=str(e), error_code=map_error_to_code(e))

        payment_status = self.utils.get_payment_status_from_task(paid.task)
        if paid.data.get("success"):
            logger.info("✅ Paid request completed")
            return CallResult(True, paid.data, payment_status=payment_status)
        error = paid.data.get("reason") or paid.data.get("error") or "Paid request failed"
        logger.error(f"❌ Paid request failed: {error}")
        error_code = None
        if paid.task is not None:
            error_code = (paid.task.metadata or {}).get(X402Metadata.ERROR_CODE_KEY)
        return CallResult(False, paid.data, error, error_code, payment_status)
