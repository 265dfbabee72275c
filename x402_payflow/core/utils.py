"""State management utilities for the x402 two-phase call."""

import random
import string
import time
import uuid
from typing import Any, Optional, Union

from a2a.types import (
    Part,
    Role,
    TaskArtifactUpdateEvent,
    TaskStatusUpdateEvent,
    TextPart,
)
from a2a.utils.helpers import append_artifact_to_task

from ..types import (
    DirectTransferPaymentPayload,
    ExactPaymentPayload,
    Message,
    MessageError,
    PaymentRequired,
    PaymentStatus,
    SettleResponse,
    StateError,
    Task,
    TaskState,
    TaskStatus,
    VerifyResponse,
    X402ErrorCode,
    X402Metadata,
    can_transition,
    map_invalid_reason_to_code,
    dump_payment_payload,
    parse_payment_payload,
)


AnyPaymentPayload = Union[ExactPaymentPayload, DirectTransferPaymentPayload]

TERMINAL_STATES = frozenset({
    TaskState.completed,
    TaskState.failed,
    TaskState.canceled,
    TaskState.rejected,
})


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_task_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task-{_now_ms()}-{suffix}"


def new_context_id() -> str:
    return f"context-{_now_ms()}"


def new_message_id() -> str:
    return f"msg-{_now_ms()}-{uuid.uuid4().hex[:8]}"


def text_message(text: str, role: Role = Role.agent, metadata: Optional[dict] = None) -> Message:
    return Message(
        messageId=new_message_id(),
        role=role,
        parts=[Part(root=TextPart(text=text))],
        metadata=metadata,
    )


def message_text(message: Optional[Message]) -> str:
    """Concatenated text parts of ``message``."""
    if not message or not message.parts:
        return ""
    return " ".join(
        part.root.text for part in message.parts if isinstance(part.root, TextPart)
    )


def parse_incoming_message(data: Any) -> Message:
    """Validate a request's ``message`` into an A2A Message.

    Callers may omit ``messageId`` and ``role``; they default to a fresh id
    and ``user``.

    Raises:
        MessageError: the message is missing or malformed.
    """
    if isinstance(data, Message):
        return data
    if not data or not isinstance(data, dict):
        raise MessageError("Missing message in request body")
    data = {"messageId": new_message_id(), "role": Role.user.value, **data}
    try:
        return Message.model_validate(data)
    except ValueError as e:
        raise MessageError(f"Malformed message: {e}") from e


def create_payment_submission_message(
    payment_payload: AnyPaymentPayload,
    text: str,
    task_id: Optional[str] = None,
    message_id: Optional[str] = None,
) -> Message:
    """Caller's resubmission message carrying the proof.

    Args:
        payment_payload: Proof built for the selected requirement
        text: The original request text, repeated
        task_id: Task ID for correlation
        message_id: Optional specific message ID
    """
    return Message(
        messageId=message_id or new_message_id(),
        taskId=task_id,
        role=Role.user,
        parts=[Part(root=TextPart(text=text))],
        metadata={
            X402Metadata.STATUS_KEY: PaymentStatus.PAYMENT_SUBMITTED.value,
            X402Metadata.PAYLOAD_KEY: dump_payment_payload(payment_payload),
        },
    )


class X402Utils:
    """Reads x402 metadata out of A2A messages and tasks."""

    STATUS_KEY = X402Metadata.STATUS_KEY
    REQUIRED_KEY = X402Metadata.REQUIRED_KEY
    PAYLOAD_KEY = X402Metadata.PAYLOAD_KEY
    RECEIPTS_KEY = X402Metadata.RECEIPTS_KEY
    ERROR_KEY = X402Metadata.ERROR_KEY

    def get_payment_status_from_message(self, message: Optional[Message]) -> Optional[PaymentStatus]:
        """Extract payment status from message metadata."""
        if not message or not message.metadata:
            return None

        status_value = message.metadata.get(self.STATUS_KEY)
        if status_value:
            try:
                return PaymentStatus(status_value)
            except ValueError:
                return None
        return None

    def get_payment_payload_from_message(self, message: Optional[Message]) -> Optional[AnyPaymentPayload]:
        """Extract the proof from message metadata.

        Raises:
            MessageError: a payload is present but malformed or of an unknown scheme.
        """
        if not message or not message.metadata:
            return None

        payload_data = message.metadata.get(self.PAYLOAD_KEY)
        if payload_data is None:
            return None
        return parse_payment_payload(payload_data)

    def get_payment_required_from_task(self, task: Optional[Task]) -> Optional[PaymentRequired]:
        """PaymentRequired envelope from the task's status message (or task metadata)."""
        if not task:
            return None
        sources = []
        if task.status and task.status.message and task.status.message.metadata:
            sources.append(task.status.message.metadata)
        if task.metadata:
            sources.append(task.metadata)

        for metadata in sources:
            req_data = metadata.get(self.REQUIRED_KEY)
            if req_data:
                try:
                    return PaymentRequired.model_validate(req_data)
                except ValueError as e:
                    raise MessageError(f"Malformed payment requirements: {e}") from e
        return None

    def get_payment_status_from_task(self, task: Optional[Task]) -> Optional[PaymentStatus]:
        if not task or not task.metadata:
            return None
        try:
            return PaymentStatus(task.metadata.get(self.STATUS_KEY))
        except ValueError:
            return None


class PaymentTaskFlow:
    """One logical paid call, tracked on a single A2A Task.

    The payment status is an explicit field whose transitions are checked;
    every change is mirrored into ``task.metadata`` and the status message
    metadata under the ``x402.payment.*`` keys.
    """

    STATUS_KEY = X402Metadata.STATUS_KEY

    def __init__(self, task: Task):
        self.task = task
        self.payment_status: Optional[PaymentStatus] = None

    @classmethod
    def start(
        cls,
        message: Message,
        task_id: Optional[str] = None,
        context_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> "PaymentTaskFlow":
        """Open the task for this exchange, minting identifiers when absent.

        Raises:
            MessageError: the identifiers or metadata are not usable.
        """
        try:
            task = Task(
                id=task_id or new_task_id(),
                contextId=context_id or new_context_id(),
                status=TaskStatus(state=TaskState.input_required, message=message),
                metadata=dict(metadata or {}),
            )
        except (TypeError, ValueError) as e:
            raise MessageError(f"Invalid task identifiers: {e}") from e
        return cls(task)

    def _move_to(self, new_status: PaymentStatus) -> None:
        if not can_transition(self.payment_status, new_status):
            current = self.payment_status.value if self.payment_status else None
            raise StateError(
                f"Illegal payment transition {current} -> {new_status.value} "
                f"for task {self.task.id}"
            )
        self.payment_status = new_status

    def _record(self, updates: dict[str, Any], message: Optional[Message] = None) -> None:
        updates = {self.STATUS_KEY: self.payment_status.value, **updates}
        if message is not None:
            self.task.status.message = message
        status_message = self.task.status.message
        if status_message is not None:
            status_message.metadata = {**(status_message.metadata or {}), **updates}
        self.task.metadata = {**(self.task.metadata or {}), **updates}

    def require_payment(self, payment_required: PaymentRequired) -> Task:
        self._move_to(PaymentStatus.PAYMENT_REQUIRED)
        self.task.status.state = TaskState.input_required
        required = payment_required.model_dump(by_alias=True, exclude_none=True)
        self._record(
            {X402Metadata.REQUIRED_KEY: required},
            message=text_message("Payment required. Please submit payment to continue."),
        )
        return self.task

    def submit(self, payment_payload: AnyPaymentPayload) -> Task:
        self._move_to(PaymentStatus.PAYMENT_SUBMITTED)
        self.task.metadata = {
            **(self.task.metadata or {}),
            self.STATUS_KEY: self.payment_status.value,
        }
        return self.task

    def verify(self, verify_response: VerifyResponse) -> Task:
        self._move_to(PaymentStatus.PAYMENT_VERIFIED)
        self.task.status.state = TaskState.working
        updates: dict[str, Any] = {X402Metadata.VERIFIED_KEY: True}
        if verify_response.payer:
            updates[X402Metadata.PAYER_KEY] = verify_response.payer
        self.task.metadata = {
            **(self.task.metadata or {}),
            self.STATUS_KEY: self.payment_status.value,
            **updates,
        }
        return self.task

    def reject(self, reason: str) -> Task:
        self._move_to(PaymentStatus.PAYMENT_REJECTED)
        self.task.status.state = TaskState.failed
        self._record(
            {
                X402Metadata.ERROR_KEY: reason,
                X402Metadata.ERROR_CODE_KEY: map_invalid_reason_to_code(reason),
            },
            message=text_message(f"Payment verification failed: {reason}"),
        )
        return self.task

    def fail(self, reason: str, error_code: str) -> Task:
        """Processing failed before anything was settled."""
        self._move_to(PaymentStatus.PAYMENT_FAILED)
        self.task.status.state = TaskState.failed
        self._record(
            {X402Metadata.ERROR_KEY: reason, X402Metadata.ERROR_CODE_KEY: error_code},
            message=text_message(f"Payment processing failed: {reason}"),
        )
        return self.task

    def adopt(self, task: Task) -> Task:
        """Continue on the task the work handler emitted last.

        Payment metadata recorded so far is carried over; the handler's
        status message is kept as the answer.
        """
        if task is not self.task:
            carried = {
                key: value
                for key, value in (self.task.metadata or {}).items()
                if key.startswith("x402") and key not in (task.metadata or {})
            }
            task.metadata = {**(task.metadata or {}), **carried}
            self.task = task
        return self.task

    def apply_event(self, event: Any) -> Task:
        """Fold one event emitted by the work handler into the task.

        Plain messages leave the task untouched.
        """
        if isinstance(event, Task):
            return self.adopt(event)
        if isinstance(event, TaskStatusUpdateEvent):
            self.task.status = event.status
        elif isinstance(event, TaskArtifactUpdateEvent):
            append_artifact_to_task(self.task, event)
        return self.task

    def settle(self, settle_response: SettleResponse) -> Task:
        """Record the settlement outcome. The work already ran either way."""
        if settle_response.success:
            self._move_to(PaymentStatus.PAYMENT_COMPLETED)
        else:
            self._move_to(PaymentStatus.PAYMENT_FAILED)

        if self.task.status.state not in TERMINAL_STATES:
            self.task.status.state = TaskState.completed

        receipts = list((self.task.metadata or {}).get(X402Metadata.RECEIPTS_KEY, []))
        receipts.append(settle_response.model_dump(by_alias=True, exclude_none=True))
        updates: dict[str, Any] = {X402Metadata.RECEIPTS_KEY: receipts}
        if not settle_response.success:
            updates[X402Metadata.ERROR_CODE_KEY] = X402ErrorCode.SETTLEMENT_FAILED
        if settle_response.error_reason:
            updates[X402Metadata.ERROR_KEY] = settle_response.error_reason
        self._record(updates)
        return self.task
