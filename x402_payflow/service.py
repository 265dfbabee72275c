"""Example paid work handler served by ``x402-payflow serve``."""

import logging

from a2a.server.agent_execution.agent_executor import AgentExecutor
from a2a.server.agent_execution.context import RequestContext
from a2a.server.events.event_queue import EventQueue
from a2a.server.tasks import TaskUpdater
from a2a.types import Part, TextPart

from .core.utils import message_text
from .types import X402Metadata


logger = logging.getLogger(__name__)


class EchoService(AgentExecutor):
    """Answers a paid request by echoing its text back.

    Replace with real work; it only runs once a payment has been verified.
    """

    async def execute(self, context: RequestContext, event_queue: EventQueue) -> None:
        task = context.current_task
        if not task or not (task.metadata or {}).get(X402Metadata.VERIFIED_KEY):
            raise RuntimeError("EchoService invoked without a verified payment")

        text = message_text(context.message)
        logger.info(f"Processing paid request for task {context.task_id}: {text!r}")

        updater = TaskUpdater(event_queue, context.task_id, context.context_id)
        await updater.complete(
            message=updater.new_agent_message([Part(root=TextPart(text=f"Echo: {text}"))])
        )

    async def cancel(self, context: RequestContext, event_queue: EventQueue) -> None:
        """Cancel execution (not implemented)."""
        pass
