"""Base executor types and interfaces for x402 payment middleware."""

import asyncio
from abc import ABC

from a2a.server.agent_execution.agent_executor import AgentExecutor
from a2a.server.agent_execution.context import RequestContext
from a2a.server.events.event_queue import Event, EventQueue

from ..core.utils import X402Utils


async def drain_events(event_queue: EventQueue) -> list[Event]:
    """Everything the work handler enqueued, in order. Closes the queue."""
    events: list[Event] = []
    while True:
        try:
            event = await event_queue.dequeue_event(no_wait=True)
        except asyncio.QueueEmpty:
            break
        events.append(event)
        event_queue.task_done()
    await event_queue.close()
    return events


class X402BaseExecutor(ABC):
    """Base executor with x402 protocol support."""

    def __init__(self, delegate: AgentExecutor):
        """Initialize base executor.

        Args:
            delegate: The underlying agent executor to wrap
        """
        self._delegate = delegate
        self.utils = X402Utils()
