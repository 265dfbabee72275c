"""Executors package exports for x402_payflow."""

from .base import (
    AgentExecutor,
    EventQueue,
    RequestContext,
    X402BaseExecutor,
    drain_events,
)
from .server import ProcessResult, X402ServerExecutor

__all__ = [
    "AgentExecutor",
    "EventQueue",
    "RequestContext",
    "X402BaseExecutor",
    "drain_events",
    "ProcessResult",
    "X402ServerExecutor"
]
