"""HTTP surface: the Starlette service app and the paying caller client."""

from .app import create_app
from .client import CallResult, PaidServiceClient, ServiceResponse

__all__ = [
    "create_app",
    "CallResult",
    "PaidServiceClient",
    "ServiceResponse"
]
