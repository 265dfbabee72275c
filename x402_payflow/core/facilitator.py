"""Construction of the x402 facilitator client used for remote verify/settle."""

import logging
from typing import Awaitable, Callable, Optional

from x402.facilitator import FacilitatorClient, FacilitatorConfig

from ..types import DEFAULT_FACILITATOR_URL


logger = logging.getLogger(__name__)


HeaderFactory = Callable[[], Awaitable[dict[str, dict[str, str]]]]


def bearer_headers(api_key: str) -> HeaderFactory:
    """Per-endpoint ``Authorization`` headers for an API-key protected facilitator."""

    async def create_headers() -> dict[str, dict[str, str]]:
        auth = {"Authorization": f"Bearer {api_key}"}
        return {"verify": dict(auth), "settle": dict(auth)}

    return create_headers


def create_facilitator_client(
    url: Optional[str] = None, api_key: Optional[str] = None
) -> FacilitatorClient:
    """Build a facilitator client for ``url``, defaulting to the public one."""
    config = FacilitatorConfig(url=(url or DEFAULT_FACILITATOR_URL).rstrip("/"))
    if api_key:
        config["create_headers"] = bearer_headers(api_key)
    logger.info(f"Using facilitator at {config['url']}")
    return FacilitatorClient(config)
