"""Starlette application exposing /health, /process and /test."""

import json
import logging
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..core.utils import parse_incoming_message
from ..executors.server import X402ServerExecutor
from ..extension import add_extension_activation_header
from ..types import MessageError


logger = logging.getLogger(__name__)


def _json(body: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        body,
        status_code=status_code,
        headers=add_extension_activation_header({}),
    )


async def _read_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MessageError(f"Invalid JSON body: {e}") from e
    if not isinstance(body, dict):
        raise MessageError("Request body must be a JSON object")
    return body


def _identifier(body: dict, key: str) -> Optional[str]:
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        raise MessageError(f"{key} must be a string")
    return value


def create_app(executor: X402ServerExecutor) -> Starlette:
    """Build the HTTP surface around a configured server executor."""

    async def health(request: Request) -> JSONResponse:
        return _json(executor.health())

    async def process(request: Request) -> JSONResponse:
        try:
            body = await _read_body(request)
            message = parse_incoming_message(body.get("message"))
            metadata = body.get("metadata")
            if metadata is not None and not isinstance(metadata, dict):
                raise MessageError("metadata must be a JSON object")
            result = await executor.process_request(
                message,
                task_id=_identifier(body, "taskId"),
                context_id=_identifier(body, "contextId"),
                metadata=metadata,
            )
        except MessageError as e:
            logger.warning(f"Rejected malformed request: {e}")
            return _json({"error": str(e)}, status_code=400)
        except Exception as e:
            logger.error(f"Unhandled error processing request: {e}", exc_info=True)
            return _json({"error": "Internal server error"}, status_code=500)
        return _json(result.body, status_code=result.status_code)

    async def test(request: Request) -> JSONResponse:
        try:
            body = await _read_body(request)
        except MessageError as e:
            return _json({"error": str(e)}, status_code=400)
        text = body.get("text") or "Hello from test endpoint"
        message = parse_incoming_message({"parts": [{"kind": "text", "text": text}]})
        result = await executor.process_request(message)
        return _json(result.body, status_code=result.status_code)

    return Starlette(routes=[
        Route("/health", health, methods=["GET"]),
        Route("/process", process, methods=["POST"]),
        Route("/test", test, methods=["POST"]),
    ])
