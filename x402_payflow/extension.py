"""Activation header for the x402 A2A extension."""

from .types.config import X402_EXTENSION_URI


EXTENSIONS_HEADER = "X-A2A-Extensions"


def add_extension_activation_header(response_headers: dict) -> dict:
    """Echo extension URI in response header to confirm activation."""
    response_headers[EXTENSIONS_HEADER] = X402_EXTENSION_URI
    return response_headers
