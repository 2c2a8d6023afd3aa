"""Exception types for the Proxmox VE session client."""

from typing import Optional

# Longest slice of an error body carried into the exception message.
BODY_SNIPPET_LIMIT = 500


class ProxmoxError(Exception):
    """Base exception for all client errors."""


class TransportError(ProxmoxError):
    """No HTTP response was received (DNS, connection, TLS or timeout)."""


class StatusError(ProxmoxError):
    """The API answered with a status outside 200-299."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        snippet = body.strip()
        if len(snippet) > BODY_SNIPPET_LIMIT:
            snippet = snippet[:BODY_SNIPPET_LIMIT] + "…"
        super().__init__(f"HTTP {status_code}: {snippet}")


class DecodeError(ProxmoxError):
    """A 2xx response body did not match the expected envelope."""

    def __init__(self, message: str, body: Optional[str] = None) -> None:
        self.body = body
        super().__init__(message)


class ValidationError(ProxmoxError):
    """A required field was left empty before calling the API."""
