"""
Error taxonomy shared by the upstream clients and the tool dispatcher.

Each error carries a stable ``code`` that the dispatcher copies into the
structured failure payload returned to the MCP client.
"""

from typing import Any, Optional


class AdapterError(RuntimeError):
    """Base class for failures reported back to the caller as tool errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidArgumentError(AdapterError):
    """A required argument is missing or blank. Raised before any request."""

    code = "INVALID_ARGUMENT"


class ExtractionError(AdapterError):
    """A successful upstream response did not contain the expected structure."""

    code = "EXTRACTION_FAILED"


class NotFoundError(AdapterError):
    """A named singular resource is absent from an otherwise valid response."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} not found: {name}", details={"name": name})
        self.kind = kind
        self.name = name


class TransportError(AdapterError):
    """Network or HTTP failure talking to an upstream."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        upstream: str,
        status_code: Optional[int] = None,
    ) -> None:
        details = {"upstream": upstream}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details)
        self.upstream = upstream
        self.status_code = status_code


class UpstreamTimeoutError(TransportError):
    """An upstream request or a whole tool call ran past its deadline."""

    code = "DEADLINE_EXCEEDED"


def require_text(value: Any, message: str) -> str:
    """Return ``value`` or raise InvalidArgumentError unless it is non-blank text."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(message)
    return value


__all__ = [
    "AdapterError",
    "InvalidArgumentError",
    "ExtractionError",
    "NotFoundError",
    "TransportError",
    "UpstreamTimeoutError",
    "require_text",
]
