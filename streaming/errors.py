"""
Relay error taxonomy and Error Translator.

Every failure a relay session can hit is one of the RelayError subclasses
below. Before the first byte is committed downstream a failure becomes a plain
JSON body (error_body); afterwards it becomes one in-stream error frame
(translate). Both produce the same {"error", "message"} shape.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx

from .frames import StreamFrame

# Upstream diagnostic text is capped so a misbehaving upstream cannot produce
# an unbounded frame.
MAX_ERROR_DETAIL_CHARS = 1000


class RelayError(Exception):
    """Base class for all relay failures."""

    status_code: int = 500
    label: str = "Internal Server Error"


class InvalidRequest(RelayError):
    """Malformed or incomplete caller input. Never retried."""

    status_code = 400
    label = "Invalid request"


class ConfigurationMissing(RelayError):
    """A required credential or setting is absent."""

    status_code = 500
    label = "API key not configured"


class UpstreamStatusError(RelayError):
    """Upstream rejected the request before streaming began."""

    label = "API Error"

    def __init__(self, status_code: int, reason: str = "", body: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"API Error: {status_code} {reason}".rstrip())


class UpstreamTimeoutError(RelayError):
    """The session's time budget elapsed."""

    status_code = 504
    label = "Gateway Timeout"

    def __init__(self, budget_s: Optional[float] = None, message: str = ""):
        self.budget_s = budget_s
        super().__init__(message or "upstream time budget exceeded")


class UpstreamTransportError(RelayError):
    """Network-level failure talking to the upstream."""

    status_code = 500
    label = "Request Failed"


class DownstreamGone(RelayError):
    """The client connection closed. Ends the session silently."""


class ErrorOrigin(str, Enum):
    """Where a relay failure came from."""

    UPSTREAM_TRANSPORT = "upstream_transport"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_STATUS = "upstream_status"
    BODY_PARSE = "body_parse"


def truncate_detail(text: str, limit: int = MAX_ERROR_DETAIL_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "...[truncated]"


def classify(exc: BaseException) -> ErrorOrigin:
    """Map a raw exception to the origin used for translation."""
    if isinstance(exc, (UpstreamTimeoutError, httpx.TimeoutException)):
        return ErrorOrigin.UPSTREAM_TIMEOUT
    if isinstance(exc, UpstreamStatusError):
        return ErrorOrigin.UPSTREAM_STATUS
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError, InvalidRequest)):
        return ErrorOrigin.BODY_PARSE
    return ErrorOrigin.UPSTREAM_TRANSPORT


def _timeout_message(err: BaseException) -> str:
    budget = getattr(err, "budget_s", None)
    limit = f" (>{budget:g} seconds)" if budget else ""
    return (
        f"The request to the LLM API took too long to complete{limit}. "
        "Try reducing complexity or using fewer tokens."
    )


def _status_message(err: BaseException) -> str:
    status = getattr(err, "status_code", "unknown")
    reason = getattr(err, "reason", "")
    return f"API Error: {status} {reason}".rstrip()


def translate(origin: ErrorOrigin, err: BaseException) -> StreamFrame:
    """
    Turn a failure into the one downstream-visible error frame.

    Args:
        origin: Failure origin (see ErrorOrigin)
        err: The underlying exception

    Returns:
        StreamFrame of kind "error" whose payload is
        {"error": true, "message": ...} (plus "details" for upstream status)
    """
    details: Optional[str] = None

    if origin == ErrorOrigin.UPSTREAM_TIMEOUT:
        message = _timeout_message(err)
    elif origin == ErrorOrigin.UPSTREAM_STATUS:
        message = _status_message(err)
        details = truncate_detail(getattr(err, "body", "") or "")
    elif origin == ErrorOrigin.BODY_PARSE:
        message = f"Invalid upstream payload: {err}"
    else:
        message = f"Stream processing error: {err}"

    return StreamFrame.error(message, details=details)


def error_body(exc: RelayError) -> Tuple[int, Dict[str, Any]]:
    """
    Build the non-streaming JSON error body for a failure that happened
    before any stream bytes were committed.

    Returns:
        (status_code, body) tuple
    """
    if isinstance(exc, UpstreamStatusError):
        body: Dict[str, Any] = {
            "error": f"API Error: {exc.reason or exc.status_code}",
            "message": str(exc),
            "details": truncate_detail(exc.body or f"Status code: {exc.status_code}"),
        }
        return exc.status_code, body

    if isinstance(exc, UpstreamTimeoutError):
        return exc.status_code, {"error": exc.label, "message": _timeout_message(exc)}

    if isinstance(exc, ConfigurationMissing):
        return exc.status_code, {
            "error": exc.label,
            "message": str(exc) or "Please set FIREWORKS_API_KEY in the environment",
        }

    return exc.status_code, {"error": exc.label, "message": str(exc)}
