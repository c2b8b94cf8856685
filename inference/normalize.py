"""
Request Normalizer

Turns a caller's chat-completion body into the canonical InferenceRequest
sent upstream. Pure: no I/O.

Rules:
- body must be a JSON object with `model` and a non-empty `messages` list
- `max_tokens` defaults to 4008 and is clamped to [1, provider_max]
- other sampling parameters default when absent and pass through otherwise
  (the upstream rejects out-of-range values itself)
- `stream` is always true
"""

import json
import logging
from typing import Any, Dict, Union

from pydantic import ValidationError

from streaming.errors import InvalidRequest

from .types import DEFAULT_MAX_TOKENS, InferenceRequest, ReasoningMethod

logger = logging.getLogger(__name__)

RawRequest = Union[bytes, str, Dict[str, Any], InferenceRequest]


def clamp_max_tokens(value: Any, provider_max: int) -> int:
    """Clamp to the inclusive range [1, provider_max]; None means the default."""
    if value is None:
        value = DEFAULT_MAX_TOKENS
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequest(f"max_tokens must be an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidRequest(f"max_tokens must be an integer, got {value!r}")
        value = int(value)
    return min(max(1, value), provider_max)


def _decode(raw: RawRequest) -> Dict[str, Any]:
    if isinstance(raw, InferenceRequest):
        return raw.model_dump()

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidRequest(f"Invalid JSON in request body: {e}")

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidRequest(f"Invalid JSON in request body: {e}")

    if not isinstance(raw, dict):
        raise InvalidRequest("Request body must be a JSON object")

    return raw


def normalize(raw: RawRequest, provider_max: int) -> InferenceRequest:
    """
    Build the canonical outbound request.

    Args:
        raw: Request body as bytes, text, an already-parsed dict, or an
            existing InferenceRequest (re-normalizing is a no-op)
        provider_max: max_tokens ceiling for the entry point in use

    Returns:
        InferenceRequest with every field populated and stream=True

    Raises:
        InvalidRequest: malformed body, or missing model / messages
    """
    body = _decode(raw)

    if not body.get("model"):
        raise InvalidRequest("Missing model parameter: model is required")
    if not body.get("messages"):
        raise InvalidRequest("Missing messages parameter: messages must be a non-empty list")

    original = body.get("max_tokens")
    max_tokens = clamp_max_tokens(original, provider_max)
    if original is not None and original != max_tokens:
        logger.info(f"Adjusted max_tokens from {original} to {max_tokens}")

    # Explicit nulls fall back to defaults like absent keys do
    fields = {key: value for key, value in body.items() if value is not None}
    fields["max_tokens"] = max_tokens
    fields["stream"] = True

    try:
        return InferenceRequest(**fields)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid request parameters: {e.errors()[0].get('msg', str(e))}")


def detect_reasoning_method(request: InferenceRequest) -> ReasoningMethod:
    """Classify the prompting style from the first message (for monitoring only)."""
    content = request.messages[0].content
    if not isinstance(content, str):
        return "Standard"
    if "Chain of Draft" in content:
        return "CoD"
    if "Chain of Thought" in content:
        return "CoT"
    return "Standard"
