"""
Upstream inference boundary.

This package owns everything on the outbound side of the relay: the
canonical request schema, the Request Normalizer, and the backends that open
a streamed chat completion upstream.

Supported backends:
- FireworksUpstream: Fireworks chat-completions API over httpx
- StubUpstream: Deterministic scripted upstream (default for tests)

Example usage:
    from inference import StubUpstream, normalize

    request = normalize(b'{"model": "m", "messages": [...]}', provider_max=8192)
    stream = await StubUpstream().open_stream(request)
"""

from .types import InferenceRequest, ChatMessage, ReasoningMethod
from .normalize import normalize, clamp_max_tokens, detect_reasoning_method
from .base import UpstreamBackend, UpstreamStream
from .stub import StubUpstream
from .fireworks import FireworksUpstream, DEFAULT_UPSTREAM_URL

__all__ = [
    "InferenceRequest",
    "ChatMessage",
    "ReasoningMethod",
    "normalize",
    "clamp_max_tokens",
    "detect_reasoning_method",
    "UpstreamBackend",
    "UpstreamStream",
    "StubUpstream",
    "FireworksUpstream",
    "DEFAULT_UPSTREAM_URL",
]
