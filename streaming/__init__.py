"""
Streaming relay core.

Takes an upstream event stream that arrives as arbitrary byte reads and
re-emits it to the client as well-formed `data: ...\n\n` frames in real time,
honouring the session's cancellation token at every read and write.

Example usage:
    from streaming import CancellationController, QueueSink, StreamingRelay

    token, cancel = CancellationController().begin(120)
    sink = QueueSink()
    outcome = await StreamingRelay(mode="lines").relay(upstream_body, sink, token)
"""

from .frames import StreamFrame, DONE_FRAME, parse_frames
from .cancellation import (
    CancellationController,
    CancellationToken,
    TokenFired,
    DEADLINE,
    DOWNSTREAM_CLOSED,
    ABORTED,
)
from .errors import (
    RelayError,
    InvalidRequest,
    ConfigurationMissing,
    UpstreamStatusError,
    UpstreamTimeoutError,
    UpstreamTransportError,
    DownstreamGone,
    ErrorOrigin,
    classify,
    translate,
    error_body,
)
from .sink import QueueSink
from .relay import StreamingRelay, RelayOutcome, RelayMode, LineReassembler

__all__ = [
    "StreamFrame",
    "DONE_FRAME",
    "parse_frames",
    "CancellationController",
    "CancellationToken",
    "TokenFired",
    "DEADLINE",
    "DOWNSTREAM_CLOSED",
    "ABORTED",
    "RelayError",
    "InvalidRequest",
    "ConfigurationMissing",
    "UpstreamStatusError",
    "UpstreamTimeoutError",
    "UpstreamTransportError",
    "DownstreamGone",
    "ErrorOrigin",
    "classify",
    "translate",
    "error_body",
    "QueueSink",
    "StreamingRelay",
    "RelayOutcome",
    "RelayMode",
    "LineReassembler",
]
