"""
Stream frame codec.

Each frame on the wire is a single `data:` line followed by a blank line:

    data: <payload>\n\n

The session always ends with `data: [DONE]\n\n` unless the client is gone.
"""

import json
from dataclasses import dataclass
from typing import Literal, Optional

FrameKind = Literal["data", "done", "error"]

DATA_PREFIX = b"data:"
FRAME_SEPARATOR = b"\n\n"
DONE_PAYLOAD = b"[DONE]"


@dataclass(frozen=True)
class StreamFrame:
    kind: FrameKind
    line: bytes  # complete `data:` line, without separator

    @classmethod
    def data(cls, line: bytes) -> "StreamFrame":
        """
        Build a data frame from one upstream line.

        Lines that already carry the `data:` prefix are kept verbatim;
        anything else is wrapped so the frame is always well-formed.
        """
        if not line.startswith(DATA_PREFIX):
            line = DATA_PREFIX + b" " + line
        return cls(kind="data", line=line)

    @classmethod
    def done(cls) -> "StreamFrame":
        return cls(kind="done", line=DATA_PREFIX + b" " + DONE_PAYLOAD)

    @classmethod
    def error(cls, message: str, details: Optional[str] = None) -> "StreamFrame":
        body = {"error": True, "message": message}
        if details is not None:
            body["details"] = details
        return cls(kind="error", line=DATA_PREFIX + b" " + json.dumps(body).encode("utf-8"))

    @property
    def payload(self) -> bytes:
        """Frame content with the `data:` prefix (and one space) removed."""
        rest = self.line[len(DATA_PREFIX):]
        return rest[1:] if rest.startswith(b" ") else rest

    def encode(self) -> bytes:
        return self.line + FRAME_SEPARATOR


DONE_FRAME = StreamFrame.done().encode()


def parse_frames(body: bytes) -> list:
    """Split an encoded event stream back into frames (used by clients and tests)."""
    frames = []
    for block in body.split(FRAME_SEPARATOR):
        if not block.strip():
            continue
        frame = StreamFrame(kind="data", line=block)
        if frame.payload == DONE_PAYLOAD:
            frame = StreamFrame(kind="done", line=block)
        elif frame.payload.startswith(b'{"error": true'):
            frame = StreamFrame(kind="error", line=block)
        frames.append(frame)
    return frames
