"""
Streaming relay endpoints.

Two entry points, one relay core:

  POST /api/streaming       long-timeout path  (profile "proxy")
  POST /api/streaming-edge  short-timeout path (profile "edge")

Request Flow:
  method check → credentials → normalize → open upstream (under deadline)
  → StreamingResponse fed by the relay task through a QueueSink

Failure Shape:
  Before the upstream answers with 2xx: JSON body + HTTP status
  After stream headers are sent: in-stream error frame + [DONE]
"""

import asyncio
import logging
import time

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from inference import detect_reasoning_method, normalize
from inference.base import UpstreamStream
from infra import RelayBootstrap, RelayProfile
from streaming import (
    ConfigurationMissing,
    QueueSink,
    RelayError,
    StreamingRelay,
    TokenFired,
    UpstreamTimeoutError,
    error_body,
)
from streaming.cancellation import CancellationToken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["streaming"])

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

PREFLIGHT_HEADERS = {
    "Allow": "POST, OPTIONS",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


def _error_response(exc: RelayError) -> JSONResponse:
    status_code, body = error_body(exc)
    return JSONResponse(status_code=status_code, content=body)


async def _event_stream(
    bootstrap: RelayBootstrap,
    relay: StreamingRelay,
    upstream: UpstreamStream,
    sink: QueueSink,
    token: CancellationToken,
):
    """
    Response body iterator.

    Runs the relay as its own task and drains the sink. If Starlette tears
    this iterator down before the sink is closed, the client is gone.
    """
    task = asyncio.create_task(relay.relay(upstream, sink, token))
    bootstrap.track(token, task)
    task.add_done_callback(_log_outcome)

    try:
        async for chunk in sink:
            yield chunk
    finally:
        if not sink.closed:
            sink.detach()
            bootstrap.controller.on_downstream_close(token)


def _log_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("Relay task cancelled")
        return
    if task.exception() is not None:
        logger.error(f"Relay task crashed: {task.exception()}", exc_info=task.exception())
        return
    outcome = task.result()
    logger.info(
        f"Relay finished: {outcome.status}",
        extra={
            "status": outcome.status,
            "reason": outcome.reason,
            "frames_written": outcome.frames_written,
            "bytes_received": outcome.bytes_received,
            "duration_ms": outcome.duration_ms,
        },
    )


async def relay_request(request: Request, profile_name: str) -> Response:
    """
    Relay one chat-completion request as an event stream.

    Args:
        request: Inbound FastAPI request (JSON body)
        profile_name: "proxy" or "edge"

    Returns:
        StreamingResponse on success, JSONResponse on any pre-stream failure
    """
    bootstrap = RelayBootstrap.get_instance()
    config = bootstrap.get_config()
    profile: RelayProfile = config.profile(profile_name)  # type: ignore[arg-type]
    logger.info(f"Streaming API called ({profile.name})")
    logger.debug(f"Environment check: FIREWORKS_API_KEY exists? {bool(config.api_key)}")

    token = None
    try:
        if config.upstream_backend != "stub" and not config.api_key:
            logger.error("Fireworks API key is missing in environment variables")
            raise ConfigurationMissing("Please set FIREWORKS_API_KEY in the environment")

        body = await request.body()
        inference_request = normalize(body, profile.provider_max_tokens)
        logger.info(
            f"Streaming request: model={inference_request.model}",
            extra={
                "profile": profile.name,
                "messages_count": len(inference_request.messages),
                "max_tokens": inference_request.max_tokens,
                "reasoning_method": detect_reasoning_method(inference_request),
            },
        )

        upstream_backend = bootstrap.create_upstream(config, profile)
        token, _cancel = bootstrap.controller.begin(profile.budget_s)
        started = time.monotonic()
        try:
            upstream = await token.guard(upstream_backend.open_stream(inference_request))
        except TokenFired:
            raise UpstreamTimeoutError(profile.budget_s)
        logger.debug(f"Upstream ready after {int((time.monotonic() - started) * 1000)}ms")

    except RelayError as e:
        if token is not None:
            token.disarm()
        logger.warning(f"Relay request rejected: {type(e).__name__}: {e}")
        return _error_response(e)

    sink = QueueSink()
    relay = StreamingRelay(mode=profile.mode)
    return StreamingResponse(
        _event_stream(bootstrap, relay, upstream, sink, token),
        headers=STREAM_HEADERS,
    )


@router.post("/streaming")
async def streaming(request: Request) -> Response:
    """Long-timeout relay (40000 token ceiling, 120 s budget)."""
    return await relay_request(request, "proxy")


@router.post("/streaming-edge")
async def streaming_edge(request: Request) -> Response:
    """Short-timeout edge relay (8192 token ceiling)."""
    return await relay_request(request, "edge")


@router.options("/streaming")
@router.options("/streaming-edge")
async def streaming_preflight() -> Response:
    """Preflight acknowledgment, no body."""
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


@router.api_route("/streaming", methods=["GET", "PUT", "PATCH", "DELETE"])
@router.api_route("/streaming-edge", methods=["GET", "PUT", "PATCH", "DELETE"])
async def streaming_method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=405,
        content={"error": "Method Not Allowed"},
        headers={"Allow": "POST"},
    )
