"""Request flow shared by the Chat Completions and Messages endpoints.

Each endpoint supplies its protocol pieces (request parser, stream adapter,
response renderer, error envelope); this module runs them against the
gateway and keeps the request counters and logs consistent.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...conversation import Turn
from ...core.exceptions import InvalidRequestError, ProxyError, UpstreamError
from ...stream import StreamAggregate

logger = logging.getLogger("catgate")


@dataclass(frozen=True)
class Protocol:
    """Wire-format hooks for one client API.

    Fields:
        name: Counter label (``openai`` / ``anthropic``)
        label: Human name used in logs
        id_prefix: Prefix of generated response ids
        parse_turns: Request payload -> turns; raises InvalidRequestError
        make_adapter: ``(response_id, model)`` -> stream adapter
        render: ``(aggregate, response_id, model)`` -> JSON body
        error_response: Builds the protocol's error envelope
        upstream_error_code: ``code`` attached to 502 responses, if any
    """

    name: str
    label: str
    id_prefix: str
    parse_turns: Callable[[Mapping[str, Any]], Sequence[Turn]]
    make_adapter: Callable[[str, str], Any]
    render: Callable[[StreamAggregate, str, str], dict]
    error_response: Callable[..., JSONResponse]
    upstream_error_code: Optional[str] = None


async def serve_exchange(request: Request, protocol: Protocol) -> Response:
    """Parse, resolve, forward and render one client request."""
    req_id = uuid.uuid4().hex[:8]
    gateway = request.app.state.gateway
    tracker = gateway.counters.start_request(protocol.name)
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"[{req_id}] {protocol.label} request from {client_host}")

    def reject(message: str, **kwargs: Any) -> JSONResponse:
        tracker.finish(failed=True)
        return protocol.error_response(message, **kwargs)

    def upstream_failure(exc: ProxyError) -> JSONResponse:
        return reject(
            exc.message,
            error_type="api_error",
            status_code=502,
            error_code=protocol.upstream_error_code,
        )

    body = await request.body()
    try:
        payload: Any = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        logger.error(f"[{req_id}] Invalid JSON payload: {exc}")
        return reject("Invalid JSON payload", error_code="invalid_json")
    if not isinstance(payload, Mapping):
        return reject("Request body must be a JSON object", error_code="invalid_json_shape")

    try:
        turns = protocol.parse_turns(payload)
    except InvalidRequestError as exc:
        logger.warning(f"[{req_id}] Rejected request: {exc.message}")
        return reject(exc.message, error_code=exc.code, param=exc.param)

    model = payload.get("model")
    if not isinstance(model, str) or not model:
        model = gateway.backend.model
    is_stream = bool(payload.get("stream", False))
    logger.info(f"[{req_id}] {len(turns)} turns, model={model}, stream={is_stream}")

    try:
        exchange = await gateway.open_exchange(turns, req_id)
    except UpstreamError as exc:
        logger.warning(f"[{req_id}] Backend unavailable: {exc.message}")
        return upstream_failure(exc)

    response_id = f"{protocol.id_prefix}{uuid.uuid4().hex[:24]}"

    if is_stream:
        adapter = protocol.make_adapter(response_id, model)

        async def stream_body():
            frames = gateway.stream_exchange(exchange, adapter)
            try:
                async for frame in frames:
                    yield frame
            finally:
                await frames.aclose()
                failed = adapter.error is not None or not adapter.finished
                tracker.finish(failed=failed)
                logger.info(
                    f"[{req_id}] Stream {'aborted' if failed else 'completed'} "
                    f"({len(adapter.text)} chars)"
                )

        return StreamingResponse(
            stream_body(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    try:
        aggregate = await gateway.collect_exchange(exchange)
    except ProxyError as exc:
        logger.warning(f"[{req_id}] Backend stream failed: {exc.message}")
        return upstream_failure(exc)

    tracker.finish()
    logger.info(f"[{req_id}] Completed ({len(aggregate.content)} chars)")
    return JSONResponse(protocol.render(aggregate, response_id, model))
