"""Anthropic-compatible Messages API endpoint."""

from typing import Any, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ...messages import (
    GenericToMessagesStreamAdapter,
    build_message_response,
    messages_request_to_turns,
)
from .exchange import Protocol, serve_exchange


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if error_code:
        error["code"] = error_code
    if param:
        error["param"] = param
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code)


ANTHROPIC_MESSAGES = Protocol(
    name="anthropic",
    label="Messages API",
    id_prefix="msg_",
    parse_turns=messages_request_to_turns,
    make_adapter=GenericToMessagesStreamAdapter,
    render=build_message_response,
    error_response=_anthropic_error_response,
)


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    return await serve_exchange(request, ANTHROPIC_MESSAGES)
