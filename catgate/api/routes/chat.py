"""OpenAI-compatible chat completions endpoint."""

from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ...chat import GenericToChatStreamAdapter, build_chat_completion, chat_request_to_turns
from ...chat.translator import build_error_payload
from .exchange import Protocol, serve_exchange


def _openai_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    param: Optional[str] = None,
) -> JSONResponse:
    payload = build_error_payload(message, error_type=error_type, code=error_code, param=param)
    return JSONResponse(payload, status_code=status_code)


OPENAI_CHAT = Protocol(
    name="openai",
    label="Chat completions",
    id_prefix="chatcmpl-",
    parse_turns=chat_request_to_turns,
    make_adapter=GenericToChatStreamAdapter,
    render=build_chat_completion,
    error_response=_openai_error_response,
    upstream_error_code="upstream_error",
)


async def chat_completions(request: Request) -> Response:
    """POST /v1/chat/completions - OpenAI Chat Completions compatible endpoint."""
    return await serve_exchange(request, OPENAI_CHAT)
