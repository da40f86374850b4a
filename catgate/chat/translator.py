"""OpenAI Chat Completions translation.

Turns a Chat Completions request into the canonical turn sequence and
renders an aggregated reply back as a ``chat.completion`` object.
"""

from __future__ import annotations

import time
from typing import Any, Mapping

from ..conversation.fingerprint import Role, Turn
from ..core.exceptions import InvalidRequestError
from ..stream.aggregate import StreamAggregate

CHAT_ROLES = {role.value for role in Role}

FINISH_REASONS = {"stop", "length", "content_filter"}


def chat_request_to_turns(payload: Mapping[str, Any]) -> list[Turn]:
    """Extract the turn history from a Chat Completions request.

    Content may be a plain string or a list of ``{"type": "text"}`` parts.

    Raises:
        InvalidRequestError: If messages are missing or carry an unknown role.
    """
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError(
            "messages: at least one message is required",
            code="missing_parameter",
            param="messages",
        )

    turns: list[Turn] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise InvalidRequestError(
                f"messages[{index}]: expected an object",
                param=f"messages[{index}]",
            )
        role = message.get("role")
        if role not in CHAT_ROLES:
            raise InvalidRequestError(
                f"messages[{index}].role: unsupported role {role!r}",
                code="invalid_role",
                param=f"messages[{index}].role",
            )
        turns.append(Turn.of(role, message.get("content")))
    return turns


def convert_finish_reason(finish_reason: str | None) -> str:
    """Map a generic finish reason onto the Chat Completions vocabulary."""
    if finish_reason in FINISH_REASONS:
        return finish_reason
    return "stop"


def build_chat_completion(
    aggregate: StreamAggregate,
    completion_id: str,
    model: str,
    created: int | None = None,
) -> dict[str, Any]:
    """Render an aggregated reply as a non-streaming ``chat.completion``."""
    usage = aggregate.usage
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": created if created is not None else int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": aggregate.content},
                "finish_reason": convert_finish_reason(aggregate.finish_reason),
            }
        ],
        "usage": {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        },
    }


def build_error_payload(
    message: str,
    error_type: str = "api_error",
    code: str | None = None,
    param: str | None = None,
) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type, "param": param, "code": code}}
