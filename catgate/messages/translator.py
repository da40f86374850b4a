"""Anthropic Messages API translation.

Turns an Anthropic Messages request into the canonical turn sequence and
renders an aggregated reply back as an Anthropic ``message`` object.

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..conversation.fingerprint import Role, Turn, resolve_content
from ..core.exceptions import InvalidRequestError
from ..stream.aggregate import StreamAggregate

logger = logging.getLogger("catgate")

MESSAGE_ROLES = {"user", "assistant"}


def messages_request_to_turns(payload: Mapping[str, Any]) -> list[Turn]:
    """Extract the turn history from an Anthropic Messages request.

    A top-level ``system`` (string or text blocks) becomes a leading system
    turn.

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
    system = resolve_content(payload.get("system"))
    if system:
        turns.append(Turn(Role.SYSTEM, system))

    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise InvalidRequestError(
                f"messages.{index}: expected an object",
                param=f"messages.{index}",
            )
        role = message.get("role")
        if role not in MESSAGE_ROLES:
            raise InvalidRequestError(
                f"messages.{index}.role: unexpected role {role!r}, expected 'user' or 'assistant'",
                code="invalid_role",
                param=f"messages.{index}.role",
            )
        turns.append(Turn.of(role, message.get("content")))

    return turns


def _convert_stop_reason(finish_reason: str | None) -> str:
    """Convert a generic finish reason to an Anthropic stop_reason."""
    mapping = {
        "stop": "end_turn",
        "length": "max_tokens",
        "content_filter": "refusal",
    }
    if finish_reason is None:
        return "end_turn"
    return mapping.get(finish_reason, "end_turn")


def build_message_response(
    aggregate: StreamAggregate,
    message_id: str,
    model: str,
) -> dict[str, Any]:
    """Render an aggregated reply as a non-streaming Anthropic message."""
    return {
        "id": message_id,
        "type": "message",
        "role": "assistant",
        "content": [{"type": "text", "text": aggregate.content}],
        "model": model,
        "stop_reason": _convert_stop_reason(aggregate.finish_reason),
        "stop_sequence": None,
        "usage": {
            "input_tokens": aggregate.usage.prompt_tokens,
            "output_tokens": aggregate.usage.completion_tokens,
        },
    }


def build_error_payload(message: str, error_type: str = "api_error") -> dict[str, Any]:
    return {"type": "error", "error": {"type": error_type, "message": message}}
